import os
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Generator, List, Optional

import pytest
from _pytest.config.exceptions import UsageError

from pytest_testwise.api import TestwiseReporter, create_reporter
from pytest_testwise.config import AGENT_URL_ENV_VAR, get_agent_url
from pytest_testwise.listeners import TreeExecutionListener
from pytest_testwise.types import (
    ClassSource,
    ExecutionResult,
    ExecutionStatus,
    MethodSource,
    ReportStats,
    ResourceSource,
    TestIdentifier,
)

if TYPE_CHECKING:
    from _pytest.config import Config, PytestPluginManager  # pragma: no cover
    from _pytest.config.argparsing import Parser  # pragma: no cover
    from _pytest.nodes import Item, Node  # pragma: no cover
    from _pytest.reports import TestReport  # pragma: no cover
    from _pytest.terminal import TerminalReporter  # pragma: no cover
    from pytest import Session  # pragma: no cover

_STATUS_PRIORITY: Dict[ExecutionStatus, int] = {
    "SUCCESSFUL": 0,
    "ABORTED": 1,
    "FAILED": 2,
}


def pytest_addoption(parser: "Parser", pluginmanager: "PytestPluginManager") -> None:
    group = parser.getgroup("testwise", "test-wise coverage reporting")
    group.addoption(
        "--testwise-agent-url",
        dest="testwiseagenturl",
        default=os.environ.get(AGENT_URL_ENV_VAR, ""),
        help=f"coverage agent base url (default: ${AGENT_URL_ENV_VAR})",
    )
    group.addoption(
        "--testwise-partial",
        dest="testwisepartial",
        action="store_true",
        help="report the test run as partial",
    )


def pytest_configure(config: "Config") -> None:
    try:
        agent_url = get_agent_url(config.option.testwiseagenturl)
    except ValueError:
        raise UsageError(
            "--testwise-agent-url should be an absolute http(s) url"
        ) from None
    if agent_url is None:
        return

    reporter = create_reporter(agent_url, partial=config.option.testwisepartial)
    is_worker = hasattr(config, "workerinput")
    is_controller = not is_worker and getattr(config.option, "dist", "no") != "no"

    if not is_controller:
        listener = TreeExecutionListener(reporter)
        report_plugin = TestwiseReportPlugin(
            config=config, listener=listener, report_containers=not is_worker
        )
        config.pluginmanager.register(report_plugin, "testwise_report_plugin")

    # Only the main node collects stats and reports distributed runs
    if not is_worker:
        config.testwise_report_stats = reporter.report_stats
        run_plugin = TestwiseRunPlugin(reporter, report_run=is_controller)
        config.pluginmanager.register(run_plugin, "testwise_run_plugin")
        config.pluginmanager.register(ReportSummaryPlugin(), "testwise_summary_plugin")


def get_test_source(node: "Node") -> Optional[Any]:
    if isinstance(node, pytest.Function):
        module_name = node.module.__name__
        cls = node.cls
        class_name = module_name if cls is None else f"{module_name}.{cls.__qualname__}"
        return MethodSource(class_name=class_name, method_name=node.originalname)
    if isinstance(node, pytest.Class):
        return ClassSource(class_name=f"{node.module.__name__}.{node.obj.__qualname__}")
    path = getattr(node, "path", None)
    if path is None:
        return None
    try:
        resource_name = path.relative_to(node.config.rootpath).as_posix()
    except ValueError:
        resource_name = path.as_posix()
    return ResourceSource(resource_name=resource_name)


def to_test_identifier(node: "Node") -> TestIdentifier:
    parent = node.parent
    return TestIdentifier(
        unique_id=node.nodeid,
        parent_id=None if parent is None else parent.nodeid,
        is_test=isinstance(node, pytest.Item),
        source=get_test_source(node),
        reporting_name=node.name,
    )


def to_execution_result(report: "TestReport") -> ExecutionResult:
    if report.failed:
        return ExecutionResult(status="FAILED", message=report.longreprtext or None)
    if report.skipped:
        longrepr = report.longrepr
        message = longrepr[2] if isinstance(longrepr, tuple) else None
        return ExecutionResult(status="ABORTED", message=message)
    return ExecutionResult(status="SUCCESSFUL")


class TestwiseReportPlugin:
    """Feeds pytest's collection tree into a tree execution listener.

    Only the outermost containers below the session are reported as finished,
    either when pytest tears them down or, if the run stopped early, when the
    test loop ends.
    """

    __test__ = False

    def __init__(
        self,
        config: "Config",
        listener: TreeExecutionListener,
        report_containers: bool = True,
    ) -> None:
        self.config = config
        self.listener = listener
        self.report_containers = report_containers
        self.results: Dict[str, ExecutionResult] = {}
        self.open_containers: Dict[str, "Node"] = {}

    @staticmethod
    def _outermost_container(item: "Item") -> Optional["Node"]:
        # the chain starts with the session and ends with the item itself
        chain = item.listchain()
        return chain[1] if len(chain) > 2 else None

    def _finish_container(self, node: "Node") -> None:
        self.open_containers.pop(node.nodeid, None)
        self.listener.execution_finished(to_test_identifier(node))

    @pytest.hookimpl(hookwrapper=True)
    def pytest_runtest_protocol(
        self, item: "Item", nextitem: Optional["Item"]
    ) -> Generator[None, None, None]:
        identifier = to_test_identifier(item)
        container = self._outermost_container(item)
        if self.report_containers and container is not None:
            self.open_containers[container.nodeid] = container
        self.results[item.nodeid] = ExecutionResult(status="SUCCESSFUL")
        self.listener.execution_started(identifier)

        yield

        result = self.results.pop(item.nodeid)
        self.listener.execution_finished(identifier, result)
        if self.report_containers and container is not None:
            if nextitem is None or self._outermost_container(nextitem) is not container:
                self._finish_container(container)

    @pytest.hookimpl(hookwrapper=True)
    def pytest_runtestloop(self) -> Generator[None, None, None]:
        yield

        # -x, --maxfail and interrupts stop the loop before the teardown
        for node in list(self.open_containers.values()):
            self._finish_container(node)

    def pytest_runtest_logreport(self, report: "TestReport") -> None:
        current = self.results.get(report.nodeid)
        if current is None:
            return
        result = to_execution_result(report)
        if _STATUS_PRIORITY[result.status] > _STATUS_PRIORITY[current.status]:
            self.results[report.nodeid] = result

    def pytest_sessionfinish(self) -> None:
        if hasattr(self.config, "workerinput"):
            stats = self.listener.reporter.report_stats
            self.config.workeroutput["testwise_report_stats"] = stats


class TestwiseRunPlugin:
    """Reports the end of a distributed run and gathers worker stats."""

    __test__ = False

    def __init__(self, reporter: TestwiseReporter, report_run: bool) -> None:
        self.reporter = reporter
        self.report_run = report_run
        self.worker_stats: List[ReportStats] = []

    @pytest.hookimpl(optionalhook=True)
    def pytest_testnodedown(self, node: Any) -> None:
        self.worker_stats += node.workeroutput.get("testwise_report_stats", [])

    @pytest.hookimpl(hookwrapper=True)
    def pytest_runtestloop(self, session: "Session") -> Generator[None, None, None]:
        yield

        if self.report_run:
            self.reporter.end_run()
        session.config.testwise_worker_stats = self.worker_stats


class ReportSummaryPlugin:
    def pytest_terminal_summary(self, terminalreporter: "TerminalReporter") -> None:
        config = terminalreporter.config
        stats: List[ReportStats] = [
            *getattr(config, "testwise_report_stats", []),
            *getattr(config, "testwise_worker_stats", []),
        ]
        # Sort by timestamp
        stats = sorted(stats, key=lambda d: datetime.fromisoformat(d["timestamp"]))
        terminalreporter.write_sep("=", "testwise coverage report summary")
        terminalreporter.write_line("date\t\t\t\tevent\t\t\tstatus\t\tpath")
        terminalreporter.write_sep("-")
        for stat in stats:
            line = "{timestamp}\t{event}"
            line += "\tdelivered" if stat["delivered"] else "\tFAILED TO DELIVER"
            if stat.get("outcome"):
                line += "\t{outcome}"
            if stat.get("path"):
                line += "    {path}"
            terminalreporter.write_line(line.format(**stat))
        undelivered = sum(1 for s in stats if not s["delivered"])
        terminalreporter.write_line(
            f"Events reported: {len(stats)}, undelivered: {undelivered}"
        )
