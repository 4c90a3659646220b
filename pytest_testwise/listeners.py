import logging
import os
import threading
from typing import Any, Dict, Optional

from pytest_testwise.api import to_execution_outcome
from pytest_testwise.types import (
    Description,
    ExecutionResult,
    Failure,
    InFlightTest,
    MethodSource,
    ResourceSource,
    TestIdentifier,
    TestReporter,
)

log = logging.getLogger(__name__)


class ReportingListener:
    """Base for runner lifecycle adapters sharing one reporter."""

    def __init__(self, reporter: TestReporter) -> None:
        self.reporter = reporter


def get_test_path(source: Any, reporting_name: str) -> str:
    if isinstance(source, MethodSource):
        return f"{source.class_name}.{reporting_name}"
    if isinstance(source, ResourceSource):
        resource, _ = os.path.splitext(source.resource_name)
        return f"{resource}/{reporting_name}"
    return str(source)


class TreeExecutionListener(ReportingListener):
    """Adapter for runners modelling the test plan as a tree.

    Only leaf nodes are reported as tests. A container with a parent that
    finishes marks the end of a test run.
    """

    def execution_started(self, node: Optional[TestIdentifier]) -> None:
        if node is None or not node.is_test or node.source is None:
            return
        self.reporter.start_test(get_test_path(node.source, node.reporting_name))

    def execution_finished(
        self, node: Optional[TestIdentifier], result: Optional[ExecutionResult] = None
    ) -> None:
        if node is None or node.parent_id is None or node.source is None:
            log.debug("Ignoring finished node without parent or source: %s", node)
            return
        if node.is_test and result is not None:
            path = get_test_path(node.source, node.reporting_name)
            outcome = to_execution_outcome(result.status)
            self.reporter.end_test(path, outcome, result.message)
        else:
            self.reporter.end_run()


class FlatExecutionListener(ReportingListener):
    """Adapter for runners with separate start, failure and finish callbacks.

    The outcome of a running test is tracked per description until the finish
    callback arrives, so tests may run on several threads at once.
    """

    def __init__(self, reporter: TestReporter) -> None:
        super().__init__(reporter)
        self._lock = threading.Lock()
        self._in_flight: Dict[Description, InFlightTest] = {}

    def test_started(self, description: Description) -> None:
        with self._lock:
            self._in_flight[description] = InFlightTest(path=description.display_name)
        self.reporter.start_test(description.display_name)

    def test_failure(self, failure: Failure) -> None:
        message = failure.message
        if message is None and failure.exception is not None:
            message = str(failure.exception) or None
        with self._lock:
            test = self._in_flight.get(failure.description)
            if test is None:
                log.debug("Ignoring failure of test not running: %s", failure)
                return
            test.outcome = "FAILED"
            test.message = message

    def test_skipped(
        self, description: Description, reason: Optional[str] = None
    ) -> None:
        with self._lock:
            test = self._in_flight.get(description)
            if test is None or test.outcome == "FAILED":
                return
            test.outcome = "SKIPPED"
            test.message = reason

    def test_finished(self, description: Description) -> None:
        with self._lock:
            test = self._in_flight.pop(
                description, InFlightTest(path=description.display_name)
            )
        self.reporter.end_test(test.path, test.outcome, test.message)

    def test_run_finished(self, result: Any = None) -> None:
        self.reporter.end_run()
