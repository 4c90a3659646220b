import logging
from datetime import datetime
from typing import Dict, List, Optional
from urllib.parse import quote

import requests
from pydantic import BaseModel

from pytest_testwise.types import (
    ExecutionOutcome,
    ExecutionStatus,
    ReportEvent,
    ReportStats,
)

log = logging.getLogger(__name__)


class Dto(BaseModel):
    pass


def map_to_json(dto: Dto) -> str:
    return dto.model_dump_json()


def api_request(
    method: str,
    url: str,
    request: Optional[Dto] = None,
    params: Optional[Dict[str, str]] = None,
) -> None:
    headers: Dict[str, str] = {}
    json_str: Optional[str] = None
    if request:
        headers["Content-Type"] = "application/json"
        json_str = map_to_json(request)
    resp = requests.request(
        method=method, url=url, data=json_str, headers=headers, params=params
    )
    resp.raise_for_status()


class TestFinishedRequest(Dto):
    __test__ = False

    result: ExecutionOutcome
    message: Optional[str] = None


_OUTCOMES: Dict[str, ExecutionOutcome] = {
    "SUCCESSFUL": "PASSED",
    "ABORTED": "SKIPPED",
    "FAILED": "FAILED",
}


def to_execution_outcome(status: ExecutionStatus) -> ExecutionOutcome:
    try:
        return _OUTCOMES[status]
    except KeyError:
        raise ValueError(f"Unmapped test execution status: {status!r}") from None


def encode_test_path(path: str) -> str:
    """Turn a dotted test path into a single percent-encoded url segment.

    ``pkg.MyTest.test_a`` becomes ``pkg%2FMyTest%2Ftest_a``.
    """
    return quote(path.replace(".", "/"), safe="")


class CoverageAgentClient:
    """Endpoints of the test-wise coverage agent, in order of execution."""

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url.rstrip("/")

    def test_started(self, encoded_path: str) -> None:
        url = f"{self.base_url}/test-started/{encoded_path}"
        api_request(method="POST", url=url)

    def test_finished(self, encoded_path: str, request: TestFinishedRequest) -> None:
        url = f"{self.base_url}/test-finished/{encoded_path}"
        api_request(method="POST", url=url, request=request)

    def test_run_finished(self, partial: bool) -> None:
        url = f"{self.base_url}/test-run-finished"
        api_request(method="POST", url=url, params={"partial": str(partial).lower()})


class TestwiseReporter:
    """Reports test lifecycle events to the coverage agent.

    Without a client every method is a no-op. Transport errors are logged and
    discarded so that reporting never influences the test run.
    """

    __test__ = False

    def __init__(
        self, client: Optional[CoverageAgentClient], partial: bool = False
    ) -> None:
        self.client = client
        self.partial = partial
        self.report_stats: List[ReportStats] = []

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def report_stat(
        self,
        event: ReportEvent,
        delivered: bool,
        path: Optional[str] = None,
        outcome: Optional[ExecutionOutcome] = None,
    ) -> None:
        self.report_stats.append(
            {
                "timestamp": datetime.now().isoformat(),
                "event": event,
                "path": path,
                "outcome": outcome,
                "delivered": delivered,
            }
        )

    def start_test(self, path: str) -> None:
        if self.client is None:
            return
        encoded_path = encode_test_path(path)
        try:
            self.client.test_started(encoded_path)
        except requests.RequestException as exc:
            log.warning("Error while reporting start of test %s: %s", path, exc)
            self.report_stat("test_start", delivered=False, path=path)
        else:
            self.report_stat("test_start", delivered=True, path=path)

    def end_test(
        self, path: str, outcome: ExecutionOutcome, message: Optional[str] = None
    ) -> None:
        if self.client is None:
            return
        encoded_path = encode_test_path(path)
        request = TestFinishedRequest(result=outcome, message=message)
        try:
            self.client.test_finished(encoded_path, request)
        except requests.RequestException as exc:
            log.warning("Error while reporting end of test %s: %s", path, exc)
            self.report_stat("test_finish", delivered=False, path=path, outcome=outcome)
        else:
            self.report_stat("test_finish", delivered=True, path=path, outcome=outcome)

    def end_run(self) -> None:
        if self.client is None:
            return
        try:
            self.client.test_run_finished(partial=self.partial)
        except requests.RequestException as exc:
            log.warning("Error while reporting end of test run: %s", exc)
            self.report_stat("test_run_finish", delivered=False)
        else:
            self.report_stat("test_run_finish", delivered=True)


def create_reporter(
    agent_url: Optional[str], partial: bool = False
) -> TestwiseReporter:
    client = CoverageAgentClient(agent_url) if agent_url else None
    return TestwiseReporter(client=client, partial=partial)
