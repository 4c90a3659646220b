from dataclasses import dataclass
from typing import Any, Literal, Optional, Protocol, TypedDict

ExecutionOutcome = Literal["PASSED", "FAILED", "SKIPPED"]
ExecutionStatus = Literal["SUCCESSFUL", "ABORTED", "FAILED"]


@dataclass(frozen=True)
class MethodSource:
    class_name: str
    method_name: str


@dataclass(frozen=True)
class ClassSource:
    class_name: str


@dataclass(frozen=True)
class ResourceSource:
    """A file driving one or more tests, e.g. a feature file or a doctest."""

    resource_name: str


@dataclass(frozen=True)
class ExecutionResult:
    status: ExecutionStatus
    message: Optional[str] = None


@dataclass(frozen=True)
class TestIdentifier:
    """A node of a hierarchical test plan, either a container or a test."""

    __test__ = False

    unique_id: str
    parent_id: Optional[str]
    is_test: bool
    source: Optional[Any]
    reporting_name: str


@dataclass(frozen=True)
class Description:
    display_name: str


@dataclass(frozen=True)
class Failure:
    description: Description
    message: Optional[str] = None
    exception: Optional[BaseException] = None


@dataclass
class InFlightTest:
    path: str
    outcome: ExecutionOutcome = "PASSED"
    message: Optional[str] = None


class TestReporter(Protocol):
    """Methods defined in order of execution."""

    def start_test(self, path: str) -> None:
        pass  # pragma: no cover

    def end_test(
        self, path: str, outcome: ExecutionOutcome, message: Optional[str] = None
    ) -> None:
        pass  # pragma: no cover

    def end_run(self) -> None:
        pass  # pragma: no cover


ReportEvent = Literal["test_start", "test_finish", "test_run_finish"]


class ReportStats(TypedDict):
    timestamp: str
    event: ReportEvent
    path: Optional[str]
    outcome: Optional[ExecutionOutcome]
    delivered: bool
