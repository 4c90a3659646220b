"""Test-wise coverage reporting for plain unittest runs.

Use ``testwise-unittest`` (or ``python -m pytest_testwise.unittest_runner``)
the same way as ``python -m unittest``. The coverage agent url is read from the
``TESTWISE_AGENT_URL`` environment variable.
"""
import unittest
from typing import Any, List, Optional

from pytest_testwise.api import create_reporter
from pytest_testwise.config import get_agent_url
from pytest_testwise.listeners import FlatExecutionListener
from pytest_testwise.types import Description, Failure


def describe(test: unittest.TestCase) -> Description:
    return Description(display_name=test.id())


class TestwiseTestResult(unittest.TextTestResult):
    """Forwards unittest result callbacks to a flat execution listener."""

    __test__ = False

    listener: FlatExecutionListener

    def _report_failure(self, test: unittest.TestCase, err: Any) -> None:
        exception = err[1] if err is not None else None
        self.listener.test_failure(
            Failure(description=describe(test), exception=exception)
        )

    def startTest(self, test: unittest.TestCase) -> None:
        super().startTest(test)
        self.listener.test_started(describe(test))

    def addFailure(self, test: unittest.TestCase, err: Any) -> None:
        super().addFailure(test, err)
        self._report_failure(test, err)

    def addError(self, test: unittest.TestCase, err: Any) -> None:
        super().addError(test, err)
        self._report_failure(test, err)

    def addSubTest(
        self, test: unittest.TestCase, subtest: unittest.TestCase, err: Any
    ) -> None:
        super().addSubTest(test, subtest, err)
        if err is not None:
            self._report_failure(test, err)

    def addUnexpectedSuccess(self, test: unittest.TestCase) -> None:
        super().addUnexpectedSuccess(test)
        self.listener.test_failure(
            Failure(description=describe(test), message="unexpected success")
        )

    def addSkip(self, test: unittest.TestCase, reason: str) -> None:
        super().addSkip(test, reason)
        self.listener.test_skipped(describe(test), reason)

    def addExpectedFailure(self, test: unittest.TestCase, err: Any) -> None:
        super().addExpectedFailure(test, err)
        self.listener.test_skipped(describe(test), "expected failure")

    def stopTest(self, test: unittest.TestCase) -> None:
        self.listener.test_finished(describe(test))
        super().stopTest(test)

    def stopTestRun(self) -> None:
        super().stopTestRun()
        self.listener.test_run_finished(self)


class TestwiseTestRunner(unittest.TextTestRunner):
    __test__ = False

    resultclass = TestwiseTestResult

    def __init__(
        self,
        *args: Any,
        listener: Optional[FlatExecutionListener] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        if listener is None:
            listener = FlatExecutionListener(create_reporter(get_agent_url()))
        self.listener = listener

    def _makeResult(self) -> TestwiseTestResult:
        result = super()._makeResult()
        result.listener = self.listener
        return result


def main(argv: Optional[List[str]] = None) -> None:
    unittest.main(module=None, argv=argv, testRunner=TestwiseTestRunner)


if __name__ == "__main__":
    main()  # pragma: no cover
