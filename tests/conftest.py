import re
from pathlib import Path
from typing import List, Tuple
from unittest.mock import Mock
from urllib.parse import unquote

import pytest
from werkzeug.wrappers import Response

from pytest_testwise.api import CoverageAgentClient, TestwiseReporter

pytest_plugins = ["pytester"]


@pytest.fixture
def reporter_mock() -> Mock:
    return Mock(spec=TestwiseReporter)


@pytest.fixture
def client_mock() -> Mock:
    return Mock(spec=CoverageAgentClient)


@pytest.fixture
def reporter(client_mock) -> TestwiseReporter:
    return TestwiseReporter(client=client_mock)


@pytest.fixture
def agent_url(httpserver) -> str:
    return httpserver.url_for("")


@pytest.fixture
def coverage_agent(httpserver):
    for endpoint in ("test-started", "test-finished"):
        httpserver.expect_request(
            re.compile(rf"^/{endpoint}/.+$"), method="POST"
        ).respond_with_response(Response(status=204))
    httpserver.expect_request(
        "/test-run-finished", method="POST"
    ).respond_with_response(Response(status=204))
    return httpserver


@pytest.fixture
def agent_requests(httpserver):
    """Requests received by the coverage agent as (endpoint, path) tuples."""

    def get() -> List[Tuple[str, str]]:
        received = []
        for request, _ in httpserver.log:
            endpoint, _, path = unquote(request.path).lstrip("/").partition("/")
            received.append((endpoint, path))
        return received

    return get


@pytest.fixture
def testmodule(pytester) -> Path:
    return pytester.makepyfile(
        """
    import pytest


    def test_ok():
        pass


    @pytest.mark.skip("Skipped!")
    def test_skipped():
        pass


    def test_failed():
        assert False, "assertion failed"


    @pytest.fixture
    def error_at_setup():
        raise RuntimeError

    def test_error_at_setup(error_at_setup):
        pass


    class TestGroup:
        def test_in_class(self):
            pass
    """
    )
