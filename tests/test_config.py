import pytest

from pytest_testwise.config import AGENT_URL_ENV_VAR, get_agent_url


def test_get_agent_url__explicit_value__wins(monkeypatch):
    monkeypatch.setenv(AGENT_URL_ENV_VAR, "http://env:8000")

    assert get_agent_url("http://agent:8123/") == "http://agent:8123/"


def test_get_agent_url__from_environment(monkeypatch):
    monkeypatch.setenv(AGENT_URL_ENV_VAR, " http://env:8000 ")

    assert get_agent_url() == "http://env:8000"


@pytest.mark.parametrize("value", ("", "   "))
def test_get_agent_url__blank__disabled(value):
    assert get_agent_url(value) is None


def test_get_agent_url__unset__disabled(monkeypatch):
    monkeypatch.delenv(AGENT_URL_ENV_VAR, raising=False)

    assert get_agent_url() is None


@pytest.mark.parametrize("value", ("localhost:8000", "ftp://agent", "http://"))
def test_get_agent_url__invalid__raises(value):
    with pytest.raises(ValueError, match="Invalid coverage agent url"):
        get_agent_url(value)
