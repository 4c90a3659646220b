import os
from typing import Optional
from urllib.parse import urlparse

AGENT_URL_ENV_VAR = "TESTWISE_AGENT_URL"


def get_agent_url(value: Optional[str] = None) -> Optional[str]:
    """Resolve the coverage agent base url.

    An explicit ``value`` wins over the ``TESTWISE_AGENT_URL`` environment
    variable. A blank setting means reporting is disabled and ``None`` is
    returned. Anything else must be an absolute http(s) url, otherwise
    ``ValueError`` is raised.
    """
    if value is None:
        value = os.environ.get(AGENT_URL_ENV_VAR, "")
    value = value.strip()
    if not value:
        return None
    validate_agent_url(value)
    return value


def validate_agent_url(url: str) -> None:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Invalid coverage agent url: {url!r}")
