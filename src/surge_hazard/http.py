"""Shared HTTP session with retry/backoff for elevation downloads."""

from __future__ import annotations

from requests import Session
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from surge_hazard import __version__

USER_AGENT = f"surge-hazard/{__version__}"


def create_session(
    retries: int = 3,
    backoff_factor: float = 1.0,
    status_forcelist: tuple[int, ...] = (429, 500, 502, 503, 504),
) -> Session:
    """Create a requests Session with exponential backoff retry.

    ERDDAP servers throttle large griddap requests, so the default backoff
    (1s, 2s, 4s) is gentler than a plain API client would need. Only GET
    is retried.
    """
    retry = Retry(
        total=retries,
        backoff_factor=backoff_factor,
        status_forcelist=status_forcelist,
        allowed_methods=["GET"],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session = Session()
    session.headers["User-Agent"] = USER_AGENT
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session
