# privshare/backend/net.py
"""
HTTP plumbing shared by the record store, the retrieval cascade and the
upload connectivity probe.

Calls go through requests Sessions and are moved off the event loop with
asyncio.to_thread so the orchestrator and cascade stay coroutine based.
"""

import asyncio
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

RETRY_METHODS = frozenset(["GET", "POST", "HEAD"])


def make_session(retries: int = 0, backoff_factor: float = 0.5) -> requests.Session:
    """Create a requests Session with retry policy."""
    session = requests.Session()

    retry = Retry(
        total=retries,
        backoff_factor=backoff_factor,
        status_forcelist=[500, 502, 503, 504],
        allowed_methods=RETRY_METHODS,
        raise_on_status=False,
    )

    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    return session


async def request(session: requests.Session, method: str, url: str, **kwargs: Any) -> requests.Response:
    """Run a blocking session request in a worker thread."""
    return await asyncio.to_thread(session.request, method, url, **kwargs)


def describe_status(resp: requests.Response) -> str:
    return f"{resp.status_code} {resp.reason or ''}".strip()
