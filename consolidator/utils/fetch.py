# consolidator/utils/fetch.py

from typing import Awaitable, Callable, Optional, Sequence, TypeVar

import httpx

from consolidator.core.exceptions import AllCandidatesFailedError
from consolidator.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
C = TypeVar("C")


async def first_available(
        candidates: Sequence[C],
        fetch: Callable[[C], Awaitable[T]],
        label: str = "fetch",
) -> T:
    """
    Tries ``fetch`` on each candidate in order and returns the first result
    that does not raise. Raises AllCandidatesFailedError when every candidate
    fails (or the list is empty).
    """
    last_error: Optional[Exception] = None
    for candidate in candidates:
        try:
            return await fetch(candidate)
        except Exception as e:
            last_error = e
            logger.debug(f"{label}: candidate {candidate} failed: {type(e).__name__} - {e}")
    raise AllCandidatesFailedError(
        f"{label}: all {len(candidates)} candidate(s) failed"
        + (f" (last error: {last_error})" if last_error else "")
    )


async def fetch_json(http: httpx.AsyncClient, url: str):
    response = await http.get(url, follow_redirects=True)
    response.raise_for_status()
    return response.json()


async def probe_url(http: httpx.AsyncClient, url: str) -> str:
    """Succeeds with ``url`` when it answers a GET with a non-error status."""
    async with http.stream("GET", url, follow_redirects=True) as response:
        response.raise_for_status()
    return url
