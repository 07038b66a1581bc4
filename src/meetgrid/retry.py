"""Retry with exponential backoff for calendar provider calls."""

from __future__ import annotations

import asyncio
import logging
import urllib.error
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_HTTP_CODES = {429, 500, 502, 503, 504}


async def retry_async(
    fn: Callable[..., T],
    *args,
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    label: str = "api_call",
    **kwargs,
) -> T:
    """Call fn with retries and exponential backoff.

    Only transient provider errors are retried, see `_is_retryable`. Anything
    else (bad credentials, a 404 for a deleted calendar) is raised
    on the first attempt, as is the last transient error once retries run out.
    """
    last_exc = None
    for attempt in range(max_retries + 1):
        try:
            return fn(*args, **kwargs)
        except Exception as exc:
            last_exc = exc
            if not _is_retryable(exc) or attempt == max_retries:
                raise
            delay = min(base_delay * (2 ** attempt), max_delay)
            logger.warning(
                f"{label} failed (attempt {attempt + 1}/{max_retries + 1}): {exc}. "
                f"Retrying in {delay:.1f}s"
            )
            await asyncio.sleep(delay)

    raise last_exc  # type: ignore[misc]


def _is_retryable(exc: Exception) -> bool:
    """Check if an exception is transient and worth retrying.

    Transient means:

    - a Google API `HttpError` whose status is 429 (rate limited) or
      500, 502, 503, 504 (server side)
    - a `urllib.error.HTTPError` with one of the same codes
    - any other `urllib.error.URLError` (DNS failure, refused connection)
    - `ConnectionError`, `TimeoutError` and other `OSError`s from the socket
    """
    # googleapiclient.errors.HttpError carries the response in .resp
    if type(exc).__name__ == "HttpError" and hasattr(exc, "resp"):
        return int(exc.resp.get("status", 0)) in TRANSIENT_HTTP_CODES  # type: ignore[union-attr]

    # HTTPError before URLError (HTTPError is a subclass)
    if isinstance(exc, urllib.error.HTTPError):
        return exc.code in TRANSIENT_HTTP_CODES
    if isinstance(exc, urllib.error.URLError):
        return True

    if isinstance(exc, (ConnectionError, TimeoutError, OSError)):
        return True

    return False
