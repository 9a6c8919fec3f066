# tools/http.py
"""Shared async HTTP plumbing for the provider adapters.

Every adapter goes through :func:`request_json`, which retries transient
statuses with tenacity and turns transport problems into
:class:`~tools.errors.UpstreamFailure` / :class:`~tools.errors.ParseFailure`.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from config import HTTP_MAX_ATTEMPTS, HTTP_TIMEOUT_S
from tools.errors import ParseFailure, UpstreamFailure

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def _is_retryable_error(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS
    return isinstance(exc, httpx.TransportError)


@asynccontextmanager
async def client_scope(client: Optional[httpx.AsyncClient]) -> AsyncIterator[httpx.AsyncClient]:
    """Yield ``client`` unchanged, or a short-lived client closed on exit."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_S) as owned:
        yield owned


async def request_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    max_attempts: int = HTTP_MAX_ATTEMPTS,
    **kwargs: Any,
) -> Any:
    """Perform a request and return the decoded JSON body."""
    try:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception(_is_retryable_error),
            wait=wait_exponential(min=0.5, max=6),
            stop=stop_after_attempt(max(1, max_attempts)),
            reraise=True,
        ):
            with attempt:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise UpstreamFailure(
            f"{method} {url} returned {exc.response.status_code}",
            status_code=exc.response.status_code,
        ) from exc
    except httpx.HTTPError as exc:
        raise UpstreamFailure(f"{method} {url} failed: {exc}") from exc

    try:
        return response.json()
    except ValueError as exc:
        raise ParseFailure(f"{method} {url} returned a non-JSON body") from exc
