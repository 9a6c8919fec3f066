# tools/fallback.py
"""Uniform mock-data fallback for provider adapters."""
from __future__ import annotations

import hashlib
import logging
import random
from typing import Awaitable, Callable, TypeVar

from tools.errors import ParseFailure, UpstreamFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")

MOCK_SOURCE = "mock"


async def with_fallback(
    name: str,
    call: Callable[[], Awaitable[T]],
    mock_factory: Callable[[], T],
) -> T:
    """Run ``call``; on an upstream or parse failure return ``mock_factory()``.

    ``ValidationError`` and programming errors propagate untouched.
    """
    try:
        return await call()
    except (UpstreamFailure, ParseFailure) as exc:
        logger.warning("%s unavailable, serving mock data: %s", name, exc)
        return mock_factory()


def seeded_rng(*parts: object) -> random.Random:
    """Return a ``random.Random`` whose sequence depends only on ``parts``."""
    key = "|".join("" if part is None else str(part) for part in parts)
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
    return random.Random(int(digest[:16], 16))
