# tools/amadeus_auth.py
"""OAuth2 client-credentials token cache for the Amadeus self-service APIs."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

import httpx

from config import (
    AMADEUS_TOKEN_URL,
    TOKEN_EXPIRY_MARGIN_S,
    get_amadeus_client_id,
    get_amadeus_client_secret,
)
from tools.errors import ParseFailure, UpstreamFailure
from tools.http import request_json

logger = logging.getLogger(__name__)

DEFAULT_EXPIRES_IN_S = 1800


class AmadeusAuth:
    """Owns one bearer token and refreshes it only when it is about to expire.

    Check-and-refresh runs under an ``asyncio.Lock``, so concurrent callers
    wait for a single in-flight refresh instead of starting their own.
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        token_url: str = AMADEUS_TOKEN_URL,
        *,
        expiry_margin_s: float = TOKEN_EXPIRY_MARGIN_S,
        clock: Callable[[], float] = time.time,
    ):
        self.client_id = client_id if client_id is not None else get_amadeus_client_id()
        self.client_secret = client_secret if client_secret is not None else get_amadeus_client_secret()
        self.token_url = token_url
        self.expiry_margin_s = expiry_margin_s
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at: float = 0.0
        self._lock = asyncio.Lock()

    @property
    def has_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def is_valid(self) -> bool:
        return self._token is not None and self._clock() < self._expires_at

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = 0.0

    async def get_valid_token(self, client: httpx.AsyncClient) -> str:
        if self.is_valid():
            return self._token
        async with self._lock:
            # another caller may have refreshed while we waited
            if self.is_valid():
                return self._token
            await self._refresh(client)
            return self._token

    async def _refresh(self, client: httpx.AsyncClient) -> None:
        if not self.has_credentials:
            raise UpstreamFailure("Amadeus credentials are not configured")

        payload = await request_json(
            client,
            "POST",
            self.token_url,
            data={
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            raise ParseFailure("Amadeus token response has no access_token")

        try:
            expires_in = float(payload.get("expires_in") or DEFAULT_EXPIRES_IN_S)
        except (TypeError, ValueError):
            expires_in = DEFAULT_EXPIRES_IN_S

        self._token = str(token)
        self._expires_at = self._clock() + expires_in - self.expiry_margin_s
        logger.info("Refreshed Amadeus access token (expires in %ss)", int(expires_in))


_shared_auth: Optional[AmadeusAuth] = None


def get_amadeus_auth() -> AmadeusAuth:
    """Process-wide token cache shared by the flight and hotel clients."""
    global _shared_auth
    if _shared_auth is None:
        _shared_auth = AmadeusAuth()
    return _shared_auth


def reset_amadeus_auth() -> None:
    global _shared_auth
    _shared_auth = None
