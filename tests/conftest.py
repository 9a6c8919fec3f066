"""Pytest fixtures for offline tests: fake LLMs and canned provider responses."""

from __future__ import annotations

import json
import os
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional, Union

import httpx
import pytest

# Ensure placeholder keys exist so modules that read env on import succeed.
os.environ.setdefault("GOOGLE_API_KEY", "test-google-key")
os.environ.setdefault("AMADEUS_CLIENT_ID", "test-amadeus-id")
os.environ.setdefault("AMADEUS_CLIENT_SECRET", "test-amadeus-secret")
os.environ.setdefault("UNSPLASH_ACCESS_KEY", "test-unsplash-key")

from tools.amadeus_auth import reset_amadeus_auth  # noqa: E402

TOKEN_PATH = "/v1/security/oauth2/token"

TOKEN_BODY = {"access_token": "test-token", "expires_in": 1799, "token_type": "Bearer"}


class FakeModel:
    """Fakes a LangChain chat model's ``ainvoke``.

    Pre-seed a queue of payloads; dicts are returned as JSON text, strings as-is.
    An ``error`` is raised on every call instead.
    """

    def __init__(self, queue: Optional[List[Any]] = None, error: Optional[Exception] = None):
        self.queue = list(queue) if queue else []
        self.error = error
        self.calls: List[Any] = []

    async def ainvoke(self, messages):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        payload = self.queue.pop(0) if self.queue else {}
        content = payload if isinstance(payload, (str, list)) else json.dumps(payload)
        return SimpleNamespace(content=content)


Reply = Union[httpx.Response, Dict[str, Any], tuple, Callable[[httpx.Request], Any]]


class FakeProvider:
    """``httpx.MockTransport`` handler that answers by URL path suffix."""

    def __init__(self, routes: Optional[Dict[str, Reply]] = None):
        self.routes: Dict[str, Reply] = {TOKEN_PATH: TOKEN_BODY}
        self.routes.update(routes or {})
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for suffix, reply in self.routes.items():
            if not request.url.path.endswith(suffix):
                continue
            if callable(reply):
                reply = reply(request)
            if isinstance(reply, httpx.Response):
                return reply
            if isinstance(reply, list):
                # successive calls consume the list
                reply = reply.pop(0) if len(reply) > 1 else reply[0]
                if isinstance(reply, httpx.Response):
                    return reply
            status, body = reply if isinstance(reply, tuple) else (200, reply)
            return httpx.Response(status, json=body)
        return httpx.Response(404, json={"errors": [{"detail": "no route"}]})

    def calls_to(self, suffix: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(suffix)]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture(autouse=True)
def reset_shared_token_cache():
    reset_amadeus_auth()
    yield
    reset_amadeus_auth()


@pytest.fixture
def fake_model():
    """Factory that returns FakeModel objects."""

    def _factory(queue: Optional[List[Any]] = None, error: Optional[Exception] = None) -> FakeModel:
        return FakeModel(queue, error)

    return _factory


@pytest.fixture
def provider():
    """Factory that returns FakeProvider objects."""

    def _factory(routes: Optional[Dict[str, Reply]] = None) -> FakeProvider:
        return FakeProvider(routes)

    return _factory


def _segment(carrier, number, dep, dep_at, arr, arr_at, duration):
    return {
        "carrierCode": carrier,
        "number": number,
        "departure": {"iataCode": dep, "at": dep_at},
        "arrival": {"iataCode": arr, "at": arr_at},
        "duration": duration,
    }


@pytest.fixture
def flight_payload() -> Dict[str, Any]:
    """Two Amadeus offers: a nonstop round trip and a one-stop outbound with a priced return."""
    return {
        "data": [
            {
                "id": "1",
                "validatingAirlineCodes": ["AF"],
                "price": {"total": "812.40", "grandTotal": "812.40", "currency": "USD"},
                "itineraries": [
                    {
                        "duration": "PT7H30M",
                        "segments": [
                            _segment("AF", "91", "MIA", "2025-06-05T18:00:00", "CDG", "2025-06-06T08:30:00", "PT7H30M"),
                        ],
                    },
                    {
                        "duration": "PT8H10M",
                        "segments": [
                            _segment("AF", "90", "CDG", "2025-07-08T10:00:00", "MIA", "2025-07-08T14:10:00", "PT8H10M"),
                        ],
                    },
                ],
                "travelerPricings": [{"fareDetailsBySegment": [{"cabin": "ECONOMY"}]}],
            },
            {
                "id": "2",
                "validatingAirlineCodes": ["AF"],
                "price": {"total": "655", "currency": "USD"},
                "itineraries": [
                    {
                        "duration": "PT10H5M",
                        "segments": [
                            _segment("AF", "1", "MIA", "2025-06-05T09:00:00", "JFK", "2025-06-05T12:00:00", "PT3H"),
                            _segment("AF", "7", "JFK", "2025-06-05T14:00:00", "BOD", "2025-06-06T04:05:00", "PT7H5M"),
                        ],
                    },
                    {
                        "duration": "PT9H",
                        "segments": [
                            _segment("AF", "8", "BOD", "2025-07-08T09:00:00", "MIA", "2025-07-08T13:00:00", "PT9H"),
                        ],
                    },
                ],
            },
        ]
    }


@pytest.fixture
def hotel_list_payload() -> Dict[str, Any]:
    return {"data": [{"hotelId": f"HTBOD{i:03d}", "name": f"Hotel {i}"} for i in range(1, 8)]}


@pytest.fixture
def hotel_offers_payload() -> Dict[str, Any]:
    return {
        "data": [
            {
                "hotel": {
                    "hotelId": "HTBOD001",
                    "name": "Quai Hotel",
                    "rating": "4",
                    "address": {"lines": ["1 Quai des Chartrons"], "cityName": "Bordeaux"},
                    "amenities": ["WIFI", "SPA"],
                },
                "offers": [
                    {
                        "id": "OFF1",
                        "checkInDate": "2025-06-05",
                        "checkOutDate": "2025-06-08",
                        "price": {"total": "900.00", "currency": "USD"},
                        "room": {"description": {"text": "Deluxe double room"}},
                    }
                ],
            },
            {
                "hotel": {"hotelId": "HTBOD002", "name": "Petit Hotel", "cityCode": "BOD"},
                "offers": [{"id": "OFF2", "price": {"currency": "USD"}}],
            },
        ]
    }
