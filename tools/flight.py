# tools/flight.py
"""
Flight search via the Amadeus Flight Offers Search API (v2).

Usage:
    from tools.flight import FlightSearchClient, FlightSearchParams
    client = FlightSearchClient()
    offers = await client.search(FlightSearchParams(
        origin="MIA", destination="BOD",
        departure_date="2025-06-05", return_date="2025-07-08",
    ))
    # returns list of FlightOffer(carrier, price, duration, stops, segments, source, ...)

Upstream failures and missing credentials fall back to deterministic mock
offers (``source="mock"``); missing or malformed required input raises
``ValidationError`` before any request is sent.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from config import AMADEUS_BASE_URL, HTTP_MAX_ATTEMPTS
from tools.amadeus_auth import AmadeusAuth, get_amadeus_auth
from tools.errors import ParseFailure, UpstreamFailure, ValidationError
from tools.fallback import MOCK_SOURCE, seeded_rng, with_fallback
from tools.http import client_scope, request_json
from tools.locations import is_canonical_date, location_code_for, normalize_date
from workflows.schemas import FlightOffer, ItinerarySegment, TravelPreferences

logger = logging.getLogger(__name__)

FLIGHT_OFFERS_PATH = "/v2/shopping/flight-offers"

# Shown when an offer arrives without a usable price
PLACEHOLDER_PRICE = 750.0

CABIN_CLASSES = ("ECONOMY", "PREMIUM_ECONOMY", "BUSINESS", "FIRST")

MOCK_AIRLINES = ["AF", "AA", "DL", "UA", "BA"]
MOCK_HUBS = ["JFK", "CDG", "LHR", "AMS", "FRA"]


class FlightSearchParams(BaseModel):
    origin: Optional[str] = Field(None, description="IATA code of the departure city/airport")
    destination: Optional[str] = Field(None, description="IATA code of the arrival city/airport")
    departure_date: Optional[str] = Field(None, description="YYYY-MM-DD")
    return_date: Optional[str] = Field(None, description="YYYY-MM-DD; omit for one-way")
    adults: int = Field(1, ge=1)
    travel_class: str = "ECONOMY"
    non_stop: bool = False
    included_airline_codes: List[str] = Field(default_factory=list)
    excluded_airline_codes: List[str] = Field(default_factory=list)
    currency: str = "USD"
    max_results: int = Field(10, ge=1)

    @classmethod
    def from_preferences(cls, prefs: TravelPreferences, max_results: int = 10) -> "FlightSearchParams":
        cabin = (prefs.flights.cabin_class or "ECONOMY").strip().upper().replace(" ", "_")
        return cls(
            origin=location_code_for(prefs.origin, prefs.origin_code),
            destination=location_code_for(prefs.destination, prefs.destination_code),
            departure_date=normalize_date(prefs.dates.departure) or None,
            return_date=normalize_date(prefs.dates.return_date) or None,
            adults=prefs.travelers or 1,
            travel_class=cabin if cabin in CABIN_CLASSES else "ECONOMY",
            non_stop=bool(prefs.flights.direct),
            included_airline_codes=[
                a.upper() for a in prefs.flights.airlines if len(a) == 2 and a.isalnum()
            ],
            max_results=max_results,
        )

    def check_required(self) -> None:
        missing = [
            name for name in ("origin", "destination", "departure_date") if not getattr(self, name)
        ]
        if missing:
            raise ValidationError(f"Flight search requires: {', '.join(missing)}")
        if not is_canonical_date(self.departure_date):
            raise ValidationError(f"departure_date must be YYYY-MM-DD, got {self.departure_date!r}")
        if self.return_date and not is_canonical_date(self.return_date):
            raise ValidationError(f"return_date must be YYYY-MM-DD, got {self.return_date!r}")

    def to_query(self) -> Dict[str, Any]:
        query: Dict[str, Any] = {
            "originLocationCode": self.origin,
            "destinationLocationCode": self.destination,
            "departureDate": self.departure_date,
            "adults": self.adults,
            "max": self.max_results,
            "currencyCode": self.currency,
            "travelClass": self.travel_class,
        }
        if self.return_date:
            query["returnDate"] = self.return_date
        if self.non_stop:
            query["nonStop"] = "true"
        if self.included_airline_codes:
            query["includedAirlineCodes"] = ",".join(self.included_airline_codes)
        elif self.excluded_airline_codes:
            # Amadeus rejects requests that carry both filters
            query["excludedAirlineCodes"] = ",".join(self.excluded_airline_codes)
        return query


# --- helpers ---
def _price_num(val: Any) -> Optional[float]:
    try:
        return float(val)
    except (TypeError, ValueError):
        return None


def _segment(raw: Dict[str, Any]) -> ItinerarySegment:
    departure = raw.get("departure") or {}
    arrival = raw.get("arrival") or {}
    carrier = str(raw.get("carrierCode") or "")
    number = str(raw.get("number") or "")
    return ItinerarySegment(
        carrier=carrier,
        flight_number=f"{carrier}{number}" if number else "",
        departure_airport=str(departure.get("iataCode") or ""),
        departure_time=departure.get("at"),
        arrival_airport=str(arrival.get("iataCode") or ""),
        arrival_time=arrival.get("at"),
        duration=raw.get("duration"),
    )


def _cabin_of(raw: Dict[str, Any], default: str) -> str:
    for pricing in raw.get("travelerPricings") or []:
        for fare in pricing.get("fareDetailsBySegment") or []:
            if fare.get("cabin"):
                return str(fare["cabin"])
    return default


def normalize_flight_offer(raw: Dict[str, Any], params: FlightSearchParams, index: int) -> FlightOffer:
    """Map one Amadeus flight-offer object into a ``FlightOffer``."""
    itineraries = [it for it in raw.get("itineraries") or [] if isinstance(it, dict)]
    legs = [[_segment(s) for s in it.get("segments") or []] for it in itineraries]
    outbound = legs[0] if legs else []

    validating = raw.get("validatingAirlineCodes") or []
    carrier = validating[0] if validating else (outbound[0].carrier if outbound else None)

    price_info = raw.get("price") or {}
    price = _price_num(price_info.get("grandTotal") or price_info.get("total"))

    return FlightOffer(
        id=str(raw.get("id") or index + 1),
        carrier=carrier or None,
        price=price if price is not None else PLACEHOLDER_PRICE,
        currency=price_info.get("currency") or params.currency,
        price_is_estimate=price is None,
        duration=itineraries[0].get("duration") if itineraries else None,
        stops=max(0, len(outbound) - 1),
        trip_type="roundTrip" if len(itineraries) > 1 or params.return_date else "oneWay",
        cabin_class=_cabin_of(raw, params.travel_class),
        origin=params.origin,
        destination=params.destination,
        departure_date=params.departure_date,
        return_date=params.return_date,
        departure_time=outbound[0].departure_time if outbound else None,
        arrival_time=outbound[-1].arrival_time if outbound else None,
        segments=[segment for leg in legs for segment in leg],
        source="amadeus",
    )


def parse_flight_offers(payload: Any, params: FlightSearchParams) -> List[FlightOffer]:
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, list):
        raise ParseFailure("Flight offers response has no data list")
    try:
        return [
            normalize_flight_offer(raw, params, index)
            for index, raw in enumerate(data)
            if isinstance(raw, dict)
        ]
    except (AttributeError, TypeError, ValueError) as exc:
        raise ParseFailure(f"Unexpected flight offer shape: {exc}") from exc


# --- mock data ---
def _mock_leg(rng, origin: str, destination: str, day: str, carrier: str, number: int, stops: int) -> tuple:
    hours = rng.randint(7, 12)
    minutes = rng.choice([10, 25, 30, 45, 55])
    start = datetime.fromisoformat(f"{day}T{rng.randint(6, 20):02d}:{rng.choice([0, 15, 30, 45]):02d}:00")
    total = timedelta(hours=hours, minutes=minutes)

    stations = [origin] + MOCK_HUBS[number % len(MOCK_HUBS):][:stops] + [destination]
    span = total / (len(stations) - 1)
    segments = []
    for i in range(len(stations) - 1):
        seg_start = start + span * i
        segments.append(
            ItinerarySegment(
                carrier=carrier,
                flight_number=f"{carrier}{number + i}",
                departure_airport=stations[i],
                departure_time=seg_start.isoformat(),
                arrival_airport=stations[i + 1],
                arrival_time=(seg_start + span).isoformat(),
                duration=f"PT{int(span.total_seconds() // 3600)}H{int(span.total_seconds() % 3600 // 60)}M",
            )
        )
    return f"PT{hours}H{minutes}M", segments


def generate_mock_flights(params: FlightSearchParams, count: int = 5) -> List[FlightOffer]:
    """Deterministic synthetic offers; identical params give identical output."""
    rng = seeded_rng(
        "flights",
        params.origin,
        params.destination,
        params.departure_date,
        params.return_date,
        params.adults,
        params.travel_class,
    )
    departure_day = params.departure_date if is_canonical_date(params.departure_date) else "2025-01-01"
    offers: List[FlightOffer] = []
    for i in range(count):
        carrier = MOCK_AIRLINES[i % len(MOCK_AIRLINES)]
        stops = 0 if params.non_stop else rng.choice([0, 0, 1])
        duration, outbound = _mock_leg(
            rng, params.origin, params.destination, departure_day, carrier, 1000 + i, stops
        )
        segments = list(outbound)
        inbound_stops = 0
        if params.return_date and is_canonical_date(params.return_date):
            inbound_stops = 0 if params.non_stop else rng.choice([0, 1])
            _, inbound = _mock_leg(
                rng, params.destination, params.origin, params.return_date, carrier, 2000 + i, inbound_stops
            )
            segments.extend(inbound)
        offers.append(
            FlightOffer(
                id=f"mock-{i + 1}",
                carrier=carrier,
                price=float(400 + i * 50),
                currency=params.currency,
                duration=duration,
                stops=stops,
                trip_type="roundTrip" if params.return_date else "oneWay",
                cabin_class=params.travel_class,
                origin=params.origin or "",
                destination=params.destination or "",
                departure_date=params.departure_date or "",
                return_date=params.return_date,
                departure_time=outbound[0].departure_time,
                arrival_time=outbound[-1].arrival_time,
                segments=segments,
                source=MOCK_SOURCE,
            )
        )
    return offers


# --- core service ---
class FlightSearchClient:
    """Flight offers for a route, live from Amadeus or mocked on failure."""

    def __init__(
        self,
        auth: Optional[AmadeusAuth] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = AMADEUS_BASE_URL,
        max_attempts: int = HTTP_MAX_ATTEMPTS,
    ):
        self._auth = auth
        self._client = client
        self.base_url = base_url.rstrip("/")
        self.max_attempts = max_attempts

    @property
    def auth(self) -> AmadeusAuth:
        return self._auth or get_amadeus_auth()

    async def search(self, params: FlightSearchParams) -> List[FlightOffer]:
        params.check_required()
        return await with_fallback(
            "flight_search",
            lambda: self._search_live(params),
            lambda: generate_mock_flights(params),
        )

    async def _search_live(self, params: FlightSearchParams) -> List[FlightOffer]:
        auth = self.auth
        async with client_scope(self._client) as client:
            token = await auth.get_valid_token(client)
            try:
                payload = await request_json(
                    client,
                    "GET",
                    self.base_url + FLIGHT_OFFERS_PATH,
                    params=params.to_query(),
                    headers={"Authorization": f"Bearer {token}"},
                    max_attempts=self.max_attempts,
                )
            except UpstreamFailure as exc:
                if exc.status_code == 401:
                    auth.invalidate()
                raise
        offers = parse_flight_offers(payload, params)
        logger.info(
            "Amadeus returned %d flight offers %s→%s", len(offers), params.origin, params.destination
        )
        return offers
