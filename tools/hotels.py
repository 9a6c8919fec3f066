# tools/hotels.py
"""
Hotel search via Amadeus: hotel list by city, then hotel offers for those ids.

Usage:
    from tools.hotels import HotelSearchClient, HotelSearchParams
    hotels = await HotelSearchClient().search(HotelSearchParams(
        city_code="BOD", check_in="2025-06-05", check_out="2025-07-08", adults=2,
    ))
    # returns list of HotelOffer(name, address, price (nightly), rating, amenities, source, ...)
"""
from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from config import AMADEUS_BASE_URL, HTTP_MAX_ATTEMPTS
from tools.amadeus_auth import AmadeusAuth, get_amadeus_auth
from tools.errors import ParseFailure, UpstreamFailure, ValidationError
from tools.fallback import MOCK_SOURCE, with_fallback
from tools.http import client_scope, request_json
from tools.locations import is_canonical_date, location_code_for, normalize_date
from workflows.schemas import HotelOffer, TravelPreferences

logger = logging.getLogger(__name__)

HOTELS_BY_CITY_PATH = "/v1/reference-data/locations/hotels/by-city"
HOTEL_OFFERS_PATH = "/v3/shopping/hotel-offers"

# How many hotel ids from the city listing are priced
HOTEL_ID_LIMIT = 5
SEARCH_RADIUS_KM = 50

PLACEHOLDER_NIGHTLY_PRICE = 200.0
HOTEL_IMAGE_URL = (
    "https://images.unsplash.com/photo-1445991842772-097fea258e7b"
    "?ixlib=rb-4.0.3&auto=format&fit=crop&w=1080"
)


# Amenity filter values accepted by the hotel list endpoint
HOTEL_AMENITIES = {
    "SWIMMING_POOL", "SPA", "FITNESS_CENTER", "AIR_CONDITIONING", "RESTAURANT",
    "PARKING", "PETS_ALLOWED", "AIRPORT_SHUTTLE", "BUSINESS_CENTER", "WIFI",
    "ROOM_SERVICE", "BEACH", "JACUZZI", "SAUNA", "MASSAGE", "KITCHEN",
    "KIDS_WELCOME", "MINIBAR", "TELEVISION",
}
_AMENITY_ALIASES = {"POOL": "SWIMMING_POOL", "GYM": "FITNESS_CENTER", "WI-FI": "WIFI", "FREE_WIFI": "WIFI"}


def amenity_codes(values: List[str]) -> List[str]:
    """Translate free-text amenities into the provider's filter vocabulary, dropping unknowns."""
    codes: List[str] = []
    for value in values:
        code = value.strip().upper().replace(" ", "_")
        code = _AMENITY_ALIASES.get(code, code)
        if code in HOTEL_AMENITIES and code not in codes:
            codes.append(code)
    return codes


class HotelSearchParams(BaseModel):
    city_code: Optional[str] = Field(None, description="IATA city code, e.g. 'PAR'")
    location_name: Optional[str] = Field(None, description="Human-readable destination, used for display")
    check_in: Optional[str] = Field(None, description="YYYY-MM-DD")
    check_out: Optional[str] = Field(None, description="YYYY-MM-DD; defaults to one night")
    adults: int = Field(1, ge=1)
    rooms: int = Field(1, ge=1)
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    ratings: List[int] = Field(default_factory=list, description="Star ratings 1-5 to include")
    amenities: List[str] = Field(default_factory=list)
    currency: str = "USD"
    max_results: int = Field(10, ge=1)

    @classmethod
    def from_preferences(cls, prefs: TravelPreferences, max_results: int = 10) -> "HotelSearchParams":
        return cls(
            city_code=location_code_for(prefs.destination, prefs.destination_code),
            location_name=prefs.destination or prefs.destination_code,
            check_in=normalize_date(prefs.dates.departure) or None,
            check_out=normalize_date(prefs.dates.return_date) or None,
            adults=prefs.travelers or 1,
            amenities=amenity_codes(prefs.accommodation.amenities),
            max_results=max_results,
        )

    def check_required(self) -> None:
        if not self.city_code:
            raise ValidationError("Hotel search requires a city code")
        if not self.check_in:
            raise ValidationError("Hotel search requires a check-in date")
        if not is_canonical_date(self.check_in):
            raise ValidationError(f"check_in must be YYYY-MM-DD, got {self.check_in!r}")
        if self.check_out and not is_canonical_date(self.check_out):
            raise ValidationError(f"check_out must be YYYY-MM-DD, got {self.check_out!r}")

    @property
    def effective_check_out(self) -> str:
        if self.check_out and self.check_out > self.check_in:
            return self.check_out
        return (date.fromisoformat(self.check_in) + timedelta(days=1)).isoformat()

    @property
    def nights(self) -> int:
        return max(1, (date.fromisoformat(self.effective_check_out) - date.fromisoformat(self.check_in)).days)

    def list_query(self) -> Dict[str, Any]:
        query: Dict[str, Any] = {
            "cityCode": self.city_code,
            "radius": SEARCH_RADIUS_KM,
            "radiusUnit": "KM",
        }
        if self.ratings:
            query["ratings"] = ",".join(str(r) for r in self.ratings)
        if self.amenities:
            query["amenities"] = ",".join(self.amenities)
        return query

    def offers_query(self, hotel_ids: List[str]) -> Dict[str, Any]:
        query: Dict[str, Any] = {
            "hotelIds": ",".join(hotel_ids),
            "checkInDate": self.check_in,
            "checkOutDate": self.effective_check_out,
            "adults": self.adults,
            "roomQuantity": self.rooms,
            "currency": self.currency,
        }
        if self.min_price is not None or self.max_price is not None:
            low = int(self.min_price or 0)
            high = int(self.max_price) if self.max_price is not None else ""
            query["priceRange"] = f"{low}-{high}"
        return query


# --- helpers ---
def _price_num(val: Any) -> Optional[float]:
    try:
        return float(val)
    except (TypeError, ValueError):
        return None


def _nights_between(check_in: Optional[str], check_out: Optional[str], default: int) -> int:
    try:
        return max(1, (date.fromisoformat(check_out) - date.fromisoformat(check_in)).days)
    except (TypeError, ValueError):
        return default


def _address(hotel: Dict[str, Any]) -> str:
    address = hotel.get("address") or {}
    parts = [str(line) for line in address.get("lines") or [] if line]
    if address.get("cityName"):
        parts.append(str(address["cityName"]))
    return ", ".join(parts) or str(hotel.get("cityCode") or "")


def normalize_hotel_offer(raw: Dict[str, Any], params: HotelSearchParams) -> HotelOffer:
    """Map one Amadeus hotel-offers entry into a ``HotelOffer`` with a nightly price."""
    hotel = raw.get("hotel") or {}
    offers = raw.get("offers") or []
    offer = offers[0] if offers else {}

    check_in = offer.get("checkInDate") or params.check_in
    check_out = offer.get("checkOutDate") or params.effective_check_out
    total = _price_num((offer.get("price") or {}).get("total"))
    nights = _nights_between(check_in, check_out, params.nights)

    hotel_id = str(hotel.get("hotelId") or offer.get("id") or "")
    room_text = ((offer.get("room") or {}).get("description") or {}).get("text")

    return HotelOffer(
        id=str(offer.get("id") or hotel_id),
        hotel_id=hotel_id,
        name=str(hotel.get("name") or "Hotel"),
        address=_address(hotel),
        price=round(total / nights, 2) if total is not None else PLACEHOLDER_NIGHTLY_PRICE,
        total_price=total,
        currency=(offer.get("price") or {}).get("currency") or params.currency,
        price_is_estimate=total is None,
        rating=_price_num(hotel.get("rating")) or 0.0,
        amenities=[str(a) for a in hotel.get("amenities") or []],
        description=room_text,
        image_url=HOTEL_IMAGE_URL,
        check_in=check_in,
        check_out=check_out,
        source="amadeus",
    )


def parse_hotel_offers(payload: Any, params: HotelSearchParams) -> List[HotelOffer]:
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, list):
        raise ParseFailure("Hotel offers response has no data list")
    try:
        hotels = [normalize_hotel_offer(raw, params) for raw in data if isinstance(raw, dict)]
    except (AttributeError, TypeError, ValueError) as exc:
        raise ParseFailure(f"Unexpected hotel offer shape: {exc}") from exc
    return hotels[: params.max_results]


# --- mock data ---
_MOCK_HOTELS = [
    # (name template, rating, nightly USD, amenities, description)
    ("Grand Hotel {loc}", 4.8, 280.0, ["WIFI", "POOL", "SPA", "RESTAURANT"],
     "Elegant rooms in the heart of {loc} with a rooftop pool."),
    ("Boutique Stay", 4.6, 180.0, ["WIFI", "BREAKFAST"],
     "A small design hotel with individually styled rooms."),
    ("{loc} View Inn", 4.4, 210.0, ["WIFI", "PARKING", "BAR"],
     "Comfortable rooms overlooking the city skyline."),
    ("{loc} Budget Stay", 3.9, 120.0, ["WIFI"],
     "Simple, clean rooms close to public transport."),
    ("{loc} Luxury Suites", 4.9, 350.0, ["WIFI", "SPA", "FITNESS_CENTER", "ROOM_SERVICE"],
     "Spacious suites with concierge service and city views."),
]


def generate_mock_hotels(params: HotelSearchParams) -> List[HotelOffer]:
    """Five synthetic hotels keyed by the destination; identical params give identical output."""
    loc = (params.location_name or params.city_code or "City").strip().title()
    code = (params.city_code or loc[:3]).upper()
    check_out = params.effective_check_out if is_canonical_date(params.check_in) else params.check_out
    nights = params.nights if is_canonical_date(params.check_in) else 1

    hotels = []
    for i, (name, rating, nightly, amenities, description) in enumerate(_MOCK_HOTELS):
        hotels.append(
            HotelOffer(
                id=f"mock-{code}-{i + 1}",
                hotel_id=f"MOCK{code}{i + 1:02d}",
                name=name.format(loc=loc),
                address=f"{i + 1} Central Avenue, {loc}",
                price=nightly,
                total_price=nightly * nights,
                currency=params.currency,
                rating=rating,
                amenities=list(amenities),
                description=description.format(loc=loc),
                image_url=HOTEL_IMAGE_URL,
                check_in=params.check_in,
                check_out=check_out,
                source=MOCK_SOURCE,
            )
        )
    return hotels[: params.max_results]


# --- core service ---
class HotelSearchClient:
    """Priced hotel offers for a city, live from Amadeus or mocked on failure."""

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

    async def search(self, params: HotelSearchParams) -> List[HotelOffer]:
        params.check_required()
        return await with_fallback(
            "hotel_search",
            lambda: self._search_live(params),
            lambda: generate_mock_hotels(params),
        )

    async def _get(self, client: httpx.AsyncClient, token: str, path: str, query: Dict[str, Any]) -> Any:
        try:
            return await request_json(
                client,
                "GET",
                self.base_url + path,
                params=query,
                headers={"Authorization": f"Bearer {token}"},
                max_attempts=self.max_attempts,
            )
        except UpstreamFailure as exc:
            if exc.status_code == 401:
                self.auth.invalidate()
            raise

    async def _search_live(self, params: HotelSearchParams) -> List[HotelOffer]:
        async with client_scope(self._client) as client:
            token = await self.auth.get_valid_token(client)

            listing = await self._get(client, token, HOTELS_BY_CITY_PATH, params.list_query())
            entries = listing.get("data") if isinstance(listing, dict) else None
            if not isinstance(entries, list):
                raise ParseFailure("Hotel list response has no data list")
            hotel_ids = [str(e["hotelId"]) for e in entries if isinstance(e, dict) and e.get("hotelId")]
            hotel_ids = hotel_ids[:HOTEL_ID_LIMIT]
            if not hotel_ids:
                logger.info("No hotels listed for city %s", params.city_code)
                return []

            payload = await self._get(client, token, HOTEL_OFFERS_PATH, params.offers_query(hotel_ids))

        hotels = parse_hotel_offers(payload, params)
        logger.info("Amadeus returned %d hotel offers in %s", len(hotels), params.city_code)
        return hotels
