# agents/option_formatter.py
"""OptionFormatter: turns flight, hotel and activity results into selectable travel options."""
from __future__ import annotations

import asyncio
import logging
import re
from typing import Awaitable, List, Optional, TypeVar

from agents.activity_agent import ActivityAgent
from config import FULL_SEARCH_MAX_FLIGHTS, FULL_SEARCH_MAX_HOTELS
from tools.errors import ValidationError
from tools.flight import FlightSearchClient, FlightSearchParams
from tools.hotels import HOTEL_IMAGE_URL, HotelSearchClient, HotelSearchParams
from tools.images import ImageSearchClient, placeholder_image_url
from workflows.schemas import (
    Activity,
    ActivityDetails,
    FlightDetails,
    FlightOffer,
    HotelDetails,
    HotelOffer,
    TravelOption,
    TravelPreferences,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

FLIGHT_IMAGE_URL = (
    "https://images.unsplash.com/photo-1436491865332-7a61a109cc05"
    "?ixlib=rb-4.0.3&auto=format&fit=crop&w=200"
)

_DURATION_RE = re.compile(r"^P(?:(\d+)D)?T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$")


# ==================== LABELS ====================

def format_duration(value: Optional[str]) -> str:
    """ISO-8601 duration to a short label: ``PT7H30M`` → ``7h 30m``.

    Anything that does not parse is returned unchanged.
    """
    if not value:
        return ""
    match = _DURATION_RE.match(value.strip())
    if not match or not any(match.groups()):
        return value
    days, hours, minutes, _ = (int(g) if g else 0 for g in match.groups())
    hours += days * 24
    parts = [f"{n}{unit}" for n, unit in ((hours, "h"), (minutes, "m")) if n]
    return " ".join(parts) or "0m"


def stops_label(stops: int) -> str:
    if stops <= 0:
        return "Nonstop"
    return f"{stops} stop" if stops == 1 else f"{stops} stops"


def trip_label(return_date: Optional[str]) -> str:
    return "Round-trip" if return_date else "One-way"


# ==================== MAPPING ====================

def flight_option(offer: FlightOffer) -> TravelOption:
    carrier = offer.carrier or "Unknown airline"
    duration = format_duration(offer.duration)
    first = offer.segments[0] if offer.segments else None
    outbound_last = offer.segments[max(0, offer.stops)] if len(offer.segments) > offer.stops else None
    return TravelOption(
        id=f"flight-{offer.id}",
        title=f"{trip_label(offer.return_date)} • {carrier} • {stops_label(offer.stops)} • {duration}",
        description=f"{offer.origin} → {offer.destination}",
        image_src=FLIGHT_IMAGE_URL,
        type="flight",
        price=offer.price,
        rating=None,
        time=offer.departure_time,
        duration=duration,
        location=f"{offer.origin} ➔ {offer.destination}",
        details=FlightDetails(
            airline=carrier,
            flight_number=first.flight_number if first else "",
            departure_airport=first.departure_airport if first else offer.origin,
            arrival_airport=outbound_last.arrival_airport if outbound_last else offer.destination,
            departure_time=offer.departure_time,
            arrival_time=offer.arrival_time,
            duration=duration,
            stops=offer.stops,
            stops_label=stops_label(offer.stops),
            trip_type=trip_label(offer.return_date),
            cabin_class=offer.cabin_class,
            price_is_estimate=offer.price_is_estimate,
            segments=list(offer.segments),
        ),
    )


def hotel_option(hotel: HotelOffer) -> TravelOption:
    return TravelOption(
        id=f"hotel-{hotel.id}",
        title=hotel.name,
        description=hotel.description or hotel.address,
        image_src=hotel.image_url or HOTEL_IMAGE_URL,
        type="hotel",
        price=hotel.price,
        rating=hotel.rating,
        location=hotel.address,
        details=HotelDetails(
            address=hotel.address,
            amenities=list(hotel.amenities),
            check_in=hotel.check_in,
            check_out=hotel.check_out,
            price_is_estimate=hotel.price_is_estimate,
        ),
    )


def activity_option(activity: Activity, image_src: str) -> TravelOption:
    return TravelOption(
        id=f"activity-{activity.id}",
        title=activity.name,
        description=activity.description or activity.brief,
        image_src=image_src,
        type="activity",
        price=activity.estimated_price,
        rating=activity.rating,
        duration=activity.duration,
        location=activity.location,
        details=ActivityDetails(brief=activity.brief, categories=list(activity.categories)),
    )


def dedupe(options: List[TravelOption]) -> List[TravelOption]:
    seen = set()
    unique: List[TravelOption] = []
    for option in options:
        if option.id in seen:
            continue
        seen.add(option.id)
        unique.append(option)
    return unique


# ==================== FORMATTER ====================

class OptionFormatter:
    """Builds the full option list shown in the selection view."""

    def __init__(
        self,
        flight_client: Optional[FlightSearchClient] = None,
        hotel_client: Optional[HotelSearchClient] = None,
        activity_agent: Optional[ActivityAgent] = None,
        image_client: Optional[ImageSearchClient] = None,
    ):
        self.flight_client = flight_client or FlightSearchClient()
        self.hotel_client = hotel_client or HotelSearchClient()
        self.activity_agent = activity_agent or ActivityAgent()
        self.image_client = image_client or ImageSearchClient()

    @staticmethod
    async def _category(name: str, call: Awaitable[List[T]]) -> List[T]:
        try:
            return await call
        except ValidationError as exc:
            logger.warning("Skipping %s options: %s", name, exc)
            return []

    async def _search_flights(self, preferences: TravelPreferences) -> List[FlightOffer]:
        params = FlightSearchParams.from_preferences(preferences, max_results=FULL_SEARCH_MAX_FLIGHTS)
        return await self.flight_client.search(params)

    async def _search_hotels(self, preferences: TravelPreferences) -> List[HotelOffer]:
        params = HotelSearchParams.from_preferences(preferences, max_results=FULL_SEARCH_MAX_HOTELS)
        return await self.hotel_client.search(params)

    async def _image_for(self, activity: Activity, destination: str) -> str:
        try:
            images = await self.image_client.search(f"{activity.name},{destination}", 1)
        except Exception as exc:
            logger.warning("Image lookup for %r failed: %s", activity.name, exc)
            images = []
        for image in images:
            if image.best_url:
                return image.best_url
        return placeholder_image_url(destination, activity.name)

    async def generate_options(self, preferences: TravelPreferences) -> List[TravelOption]:
        """Flights, then hotels, then activities, each in provider order."""
        destination = preferences.destination or preferences.destination_code or ""
        logger.info("Generating travel options for %s", destination or "unknown destination")

        flights, hotels, activities = await asyncio.gather(
            self._category("flight", self._search_flights(preferences)),
            self._category("hotel", self._search_hotels(preferences)),
            self._category("activity", self.activity_agent.suggest(preferences)),
        )

        images = await asyncio.gather(*(self._image_for(a, destination) for a in activities))

        options = (
            [flight_option(f) for f in flights]
            + [hotel_option(h) for h in hotels]
            + [activity_option(a, img) for a, img in zip(activities, images)]
        )
        options = dedupe(options)
        logger.info(
            "Generated %d options (%d flights, %d hotels, %d activities)",
            len(options), len(flights), len(hotels), len(activities),
        )
        return options
