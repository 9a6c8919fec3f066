# agents/availability_agent.py
"""AvailabilityAgent: lightweight flight + hotel preview for a route."""
from __future__ import annotations

import asyncio
import logging
import math
from typing import Dict, List, Optional, Tuple

from agents.activity_agent import ACTIVITY_CATALOGUE, catalogue_categories
from config import FLEXIBLE_PRICING_THRESHOLD, QUICK_SEARCH_MAX_FLIGHTS, QUICK_SEARCH_MAX_HOTELS
from tools.errors import ValidationError
from tools.fallback import MOCK_SOURCE
from tools.flight import CABIN_CLASSES, FlightSearchClient, FlightSearchParams, generate_mock_flights
from tools.hotels import HotelSearchClient, HotelSearchParams, generate_mock_hotels
from workflows.schemas import (
    ActivityAvailability,
    AvailabilityAnalysis,
    FlightAvailability,
    FlightOffer,
    HotelAvailability,
    HotelOffer,
    PriceRange,
    QuickAvailabilitySnapshot,
    RawResults,
    TravelPreferences,
)

logger = logging.getLogger(__name__)

# Used when no flight offer carries a price
DEFAULT_PRICE_RANGE = (500.0, 1200.0)

HOTEL_CATEGORIES = ["luxury", "boutique", "budget"]


# ==================== AGGREGATION ====================

def flight_price_range(flights: List[FlightOffer]) -> Tuple[float, float]:
    prices = [f.price for f in flights if not f.price_is_estimate and f.price > 0]
    if not prices:
        return DEFAULT_PRICE_RANGE
    return min(prices), max(prices)


def distinct_airlines(flights: List[FlightOffer]) -> List[str]:
    airlines: List[str] = []
    for offer in flights:
        if offer.carrier and offer.carrier not in airlines:
            airlines.append(offer.carrier)
    return airlines


def distinct_stops(flights: List[FlightOffer]) -> List[int]:
    return sorted({offer.stops for offer in flights if offer.carrier})


def hotel_price_range(hotels: List[HotelOffer]) -> Optional[PriceRange]:
    prices = [h.price for h in hotels if h.price > 0]
    if not prices:
        return None
    return PriceRange(min=min(prices), max=max(prices))


def hotel_amenities(hotels: List[HotelOffer]) -> List[str]:
    amenities: List[str] = []
    for hotel in hotels:
        for amenity in hotel.amenities:
            if amenity not in amenities:
                amenities.append(amenity)
    return amenities


def build_suggested_questions(
    destination: str,
    flights: FlightAvailability,
    analysis: AvailabilityAnalysis,
) -> List[str]:
    """Follow-up questions derived only from the aggregates passed in."""
    questions: List[str] = []
    if not analysis.has_multiple_airlines and len(flights.airlines) == 1:
        questions.append(
            f"I see that only {flights.airlines[0]} offers flights for your trip. "
            "Would you prefer a direct flight or are you open to connections?"
        )
    if analysis.has_flexible_pricing:
        questions.append(
            f"Flight prices range from ${math.floor(flights.min_price)} to ${math.ceil(flights.max_price)}. "
            "What's your budget for flights?"
        )
    if analysis.has_hotel_variety and analysis.hotel_price_range:
        rng = analysis.hotel_price_range
        questions.append(
            f"Hotels in {destination} range from ${math.floor(rng.min)} to ${math.ceil(rng.max)} per night. "
            "What's your accommodation budget?"
        )
    return questions


def build_snapshot(
    origin: str,
    destination: str,
    flights: List[FlightOffer],
    hotels: List[HotelOffer],
    sources: Optional[Dict[str, str]] = None,
) -> QuickAvailabilitySnapshot:
    """Aggregate raw offers into a fresh snapshot. Pure; no I/O."""
    min_price, max_price = flight_price_range(flights)
    flight_availability = FlightAvailability(
        airlines=distinct_airlines(flights),
        min_price=min_price,
        max_price=max_price,
        cabin_classes=list(CABIN_CLASSES),
        available_stops=distinct_stops(flights),
    )
    hotel_range = hotel_price_range(hotels)

    activity_prices = [entry["estimated_price"] for entry in ACTIVITY_CATALOGUE]
    activities = ActivityAvailability(
        categories=catalogue_categories(),
        price_ranges=PriceRange(min=min(activity_prices), max=max(activity_prices)),
    )

    analysis = AvailabilityAnalysis(
        has_multiple_airlines=len(flight_availability.airlines) > 1,
        has_multiple_stops=len(flight_availability.available_stops) > 1,
        has_flexible_pricing=(max_price - min_price) > FLEXIBLE_PRICING_THRESHOLD,
        hotel_price_range=hotel_range,
        has_hotel_variety=len(hotels) > 1,
    )
    analysis.suggested_questions = build_suggested_questions(destination, flight_availability, analysis)

    return QuickAvailabilitySnapshot(
        origin=origin,
        destination=destination,
        flights=flight_availability,
        hotels=HotelAvailability(
            price_ranges=hotel_range,
            categories=list(HOTEL_CATEGORIES),
            amenities=hotel_amenities(hotels),
        ),
        activities=activities,
        analysis=analysis,
        raw_results=RawResults(flights=flights, hotels=hotels),
        sources=sources or {},
    )


def _source_of(records) -> str:
    return "mock" if records and all(r.source == MOCK_SOURCE for r in records) else "live"


# ==================== AGENT ====================

class AvailabilityAgent:
    """Runs the flight and hotel previews concurrently and summarises them."""

    def __init__(
        self,
        flight_client: Optional[FlightSearchClient] = None,
        hotel_client: Optional[HotelSearchClient] = None,
    ):
        self.flight_client = flight_client or FlightSearchClient()
        self.hotel_client = hotel_client or HotelSearchClient()

    async def quick_availability(self, preferences: TravelPreferences) -> QuickAvailabilitySnapshot:
        missing = [
            label
            for label, value in (
                ("origin", preferences.origin or preferences.origin_code),
                ("destination", preferences.destination or preferences.destination_code),
                ("departure date", preferences.dates.departure),
            )
            if not value
        ]
        if missing:
            raise ValidationError(f"Quick availability requires: {', '.join(missing)}")

        flight_params = FlightSearchParams.from_preferences(preferences, max_results=QUICK_SEARCH_MAX_FLIGHTS)
        hotel_params = HotelSearchParams.from_preferences(preferences, max_results=QUICK_SEARCH_MAX_HOTELS)
        # both searches must see valid input before either one starts
        flight_params.check_required()
        hotel_params.check_required()

        logger.info(
            "Quick availability %s→%s on %s",
            flight_params.origin,
            flight_params.destination,
            flight_params.departure_date,
        )
        flights, hotels = await asyncio.gather(
            self.flight_client.search(flight_params),
            self.hotel_client.search(hotel_params),
            return_exceptions=True,
        )

        for result in (flights, hotels):
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result

        if isinstance(flights, Exception):
            logger.warning("Flight preview failed, using mock flights: %s", flights)
            flights = generate_mock_flights(flight_params)
        if isinstance(hotels, Exception):
            logger.warning("Hotel preview failed, using mock hotels: %s", hotels)
            hotels = generate_mock_hotels(hotel_params)

        destination = preferences.destination or hotel_params.city_code
        return build_snapshot(
            origin=preferences.origin or flight_params.origin,
            destination=destination,
            flights=flights[:QUICK_SEARCH_MAX_FLIGHTS],
            hotels=hotels[:QUICK_SEARCH_MAX_HOTELS],
            sources={"flights": _source_of(flights), "hotels": _source_of(hotels)},
        )
