"""Pydantic schemas for travel preferences, provider records, snapshots and options."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _split_list(v: Any) -> Any:
    """Accept comma-separated strings where a list of strings is expected."""
    if v is None:
        return []
    if isinstance(v, str):
        return [item.strip() for item in v.split(",") if item.strip()]
    if isinstance(v, (list, tuple, set)):
        return [str(item).strip() for item in v if item is not None and str(item).strip()]
    return [str(v)]


# ============================================================================
# Travel Preferences Schema
# ============================================================================

class _PreferenceGroup(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class DateRange(_PreferenceGroup):
    departure: Optional[str] = None
    return_date: Optional[str] = Field(None, alias="return")
    flexibility: Optional[int] = Field(None, ge=0, description="Flexibility in days")


class FlightPreferences(_PreferenceGroup):
    airlines: List[str] = Field(default_factory=list)
    cabin_class: Optional[str] = Field(None, alias="class")
    direct: Optional[bool] = None

    @field_validator("airlines", mode="before")
    @classmethod
    def normalize_airlines(cls, v: Any) -> Any:
        return _split_list(v)


class AccommodationPreferences(_PreferenceGroup):
    type: Optional[str] = None
    amenities: List[str] = Field(default_factory=list)
    location: Optional[str] = None

    @field_validator("amenities", mode="before")
    @classmethod
    def normalize_amenities(cls, v: Any) -> Any:
        return _split_list(v)


class ActivityPreferences(_PreferenceGroup):
    interests: List[str] = Field(default_factory=list)
    pace_preference: Optional[str] = Field(None, alias="pacePreference")

    @field_validator("interests", mode="before")
    @classmethod
    def normalize_interests(cls, v: Any) -> Any:
        return _split_list(v)


class BudgetPreferences(_PreferenceGroup):
    min: Optional[float] = Field(None, ge=0)
    max: Optional[float] = Field(None, ge=0)
    total: Optional[float] = Field(None, ge=0, description="Total trip budget in USD")
    priority: Optional[str] = None


class TravelPreferences(_PreferenceGroup):
    """Everything the user has told us about the trip so far.

    Field names are snake_case; the camelCase wire names are accepted and
    produced through aliases (``originCode``, ``return``, ``class``...).
    """

    origin: Optional[str] = None
    origin_code: Optional[str] = Field(None, alias="originCode")
    destination: Optional[str] = None
    destination_code: Optional[str] = Field(None, alias="destinationCode")
    dates: DateRange = Field(default_factory=DateRange)
    travelers: Optional[int] = Field(None, ge=1, description="Number of travelers")
    flights: FlightPreferences = Field(default_factory=FlightPreferences)
    accommodation: AccommodationPreferences = Field(default_factory=AccommodationPreferences)
    activities: ActivityPreferences = Field(default_factory=ActivityPreferences)
    budget: BudgetPreferences = Field(default_factory=BudgetPreferences)

    def to_dict(self) -> Dict[str, Any]:
        """Wire-format dictionary without unset values."""
        return self.model_dump(by_alias=True, exclude_none=True)


# One extraction call yields the same shape as the accumulated preferences
PreferenceDelta = TravelPreferences


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def prefer_existing(old: Any, new: Any) -> Any:
    """The single merge rule: a non-empty new value wins, otherwise keep the old one."""
    return old if _is_empty(new) else new


def _merge_models(old: BaseModel, new: BaseModel) -> BaseModel:
    updates: Dict[str, Any] = {}
    for name in type(old).model_fields:
        old_value = getattr(old, name)
        new_value = getattr(new, name)
        if isinstance(old_value, BaseModel) and isinstance(new_value, BaseModel):
            updates[name] = _merge_models(old_value, new_value)
        else:
            updates[name] = prefer_existing(old_value, new_value)
    return old.model_copy(update=updates)


def merge_preferences(current: TravelPreferences, delta: PreferenceDelta) -> TravelPreferences:
    """Fold ``delta`` into ``current`` field by field, recursing into groups.

    Empty values in ``delta`` never overwrite known values, so once a field is
    set it can only be replaced by another non-empty value.
    """
    return _merge_models(current, delta.model_copy(deep=True))


class ExtractionResult(BaseModel):
    delta: PreferenceDelta = Field(default_factory=TravelPreferences)
    warning: Optional[str] = None


# ============================================================================
# Chat Transcript Schema
# ============================================================================

class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ChatAction(str, Enum):
    """Actions a button on an assistant message can trigger."""
    SHOW_INSIGHTS = "show_insights"
    SHOW_OPTIONS = "show_options"
    VIEW_OPTIONS = "view_options"
    CONTINUE = "continue"


class ChatActionButton(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    action: ChatAction


class ChatMessage(BaseModel):
    """One immutable transcript entry."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    role: ChatRole
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)
    actions: List[ChatActionButton] = Field(default_factory=list)

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(role=ChatRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str, actions: Optional[List[ChatActionButton]] = None) -> "ChatMessage":
        return cls(role=ChatRole.ASSISTANT, content=content, actions=actions or [])


# ============================================================================
# Provider Record Schema
# ============================================================================

RecordSource = Literal["amadeus", "unsplash", "llm", "mock"]


class ItinerarySegment(BaseModel):
    """A single flight leg."""
    carrier: str = ""
    flight_number: str = ""
    departure_airport: str = ""
    departure_time: Optional[str] = None
    arrival_airport: str = ""
    arrival_time: Optional[str] = None
    duration: Optional[str] = None


class FlightOffer(BaseModel):
    id: str
    carrier: Optional[str] = Field(None, description="Validating carrier; None when unidentified")
    price: float
    currency: str = "USD"
    price_is_estimate: bool = False
    duration: Optional[str] = Field(None, description="ISO-8601 duration of the outbound itinerary")
    stops: int = Field(0, ge=0, description="Stops on the outbound itinerary")
    trip_type: Literal["oneWay", "roundTrip"] = "oneWay"
    cabin_class: str = "ECONOMY"
    origin: str
    destination: str
    departure_date: str
    return_date: Optional[str] = None
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None
    segments: List[ItinerarySegment] = Field(default_factory=list)
    source: RecordSource = "amadeus"


class HotelOffer(BaseModel):
    id: str
    hotel_id: str
    name: str
    address: str = ""
    price: float = Field(description="Nightly rate")
    total_price: Optional[float] = None
    currency: str = "USD"
    price_is_estimate: bool = False
    rating: float = 0.0
    amenities: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    image_url: Optional[str] = None
    check_in: Optional[str] = None
    check_out: Optional[str] = None
    source: RecordSource = "amadeus"


class Activity(BaseModel):
    id: str
    name: str
    brief: str = ""
    description: str = ""
    image_url: Optional[str] = None
    estimated_price: Optional[float] = None
    rating: float = 0.0
    categories: List[str] = Field(default_factory=list)
    duration: Optional[str] = None
    location: Optional[str] = None
    source: RecordSource = "llm"

    @field_validator("categories", mode="before")
    @classmethod
    def normalize_categories(cls, v: Any) -> Any:
        return _split_list(v)


class ImageUrls(BaseModel):
    raw: Optional[str] = None
    full: Optional[str] = None
    regular: Optional[str] = None
    small: Optional[str] = None
    thumb: Optional[str] = None


class ImageResult(BaseModel):
    id: str
    description: Optional[str] = None
    urls: ImageUrls = Field(default_factory=ImageUrls)
    source: RecordSource = "unsplash"

    @property
    def best_url(self) -> Optional[str]:
        return self.urls.regular or self.urls.full or self.urls.small or self.urls.raw or self.urls.thumb


# ============================================================================
# Quick Availability Schema
# ============================================================================

class PriceRange(BaseModel):
    min: float
    max: float

    @model_validator(mode="after")
    def check_order(self) -> "PriceRange":
        if self.min > self.max:
            raise ValueError(f"price range min {self.min} exceeds max {self.max}")
        return self


class FlightAvailability(BaseModel):
    airlines: List[str] = Field(default_factory=list)
    min_price: float
    max_price: float
    cabin_classes: List[str] = Field(default_factory=list)
    available_stops: List[int] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_order(self) -> "FlightAvailability":
        if self.min_price > self.max_price:
            raise ValueError("flight min_price exceeds max_price")
        return self


class HotelAvailability(BaseModel):
    price_ranges: Optional[PriceRange] = None
    categories: List[str] = Field(default_factory=list)
    amenities: List[str] = Field(default_factory=list)


class ActivityAvailability(BaseModel):
    categories: List[str] = Field(default_factory=list)
    price_ranges: Optional[PriceRange] = None


class AvailabilityAnalysis(BaseModel):
    has_multiple_airlines: bool = False
    has_multiple_stops: bool = False
    has_flexible_pricing: bool = False
    hotel_price_range: Optional[PriceRange] = None
    has_hotel_variety: bool = False
    suggested_questions: List[str] = Field(default_factory=list)


class RawResults(BaseModel):
    flights: List[FlightOffer] = Field(default_factory=list)
    hotels: List[HotelOffer] = Field(default_factory=list)


class QuickAvailabilitySnapshot(BaseModel):
    """Point-in-time preview of what the route offers; replaced on every search."""
    id: str = Field(default_factory=_new_id)
    timestamp: datetime = Field(default_factory=_utcnow)
    origin: str
    destination: str
    flights: FlightAvailability
    hotels: HotelAvailability
    activities: ActivityAvailability
    analysis: AvailabilityAnalysis
    raw_results: RawResults = Field(default_factory=RawResults)
    sources: Dict[str, Literal["live", "mock"]] = Field(default_factory=dict)


# ============================================================================
# Travel Option Schema
# ============================================================================

class FlightDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    airline: str
    flight_number: str = ""
    departure_airport: str = ""
    arrival_airport: str = ""
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None
    duration: str = ""
    stops: int = 0
    stops_label: str = ""
    trip_type: str = ""
    cabin_class: str = "ECONOMY"
    price_is_estimate: bool = False
    segments: List[ItinerarySegment] = Field(default_factory=list)


class HotelDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str = ""
    amenities: List[str] = Field(default_factory=list)
    check_in: Optional[str] = None
    check_out: Optional[str] = None
    price_is_estimate: bool = False


class ActivityDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    brief: str = ""
    categories: List[str] = Field(default_factory=list)


class TravelOption(BaseModel):
    """A selectable card in the swipe UI."""
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str
    image_src: str
    type: Literal["flight", "hotel", "activity", "transport"]
    price: Optional[float] = None
    rating: Optional[float] = None
    time: Optional[str] = None
    duration: Optional[str] = None
    location: Optional[str] = None
    details: Optional[Union[FlightDetails, HotelDetails, ActivityDetails]] = None
