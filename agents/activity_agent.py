# agents/activity_agent.py
"""ActivityAgent: LLM-suggested things to do at the destination."""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from pydantic import ValidationError as SchemaError

from agents.chat_agent import content_text, try_parse_json
from config import ACTIVITY_TEMPERATURE, DEFAULT_MODEL_NAME
from prompts import PromptTemplate, get_prompt
from tools.errors import ParseFailure, UpstreamFailure, ValidationError
from tools.fallback import MOCK_SOURCE, with_fallback
from workflows.schemas import Activity, TravelPreferences

logger = logging.getLogger(__name__)

MIN_ACTIVITIES = 3
MAX_ACTIVITIES = 5

# Fixed catalogue used for previews and as the mock fallback
ACTIVITY_CATALOGUE: List[Dict[str, Any]] = [
    {
        "key": "city-tour",
        "name": "{loc} City Tour",
        "brief": "Guided walk past the landmarks of {loc}",
        "description": "A three-hour guided tour covering the historic centre, "
                       "main squares and hidden corners of {loc}.",
        "estimated_price": 40.0,
        "rating": 4.5,
        "duration": "3 hours",
        "categories": ["sightseeing", "tour"],
    },
    {
        "key": "food-experience",
        "name": "{loc} Food Experience",
        "brief": "Taste local specialities with a food guide",
        "description": "Sample regional dishes at markets and family-run eateries "
                       "while learning about the food culture of {loc}.",
        "estimated_price": 65.0,
        "rating": 4.7,
        "duration": "3 hours",
        "categories": ["food", "culture"],
    },
    {
        "key": "museum-pass",
        "name": "{loc} Museum Pass",
        "brief": "Skip-the-line entry to the top museums",
        "description": "A one-day pass giving access to the main museums and "
                       "galleries of {loc}.",
        "estimated_price": 25.0,
        "rating": 4.8,
        "duration": "1 day",
        "categories": ["museum", "art"],
    },
]


def catalogue_categories() -> List[str]:
    seen: List[str] = []
    for entry in ACTIVITY_CATALOGUE:
        for category in entry["categories"]:
            if category not in seen:
                seen.append(category)
    return seen


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


def generate_mock_activities(destination: Optional[str]) -> List[Activity]:
    """Catalogue activities for ``destination``; identical input gives identical output."""
    loc = (destination or "the city").strip().title()
    return [
        Activity(
            id=f"mock-{_slug(loc)}-{entry['key']}",
            name=entry["name"].format(loc=loc),
            brief=entry["brief"].format(loc=loc),
            description=entry["description"].format(loc=loc),
            estimated_price=entry["estimated_price"],
            rating=entry["rating"],
            categories=list(entry["categories"]),
            duration=entry["duration"],
            location=loc,
            source=MOCK_SOURCE,
        )
        for entry in ACTIVITY_CATALOGUE
    ]


def parse_activities(data: Optional[Dict[str, Any]], destination: str) -> List[Activity]:
    items = data.get("activities") if isinstance(data, dict) else None
    if not isinstance(items, list):
        raise ParseFailure("Activity suggestion has no activities list")

    activities: List[Activity] = []
    for index, item in enumerate(items[:MAX_ACTIVITIES]):
        if not isinstance(item, dict) or not item.get("name"):
            continue
        try:
            activities.append(
                Activity(
                    id=_slug(str(item.get("id") or item["name"])) or str(index + 1),
                    name=str(item["name"]),
                    brief=str(item.get("brief") or ""),
                    description=str(item.get("description") or ""),
                    image_url=item.get("imageUrl") or None,
                    estimated_price=item.get("estimatedPrice"),
                    rating=item.get("rating") or 0.0,
                    categories=item.get("categories") or [],
                    duration=item.get("duration"),
                    location=item.get("location") or destination,
                    source="llm",
                )
            )
        except SchemaError as exc:
            logger.warning("Skipping malformed activity %r: %s", item.get("name"), exc)

    if len(activities) < MIN_ACTIVITIES:
        raise ParseFailure(f"Expected at least {MIN_ACTIVITIES} activities, got {len(activities)}")
    return activities


class ActivityAgent:
    """Suggests 3-5 activities from the LLM, or the catalogue when that fails."""

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL_NAME,
        model=None,
        prompt: Optional[PromptTemplate] = None,
    ):
        self.model = model if model is not None else ChatGoogleGenerativeAI(
            model=model_name, temperature=ACTIVITY_TEMPERATURE
        )
        self.prompt = prompt or get_prompt("suggest_activities")

    async def suggest(self, preferences: TravelPreferences) -> List[Activity]:
        destination = preferences.destination or preferences.destination_code
        if not destination:
            raise ValidationError("Activity suggestions require a destination")
        return await with_fallback(
            "activity_suggestion",
            lambda: self._suggest_live(preferences, destination),
            lambda: generate_mock_activities(destination),
        )

    async def _suggest_live(self, preferences: TravelPreferences, destination: str) -> List[Activity]:
        dates = preferences.dates
        budget = preferences.budget
        system = self.prompt.format(
            destination=destination,
            dates=" to ".join(d for d in (dates.departure, dates.return_date) if d) or "flexible",
            interests=", ".join(preferences.activities.interests) or "anything popular",
            pace=preferences.activities.pace_preference or "moderate",
            budget=f"${budget.total:,.0f} total" if budget.total else (budget.priority or "not specified"),
        )
        try:
            response = await self.model.ainvoke(
                [SystemMessage(content=system), HumanMessage(content=f"Suggest activities in {destination}.")]
            )
        except Exception as exc:
            raise UpstreamFailure(f"LLM activity call failed: {exc}") from exc

        activities = parse_activities(try_parse_json(content_text(response)), destination)
        logger.info("LLM suggested %d activities for %s", len(activities), destination)
        return activities
