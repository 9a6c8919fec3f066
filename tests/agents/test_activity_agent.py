"""Unit tests for ActivityAgent suggestions and the catalogue fallback."""

from __future__ import annotations

import asyncio

import pytest

from agents.activity_agent import ActivityAgent, generate_mock_activities, parse_activities
from tools.errors import ParseFailure, ValidationError
from workflows.schemas import TravelPreferences

SUGGESTIONS = {
    "activities": [
        {
            "name": "Cité du Vin",
            "brief": "Wine museum on the Garonne",
            "description": "Interactive exhibits about the world of wine.",
            "estimatedPrice": 22,
            "rating": 4.6,
            "categories": ["museum", "wine"],
            "duration": "2 hours",
        },
        {"name": "Saint-Émilion Day Trip", "estimatedPrice": 120, "rating": 4.9, "categories": "wine, tour"},
        {"name": "Miroir d'eau", "rating": 4.5, "categories": ["sightseeing"]},
        {"name": "Marché des Capucins", "estimatedPrice": 15, "rating": 4.4},
        {"name": "Bassins de Lumières", "estimatedPrice": 16, "rating": 4.7},
        {"name": "Dune du Pilat", "estimatedPrice": 0, "rating": 4.8},
    ]
}

PREFS = TravelPreferences.model_validate(
    {
        "destination": "Bordeaux",
        "dates": {"departure": "2025-06-05", "return": "2025-07-08"},
        "activities": {"interests": ["wine"], "pacePreference": "relaxed"},
        "budget": {"total": 4000},
    }
)


def test_suggest_returns_at_most_five_llm_activities(fake_model):
    model = fake_model([SUGGESTIONS])

    activities = asyncio.run(ActivityAgent(model=model).suggest(PREFS))

    assert len(activities) == 5
    first = activities[0]
    assert first.name == "Cité du Vin"
    assert first.estimated_price == 22
    assert first.location == "Bordeaux"
    assert first.source == "llm"
    assert activities[1].categories == ["wine", "tour"]
    assert activities[2].estimated_price is None

    system = model.calls[0][0].content
    assert "Bordeaux" in system
    assert "2025-06-05 to 2025-07-08" in system
    assert "wine" in system
    assert "$4,000 total" in system


def test_too_few_activities_falls_back_to_catalogue(fake_model):
    model = fake_model([{"activities": [{"name": "Only one"}]}])

    activities = asyncio.run(ActivityAgent(model=model).suggest(PREFS))

    assert [a.name for a in activities] == [
        "Bordeaux City Tour",
        "Bordeaux Food Experience",
        "Bordeaux Museum Pass",
    ]
    assert all(a.source == "mock" for a in activities)


def test_model_error_falls_back_to_catalogue(fake_model, caplog):
    activities = asyncio.run(ActivityAgent(model=fake_model(error=RuntimeError("503"))).suggest(PREFS))

    assert [a.estimated_price for a in activities] == [40.0, 65.0, 25.0]
    assert "activity_suggestion" in caplog.text


def test_missing_destination_is_rejected(fake_model):
    model = fake_model([SUGGESTIONS])

    with pytest.raises(ValidationError):
        asyncio.run(ActivityAgent(model=model).suggest(TravelPreferences(origin="Miami")))
    assert model.calls == []


def test_parse_activities_requires_a_list():
    with pytest.raises(ParseFailure):
        parse_activities({"activities": "none"}, "Bordeaux")
    with pytest.raises(ParseFailure):
        parse_activities(None, "Bordeaux")


def test_mock_activities_are_deterministic():
    first = generate_mock_activities("new york")

    assert first[0].id == "mock-new-york-city-tour"
    assert first[0].location == "New York"
    assert [a.model_dump() for a in first] == [a.model_dump() for a in generate_mock_activities("new york")]
