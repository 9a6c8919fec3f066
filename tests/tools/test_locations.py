"""Unit tests for `tools.locations` city-code and date normalization."""

from __future__ import annotations

import logging
from datetime import date

import pytest

from tools import locations
from tools.locations import is_canonical_date, location_code_for, normalize_date, resolve_location_code


@pytest.fixture(autouse=True)
def clear_fallback_cache():
    locations._FALLBACK_CACHE.clear()
    yield
    locations._FALLBACK_CACHE.clear()


def test_known_cities_resolve_from_table():
    assert resolve_location_code("Miami") == "MIA"
    assert resolve_location_code("Bordeaux") == "BOD"
    assert resolve_location_code("  NEW YORK ") == "NYC"
    assert resolve_location_code("hong kong") == "HKG"


def test_empty_name_resolves_to_empty_string():
    assert resolve_location_code("") == ""
    assert resolve_location_code(None) == ""
    assert resolve_location_code("   ") == ""


def test_unknown_city_falls_back_and_is_cached(caplog):
    with caplog.at_level(logging.WARNING, logger="tools.locations"):
        first = resolve_location_code("Timbuktu")
    assert first == "TIM"
    assert "Timbuktu" in caplog.text

    caplog.clear()
    with caplog.at_level(logging.WARNING, logger="tools.locations"):
        second = resolve_location_code("timbuktu")
    assert second == first
    assert caplog.text == ""
    assert locations._FALLBACK_CACHE["timbuktu"] == "TIM"


def test_location_code_prefers_stored_code_then_three_letter_name():
    assert location_code_for("Paris", "par") == "PAR"
    assert location_code_for("lhr") == "LHR"
    assert location_code_for("Bordeaux", None) == "BOD"


def test_canonical_dates_are_returned_unchanged():
    assert normalize_date("2025-06-05") == "2025-06-05"
    assert normalize_date("2025-07-08") == "2025-07-08"


@pytest.mark.parametrize(
    "text, expected",
    [
        ("June 15, 2025", "2025-06-15"),
        ("Jun 15, 2025", "2025-06-15"),
        ("June 2025", "2025-06-01"),
        ("Jun 2025", "2025-06-01"),
        ("Sept 3 2025", "2025-09-03"),
        ("15 June 2025", "2025-06-15"),
        ("2025/06/15", "2025-06-15"),
        ("06/15/2025", "2025-06-15"),
    ],
)
def test_human_dates_are_normalized(text, expected):
    assert normalize_date(text) == expected


def test_bare_month_assumes_current_year_first_day():
    assert normalize_date("March", today=date(2026, 10, 19)) == "2026-03-01"


def test_unparseable_date_is_returned_unchanged_with_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="tools.locations"):
        assert normalize_date("sometime soon") == "sometime soon"
    assert "sometime soon" in caplog.text


def test_is_canonical_date_rejects_impossible_dates():
    assert is_canonical_date("2025-06-05")
    assert not is_canonical_date("2025-02-30")
    assert not is_canonical_date("June 5")
    assert not is_canonical_date(None)
