# tools/locations.py
"""City-name → IATA code resolution and loose date normalization.

Usage:
    from tools.locations import resolve_location_code, normalize_date
    resolve_location_code("Bordeaux")   # "BOD"
    normalize_date("June 15, 2025")     # "2025-06-15"
"""
from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Dict, Optional

logger = logging.getLogger(__name__)

# Common city name → IATA city/airport code (fast path, no API call)
CITY_TO_IATA: Dict[str, str] = {
    # North America
    "new york": "NYC",
    "nyc": "NYC",
    "los angeles": "LAX",
    "la": "LAX",
    "san francisco": "SFO",
    "miami": "MIA",
    "chicago": "CHI",
    "las vegas": "LAS",
    "orlando": "MCO",
    "toronto": "YTO",
    # Europe
    "paris": "PAR",
    "london": "LON",
    "rome": "ROM",
    "berlin": "BER",
    "madrid": "MAD",
    "barcelona": "BCN",
    "amsterdam": "AMS",
    "bordeaux": "BOD",
    "nice": "NCE",
    "marseille": "MRS",
    "lyon": "LYS",
    "munich": "MUC",
    "frankfurt": "FRA",
    "venice": "VCE",
    "florence": "FLR",
    "milan": "MIL",
    "vienna": "VIE",
    "brussels": "BRU",
    "athens": "ATH",
    "prague": "PRG",
    "zurich": "ZRH",
    "geneva": "GVA",
    "lisbon": "LIS",
    "dublin": "DUB",
    # Asia / Pacific / Middle East
    "tokyo": "TYO",
    "sydney": "SYD",
    "bangkok": "BKK",
    "singapore": "SIN",
    "hong kong": "HKG",
    "dubai": "DXB",
    "beijing": "BJS",
    "shanghai": "SHA",
    "seoul": "SEL",
}

# Fallback codes computed for unknown names; shared by the whole process
_FALLBACK_CACHE: Dict[str, str] = {}

CANONICAL_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_MONTHS = {
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6,
    "july": 7, "august": 8, "september": 9, "october": 10, "november": 11, "december": 12,
}
_MONTH_ABBR = {name[:3]: num for name, num in _MONTHS.items()}
_MONTH_NAME_RE = re.compile(
    r"^(?P<month>[A-Za-z]+)\.?(?:\s+(?P<day>\d{1,2})(?:st|nd|rd|th)?)?,?(?:\s+(?P<year>\d{4}))?$"
)

_GENERIC_FORMATS = (
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%d.%m.%Y",
    "%d %B %Y",
    "%d %b %Y",
)


def resolve_location_code(name: Optional[str]) -> str:
    """Map a city name to a 3-letter code; never raises.

    Unknown names fall back to their first three letters upper-cased, and
    that fallback is remembered so later lookups agree with it.
    """
    if not name:
        return ""
    key = name.strip().lower()
    if not key:
        return ""

    code = CITY_TO_IATA.get(key)
    if code:
        return code

    cached = _FALLBACK_CACHE.get(key)
    if cached:
        return cached

    fallback = re.sub(r"[^a-z]", "", key)[:3].upper() or key[:3].upper()
    logger.warning("No location code for %r, falling back to %s", name, fallback)
    _FALLBACK_CACHE[key] = fallback
    return fallback


def location_code_for(name: Optional[str], code: Optional[str] = None) -> str:
    """Pick the code to search with: a stored code, a name that already is one, or a lookup."""
    if code and code.strip():
        return code.strip().upper()
    if name and len(name.strip()) == 3 and name.strip().isalpha():
        return name.strip().upper()
    return resolve_location_code(name)


def is_canonical_date(text: Optional[str]) -> bool:
    """True when ``text`` is a real calendar date written as YYYY-MM-DD."""
    if not text or not CANONICAL_DATE_RE.match(text):
        return False
    try:
        date.fromisoformat(text)
    except ValueError:
        return False
    return True


def _month_number(token: str) -> Optional[int]:
    token = token.lower()
    if len(token) < 3:
        return None
    month = _MONTH_ABBR.get(token[:3])
    if month and list(_MONTHS)[month - 1].startswith(token):
        return month
    return None


def _parse_month_name(text: str, today: date) -> Optional[date]:
    match = _MONTH_NAME_RE.match(text)
    if not match:
        return None
    month = _month_number(match.group("month"))
    if not month:
        return None
    year = int(match.group("year")) if match.group("year") else today.year
    day = int(match.group("day")) if match.group("day") else 1
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _parse_generic(text: str) -> Optional[date]:
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    for fmt in _GENERIC_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def normalize_date(text: Optional[str], *, today: Optional[date] = None) -> str:
    """Coerce a human-written date into YYYY-MM-DD.

    Canonical input is returned untouched. Month-name forms ("June 2025",
    "Jun 15, 2025", bare "June") are tried before the generic parsers. When
    nothing matches, the input comes back unchanged and a warning is logged.
    """
    if not text:
        return ""
    raw = text.strip()
    if CANONICAL_DATE_RE.match(raw):
        return raw

    parsed = _parse_month_name(raw, today or date.today()) or _parse_generic(raw)
    if parsed is None:
        logger.warning("Could not normalize date %r", text)
        return text
    return parsed.isoformat()
