"""Prompt templates for the travel assistant.

Prompts are stored as Markdown next to this module so they can be edited
without touching code. Any of them can be replaced at runtime through a
``TRAVEL_PLANNER_PROMPT_<NAME>`` environment variable holding either a file
path or the literal prompt text.
"""
from __future__ import annotations

import os
import string
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, FrozenSet

__all__ = ["PROMPT_FILES", "PromptTemplate", "load_prompt_template", "get_prompt"]

_PROMPT_ROOT = Path(__file__).resolve().parent
_ENV_PREFIX = "TRAVEL_PLANNER_PROMPT_"

# Prompt name -> file shipped in this package
PROMPT_FILES: Dict[str, str] = {
    "chat": "chat.md",
    "extract_preferences": "extract_preferences.md",
    "suggest_activities": "suggest_activities.md",
    "travel_insights": "travel_insights.md",
}


def _resolve_override(name: str) -> str | None:
    """Return override prompt content or path from the environment if set."""
    override_value = os.getenv(_ENV_PREFIX + name.upper())
    if not override_value:
        return None

    override_path = Path(override_value)
    if override_path.is_file():
        return override_path.read_text(encoding="utf-8")

    # Literal prompt text
    return override_value


@dataclass(frozen=True)
class PromptTemplate:
    """``str.format`` template that reports which fields it expects."""

    text: str
    name: str = ""

    @property
    def fields(self) -> FrozenSet[str]:
        return frozenset(
            field for _, field, _, _ in string.Formatter().parse(self.text) if field
        )

    def format(self, **kwargs: Any) -> str:
        missing = self.fields - kwargs.keys()
        if missing:
            raise KeyError(f"Prompt {self.name or '<inline>'} is missing values for: {', '.join(sorted(missing))}")
        return self.text.format(**kwargs)


@lru_cache(maxsize=None)
def load_prompt_template(name: str, filename: str) -> PromptTemplate:
    """Load a prompt template by ``name``, honouring the environment override.

    When no override is set, ``filename`` is read from the package directory.
    """
    override = _resolve_override(name)
    if override is not None:
        return PromptTemplate(override, name)

    path = _PROMPT_ROOT / filename
    if not path.exists():
        raise FileNotFoundError(f"Prompt file not found: {path}")
    return PromptTemplate(path.read_text(encoding="utf-8"), name)


def get_prompt(name: str) -> PromptTemplate:
    """Load one of the registered prompts by name."""
    try:
        filename = PROMPT_FILES[name]
    except KeyError:
        raise KeyError(f"Unknown prompt: {name}") from None
    return load_prompt_template(name, filename)

