"""Error taxonomy shared by the provider adapters and the orchestrator."""

from __future__ import annotations

from typing import Optional


class TravelServiceError(Exception):
    """Base class for every error raised by the travel tools and agents."""


class ValidationError(TravelServiceError):
    """Required input is missing or malformed; raised before any network call."""


class UpstreamFailure(TravelServiceError):
    """A provider answered with a non-success status, timed out, or rejected our credentials."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ParseFailure(TravelServiceError):
    """A provider response could not be mapped into the expected structure."""
