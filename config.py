"""Global configuration for the travel options service.

This module loads environment variables from the .env file and provides
centralized configuration for the entire application.
"""

import logging
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Load environment variables from .env file in the project root directory
env_path = Path(__file__).parent / ".env"
load_dotenv(dotenv_path=env_path)


# ============================================================================
# Language Model Configuration
# ============================================================================

# Default model name for Gemini
DEFAULT_MODEL_NAME: str = os.getenv("DEFAULT_MODEL_NAME", "gemini-2.0-flash")

# Conversational replies are allowed some creativity; extraction is not
CHAT_TEMPERATURE: float = float(os.getenv("CHAT_TEMPERATURE", "0.7"))
EXTRACTION_TEMPERATURE: float = float(os.getenv("EXTRACTION_TEMPERATURE", "0.1"))
ACTIVITY_TEMPERATURE: float = float(os.getenv("ACTIVITY_TEMPERATURE", "0.5"))


# ============================================================================
# Provider Configuration
# ============================================================================

# Amadeus self-service API (test environment by default)
AMADEUS_BASE_URL: str = os.getenv("AMADEUS_BASE_URL", "https://test.api.amadeus.com")
AMADEUS_TOKEN_URL: str = os.getenv("AMADEUS_TOKEN_URL", f"{AMADEUS_BASE_URL}/v1/security/oauth2/token")

# Seconds before the declared expiry at which a cached token is treated as stale
TOKEN_EXPIRY_MARGIN_S: int = int(os.getenv("TOKEN_EXPIRY_MARGIN_S", "60"))

# Unsplash image search
UNSPLASH_SEARCH_URL: str = os.getenv("UNSPLASH_SEARCH_URL", "https://api.unsplash.com/search/photos")

# HTTP behaviour shared by all adapters
HTTP_TIMEOUT_S: float = float(os.getenv("HTTP_TIMEOUT_S", "20"))
HTTP_MAX_ATTEMPTS: int = int(os.getenv("HTTP_MAX_ATTEMPTS", "3"))


# ============================================================================
# Search Configuration
# ============================================================================

QUICK_SEARCH_MAX_FLIGHTS: int = int(os.getenv("QUICK_SEARCH_MAX_FLIGHTS", "8"))
QUICK_SEARCH_MAX_HOTELS: int = int(os.getenv("QUICK_SEARCH_MAX_HOTELS", "5"))
FULL_SEARCH_MAX_FLIGHTS: int = int(os.getenv("FULL_SEARCH_MAX_FLIGHTS", "10"))
FULL_SEARCH_MAX_HOTELS: int = int(os.getenv("FULL_SEARCH_MAX_HOTELS", "10"))

# A flight price spread above this many dollars counts as flexible pricing
FLEXIBLE_PRICING_THRESHOLD: float = float(os.getenv("FLEXIBLE_PRICING_THRESHOLD", "100"))


# ============================================================================
# Application Configuration
# ============================================================================

# FastAPI/Backend
API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
API_PORT: int = int(os.getenv("API_PORT", "8000"))

# CORS Configuration
CORS_ORIGINS: List[str] = os.getenv("CORS_ORIGINS", "*").split(",") if os.getenv("CORS_ORIGINS") else ["*"]

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")


def configure_logging(level: Optional[str] = None) -> None:
    """Apply the process-wide logging format once."""
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ============================================================================
# API Keys
# ============================================================================

def get_google_api_key() -> Optional[str]:
    """Get Google API key (Gemini) from the environment."""
    return os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")


def get_amadeus_client_id() -> Optional[str]:
    """Get the Amadeus OAuth client id."""
    return os.getenv("AMADEUS_CLIENT_ID") or os.getenv("AMADEUS_API_KEY")


def get_amadeus_client_secret() -> Optional[str]:
    """Get the Amadeus OAuth client secret."""
    return os.getenv("AMADEUS_CLIENT_SECRET") or os.getenv("AMADEUS_API_SECRET")


def get_unsplash_access_key() -> Optional[str]:
    """Get the Unsplash access key used for activity imagery."""
    return os.getenv("UNSPLASH_ACCESS_KEY")


# ============================================================================
# Validation
# ============================================================================

def validate_api_keys() -> List[str]:
    """Validate that provider credentials are present. Returns list of missing keys.

    Missing keys are not fatal: adapters serve mock data without them.
    """
    missing = []

    if not get_google_api_key():
        missing.append("GOOGLE_API_KEY or GEMINI_API_KEY")

    if not get_amadeus_client_id() or not get_amadeus_client_secret():
        missing.append("AMADEUS_CLIENT_ID/AMADEUS_CLIENT_SECRET")

    if not get_unsplash_access_key():
        missing.append("UNSPLASH_ACCESS_KEY")

    return missing
