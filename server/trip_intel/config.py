# config.py
from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .errors import ConfigError

DEFAULT_MODEL = "gemini-2.0-flash"
PLACES_BASE_URL = "https://places.googleapis.com/v1"
AEROAPI_BASE_URL = "https://aeroapi.flightaware.com/aeroapi"

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


class Settings(BaseModel):
    """Process configuration, built once and injected into components."""

    places_api_key: str = Field(..., min_length=1)
    google_api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    places_base_url: str = PLACES_BASE_URL

    flightaware_api_key: Optional[str] = None
    aeroapi_base_url: str = AEROAPI_BASE_URL

    # Arrival backfill via flight-status + duration table (off by default)
    enable_duration_backfill: bool = False
    # Deterministic child ids so redelivered events overwrite instead of append
    stable_child_ids: bool = False

    http_timeout: float = 12.0
    max_output_tokens: int = 8192

    @property
    def vision_enabled(self) -> bool:
        return bool(self.google_api_key)

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "Settings":
        load_dotenv(dotenv_path)

        places_key = os.getenv("GOOGLE_PLACES_API_KEY")
        if not places_key:
            raise ConfigError("GOOGLE_PLACES_API_KEY environment variable is required")

        try:
            timeout = float(os.getenv("HTTP_TIMEOUT", "12"))
        except ValueError as e:
            raise ConfigError(f"HTTP_TIMEOUT must be a number: {e}") from e

        return cls(
            places_api_key=places_key,
            google_api_key=os.getenv("GOOGLE_API_KEY") or None,
            model=os.getenv("TRIP_INTEL_MODEL", DEFAULT_MODEL),
            places_base_url=os.getenv("PLACES_BASE_URL", PLACES_BASE_URL),
            flightaware_api_key=os.getenv("FLIGHTAWARE_API_KEY") or None,
            enable_duration_backfill=_env_flag("ENABLE_DURATION_BACKFILL"),
            stable_child_ids=_env_flag("STABLE_CHILD_IDS"),
            http_timeout=timeout,
        )
