from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

from pydantic import ValidationError

from .errors import PlacesAPIError
from .logging_utils import log_event
from .models import GeoPoint, PlaceRecord

logger = logging.getLogger("tripintel.place_resolver")

AIRPORT = "airport"
LODGING = "lodging"


class TextSearcher(Protocol):
    async def text_search(
        self, query: str, included_type: Optional[str] = None, max_results: int = 1
    ) -> list: ...


def place_from_api(raw: Dict[str, Any], place_type: str) -> Optional[PlaceRecord]:
    """Convert a Places v1 `place` object into a PlaceRecord; None if it has no id or bad field types."""
    place_id = raw.get("id")
    if not place_id:
        return None
    display = raw.get("displayName") or {}
    name = display.get("text") if isinstance(display, dict) else display

    location = None
    loc = raw.get("location")
    if isinstance(loc, dict):
        try:
            location = GeoPoint(latitude=loc["latitude"], longitude=loc["longitude"])
        except (KeyError, ValidationError):
            location = None

    try:
        return PlaceRecord(
            place_id=place_id,
            name=name,
            formatted_address=raw.get("formattedAddress"),
            location=location,
            place_type=place_type,
        )
    except ValidationError:
        return None


class PlaceResolver:
    """Best-effort free-text → PlaceRecord lookup. Never raises."""

    def __init__(self, places: TextSearcher) -> None:
        self._places = places

    async def resolve(self, query: str, category: str) -> Optional[PlaceRecord]:
        query = (query or "").strip()
        if not query:
            return None

        try:
            results = await self._places.text_search(query, included_type=category, max_results=1)
        except PlacesAPIError as e:
            log_event(
                logger,
                "place_lookup_failed",
                level=logging.WARNING,
                query=query,
                category=category,
                status=e.status,
                error=str(e),
            )
            return None
        except Exception as e:
            log_event(
                logger,
                "place_lookup_error",
                level=logging.WARNING,
                query=query,
                category=category,
                error=repr(e),
            )
            return None

        if not results:
            log_event(logger, "place_lookup_no_results", query=query, category=category)
            return None

        top = results[0]
        place = place_from_api(top, category) if isinstance(top, dict) else None
        if place is None:
            log_event(
                logger,
                "place_lookup_malformed",
                level=logging.WARNING,
                query=query,
                category=category,
            )
            return None

        log_event(
            logger,
            "place_resolved",
            query=query,
            category=category,
            place_id=place.place_id,
            place_name=place.name,
        )
        return place

    async def resolve_airport(self, code: Optional[str]) -> Optional[PlaceRecord]:
        if not code:
            return None
        return await self.resolve(f"{code} airport", AIRPORT)

    async def resolve_hotel(
        self, hotel_name: Optional[str], address: Optional[str] = None
    ) -> Optional[PlaceRecord]:
        if not hotel_name:
            return None
        query = f"{hotel_name}, {address}" if address else hotel_name
        return await self.resolve(query, LODGING)
