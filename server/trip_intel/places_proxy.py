"""Stateless forwarders over the Places API used by the app's destination pickers."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Set

from .errors import PlacesAPIError
from .logging_utils import log_event
from .places_client import PlacesClient

logger = logging.getLogger("tripintel.places_proxy")

SEARCH_PHOTO_LIMIT = 3
SEARCH_PHOTO_WIDTH = 200


async def search_destinations(client: PlacesClient, text: str) -> Dict[str, Any]:
    """Autocomplete, then details and a few photo URLs for each distinct suggestion."""
    log_event(logger, "search_destinations", query=text)
    data = await client.autocomplete(text)

    places: List[Dict[str, Any]] = []
    seen: Set[str] = set()
    for suggestion in data.get("suggestions") or []:
        prediction = suggestion.get("placePrediction") or {}
        place_id = prediction.get("placeId")
        if not place_id or place_id in seen:
            continue
        seen.add(place_id)

        try:
            details = await client.details(place_id)
        except PlacesAPIError as e:
            log_event(logger, "destination_details_failed", level=logging.WARNING, place_id=place_id, error=str(e))
            continue

        try:
            names = await client.photo_names(place_id)
            details["photoUrls"] = [
                client.photo_url(n, SEARCH_PHOTO_WIDTH) for n in names[:SEARCH_PHOTO_LIMIT]
            ]
        except PlacesAPIError as e:
            log_event(logger, "destination_photos_failed", level=logging.WARNING, place_id=place_id, error=str(e))
            details["photoUrls"] = []

        places.append(details)

    log_event(logger, "search_destinations_done", query=text, found=len(places))
    return {"places": places}


async def get_place_photos(
    client: PlacesClient, place_id: str, max_photos: int = 20, max_width: int = 800
) -> Dict[str, Any]:
    """Photo URLs for a place, topped up from nearby tourist attractions when short."""
    log_event(logger, "get_place_photos", place_id=place_id, max_photos=max_photos)
    names = await client.photo_names(place_id)
    urls = [client.photo_url(n, max_width) for n in names[:max_photos]]

    if len(urls) < max_photos:
        try:
            location = await client.location(place_id)
            if location and "latitude" in location and "longitude" in location:
                nearby = await client.search_nearby(location["latitude"], location["longitude"])
                for place in nearby:
                    for photo in place.get("photos") or []:
                        if len(urls) >= max_photos:
                            break
                        if photo.get("name"):
                            urls.append(client.photo_url(photo["name"], max_width))
                    if len(urls) >= max_photos:
                        break
        except PlacesAPIError as e:
            log_event(logger, "nearby_photos_failed", level=logging.WARNING, place_id=place_id, error=str(e))

    log_event(logger, "get_place_photos_done", place_id=place_id, photos=len(urls))
    return {"photos": urls}


async def get_place_details(client: PlacesClient, place_id: str) -> Dict[str, Any]:
    place = await client.details(place_id)
    name = (place.get("displayName") or {}).get("text") or "Unknown"
    log_event(logger, "place_details", place_id=place_id, place_name=name)
    return {"place": place}


async def get_autocomplete_suggestions(client: PlacesClient, text: str) -> Dict[str, Any]:
    data = await client.autocomplete(text)
    log_event(logger, "autocomplete", query=text, suggestions=len(data.get("suggestions") or []))
    return data
