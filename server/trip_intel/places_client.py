from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from .config import PLACES_BASE_URL
from .errors import PlacesAPIError
from .logging_utils import log_event
from .utils import TokenBucket

logger = logging.getLogger("tripintel.places")

TEXT_SEARCH_MASK = "places.id,places.displayName,places.formattedAddress,places.location,places.types"
AUTOCOMPLETE_MASK = (
    "suggestions.placePrediction.placeId,"
    "suggestions.placePrediction.text,"
    "suggestions.placePrediction.structuredFormat"
)
DETAILS_MASK = "id,displayName,formattedAddress,location,rating,userRatingCount,types,photos"
DESTINATION_TYPES = ["locality", "country", "administrative_area_level_1"]


class PlacesClient:
    """
    Google Places API v1 client (read-only).

    Endpoints used:
      - POST /places:searchText
      - POST /places:autocomplete
      - POST /places:searchNearby
      - GET  /places/{place_id}
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = PLACES_BASE_URL,
        *,
        timeout: float = 12.0,
        max_rps: float = 10.0,
        burst: int = 5,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._limiter = TokenBucket(max_rps, burst)

    async def __aenter__(self) -> "PlacesClient":
        timeout = aiohttp.ClientTimeout(total=self._timeout, connect=3)
        self._session = aiohttp.ClientSession(
            headers={"X-Goog-Api-Key": self._api_key}, timeout=timeout
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def _request(
        self,
        method: str,
        path: str,
        field_mask: str,
        *,
        body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Request with rate limit and 429 backoff; raises PlacesAPIError on any failure."""
        if not self._session:
            raise PlacesAPIError("places client session is not open", status=503)

        await self._limiter.acquire()
        url = f"{self._base_url}{path}"
        headers = {"X-Goog-FieldMask": field_mask}
        if body is not None:
            headers["Content-Type"] = "application/json"

        t0 = time.perf_counter()
        attempts = 3
        for attempt in range(attempts):
            try:
                async with self._session.request(method, url, json=body, headers=headers) as r:
                    status = r.status
                    if status == 429 and attempt < attempts - 1:
                        ra = r.headers.get("Retry-After")
                        try:
                            delay = float(ra) + 0.5 if ra else 1.0 + random.random()
                        except ValueError:
                            delay = 2.0
                        await asyncio.sleep(delay)
                        continue

                    elapsed = time.perf_counter() - t0
                    log_event(
                        logger,
                        "places_request",
                        method=method,
                        path=path,
                        status=status,
                        duration_ms=int(elapsed * 1000),
                    )
                    if status != 200:
                        text = await r.text()
                        raise PlacesAPIError(
                            f"{method} {path} failed: {status} {text[:200]}", status=status
                        )
                    try:
                        data = await r.json(content_type=None)
                    except ValueError as e:
                        raise PlacesAPIError(
                            f"{method} {path} returned a non-JSON body: {e}", status=status
                        ) from e
                    return data if isinstance(data, dict) else {}
            except aiohttp.ClientError as e:
                raise PlacesAPIError(f"{method} {path} network error: {e}") from e
            except asyncio.TimeoutError as e:
                raise PlacesAPIError(f"{method} {path} timed out") from e
        raise PlacesAPIError(f"{method} {path} rate limited", status=429)

    async def text_search(
        self,
        query: str,
        included_type: Optional[str] = None,
        max_results: int = 1,
    ) -> List[Dict[str, Any]]:
        body: Dict[str, Any] = {"textQuery": query, "maxResultCount": max_results}
        if included_type:
            body["includedType"] = included_type
            body["strictTypeFiltering"] = True
        data = await self._request("POST", "/places:searchText", TEXT_SEARCH_MASK, body=body)
        return list(data.get("places") or [])

    async def autocomplete(
        self, text: str, included_primary_types: Sequence[str] = DESTINATION_TYPES
    ) -> Dict[str, Any]:
        body = {"input": text, "includedPrimaryTypes": list(included_primary_types)}
        return await self._request("POST", "/places:autocomplete", AUTOCOMPLETE_MASK, body=body)

    async def details(self, place_id: str, field_mask: str = DETAILS_MASK) -> Dict[str, Any]:
        return await self._request("GET", f"/places/{place_id}", field_mask)

    async def photo_names(self, place_id: str) -> List[str]:
        data = await self.details(place_id, field_mask="photos")
        return [p["name"] for p in data.get("photos") or [] if p.get("name")]

    async def location(self, place_id: str) -> Optional[Dict[str, float]]:
        data = await self.details(place_id, field_mask="location")
        return data.get("location")

    async def search_nearby(
        self,
        latitude: float,
        longitude: float,
        *,
        radius: float = 1000.0,
        included_types: Sequence[str] = ("tourist_attraction",),
        max_results: int = 5,
        field_mask: str = "places.photos",
    ) -> List[Dict[str, Any]]:
        body = {
            "locationRestriction": {
                "circle": {
                    "center": {"latitude": latitude, "longitude": longitude},
                    "radius": radius,
                }
            },
            "includedTypes": list(included_types),
            "maxResultCount": max_results,
        }
        data = await self._request("POST", "/places:searchNearby", field_mask, body=body)
        return list(data.get("places") or [])

    def photo_url(self, photo_name: str, max_width: int) -> str:
        return f"{self._base_url}/{photo_name}/media?maxWidthPx={max_width}&key={self._api_key}"
