from __future__ import annotations

import asyncio
import logging
import random
import re as _re
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Pattern, Tuple

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import aiohttp

from .config import AEROAPI_BASE_URL
from .logging_utils import log_event
from .utils import TokenBucket

logger = logging.getLogger("tripintel.flight_status")

FLIGHT_PATTERN: Pattern[str] = _re.compile(r"^[A-Z0-9]{2,4}\d{1,5}[A-Z]?$")


def _parse_iso_utc(iso: Any) -> Optional[datetime]:
    if not iso or not isinstance(iso, str):
        return None
    try:
        dt = datetime.fromisoformat(iso.replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def _to_local(dt: datetime, tz_name: Optional[str]) -> Optional[datetime]:
    """UTC instant -> naive wall clock in the airport's zone."""
    if not tz_name:
        return None
    try:
        return dt.astimezone(ZoneInfo(tz_name)).replace(tzinfo=None)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def _zone_of(airport: Any) -> Optional[str]:
    if not isinstance(airport, dict):
        return None
    tz = airport.get("timezone")
    return tz if isinstance(tz, str) else None


class FlightStatusClient:
    """
    FlightAware AeroAPI v4 lookup used only to backfill a missing arrival time.

    Endpoint used:
      - GET /flights/{ident}?start={iso}&end={iso}
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = AEROAPI_BASE_URL,
        *,
        timeout: float = 12.0,
        max_rps: float = 10.0,
        burst: int = 3,
    ) -> None:
        self._headers = {"x-apikey": api_key, "Accept": "application/json"}
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._limiter = TokenBucket(max_rps, burst)

    async def __aenter__(self) -> "FlightStatusClient":
        timeout = aiohttp.ClientTimeout(total=self._timeout, connect=3)
        self._session = aiohttp.ClientSession(headers=self._headers, timeout=timeout)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def _do_get(self, path: str, params: Dict[str, Any]) -> Tuple[int, Any]:
        """GET with rate limit and 429 backoff."""
        if not self._session:
            return 503, None

        await self._limiter.acquire()
        url = f"{self._base_url}{path}"
        t0 = time.perf_counter()
        status, body = 0, None
        attempts = 3
        for attempt in range(attempts):
            async with self._session.get(url, params=params) as r:
                status = r.status
                try:
                    body = await r.json(content_type=None)
                except (aiohttp.ContentTypeError, ValueError):
                    body = await r.text()

                if status == 429 and attempt < attempts - 1:
                    ra = r.headers.get("Retry-After")
                    try:
                        await asyncio.sleep(float(ra) + 0.5 if ra else 2.0 + random.random())
                    except ValueError:
                        await asyncio.sleep(2.0)
                    continue
                break

        log_event(
            logger,
            "aeroapi_request",
            path=path,
            status=status,
            duration_ms=int((time.perf_counter() - t0) * 1000),
        )
        return status, body

    @staticmethod
    def _pick(flights: List[Any], departure: datetime) -> Optional[Dict[str, Any]]:
        best: Optional[Dict[str, Any]] = None
        best_delta: Optional[float] = None
        for f in flights:
            if not isinstance(f, dict):
                continue
            out = _parse_iso_utc(f.get("scheduled_out"))
            if not out:
                continue
            local_out = _to_local(out, _zone_of(f.get("origin")))
            if local_out is None:
                continue
            delta = abs((local_out - departure).total_seconds())
            if best_delta is None or delta < best_delta:
                best, best_delta = f, delta
        # Same-day match only
        if best_delta is None or best_delta > 12 * 3600:
            return None
        return best

    async def scheduled_arrival(
        self, flight_number: Optional[str], departure: datetime
    ) -> Optional[datetime]:
        """Scheduled arrival as destination-local wall clock, or None. Never raises."""
        ident = (flight_number or "").strip().upper()
        if not ident or not FLIGHT_PATTERN.match(ident):
            return None

        start = datetime(departure.year, departure.month, departure.day, tzinfo=timezone.utc) - timedelta(days=1)
        end = start + timedelta(days=3)
        params = {
            "start": start.isoformat().replace("+00:00", "Z"),
            "end": end.isoformat().replace("+00:00", "Z"),
        }

        try:
            status, body = await self._do_get(f"/flights/{ident}", params)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log_event(logger, "aeroapi_error", level=logging.WARNING, ident=ident, error=repr(e))
            return None

        if status != 200 or not isinstance(body, dict):
            log_event(logger, "aeroapi_no_data", level=logging.WARNING, ident=ident, status=status)
            return None

        flights = body.get("flights")
        match = self._pick(flights if isinstance(flights, list) else [], departure)
        if not match:
            return None

        arrival = _parse_iso_utc(match.get("scheduled_in"))
        if not arrival:
            return None
        return _to_local(arrival, _zone_of(match.get("destination")))
