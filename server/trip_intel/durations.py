from __future__ import annotations

from datetime import timedelta
from typing import Dict, Optional, Tuple

# Typical block times in hours, keyed one direction only; reverse is looked up too.
ROUTE_DURATIONS: Dict[Tuple[str, str], float] = {
    # India domestic
    ("CCU", "BLR"): 2.5,
    ("DEL", "BOM"): 2.0,
    ("DEL", "BLR"): 2.75,
    ("DEL", "CCU"): 2.25,
    ("DEL", "MAA"): 2.75,
    ("DEL", "HYD"): 2.25,
    ("DEL", "GOI"): 2.5,
    ("DEL", "AMD"): 1.5,
    ("DEL", "PNQ"): 2.0,
    ("DEL", "COK"): 3.25,
    ("BOM", "BLR"): 1.75,
    ("BOM", "CCU"): 2.75,
    ("BOM", "MAA"): 2.0,
    ("BOM", "HYD"): 1.5,
    ("BOM", "GOI"): 1.25,
    ("BOM", "COK"): 2.0,
    ("BLR", "MAA"): 1.0,
    ("BLR", "HYD"): 1.25,
    ("BLR", "GOI"): 1.25,
    ("CCU", "MAA"): 2.25,
    ("CCU", "GAU"): 1.25,
    # India international
    ("DEL", "DXB"): 3.75,
    ("BOM", "DXB"): 3.0,
    ("BLR", "DXB"): 4.0,
    ("DEL", "SIN"): 5.5,
    ("BLR", "SIN"): 4.5,
    ("MAA", "SIN"): 4.0,
    ("DEL", "LHR"): 9.5,
    ("BOM", "LHR"): 9.75,
    ("DEL", "BKK"): 4.25,
    ("CCU", "BKK"): 2.5,
    ("DEL", "KTM"): 1.75,
    # Rest of world
    ("JFK", "LHR"): 7.0,
    ("JFK", "LAX"): 5.75,
    ("JFK", "SFO"): 6.0,
    ("JFK", "CDG"): 7.5,
    ("ORD", "LAX"): 4.5,
    ("ATL", "LAX"): 4.75,
    ("LHR", "CDG"): 1.25,
    ("LHR", "DXB"): 7.0,
    ("LHR", "SIN"): 13.0,
    ("DXB", "SIN"): 7.25,
    ("SIN", "HKG"): 4.0,
    ("SIN", "NRT"): 7.0,
    ("HKG", "NRT"): 4.5,
    ("SYD", "MEL"): 1.5,
    ("SYD", "SIN"): 8.0,
}

INTERNATIONAL_FALLBACK_HOURS = 6.0
DOMESTIC_FALLBACK_HOURS = 2.0


def _code(value: Optional[str]) -> str:
    return (value or "").strip().upper()


class DurationEstimator:
    """Best-effort flight duration from a static route table."""

    def __init__(self, routes: Optional[Dict[Tuple[str, str], float]] = None) -> None:
        self._routes = dict(ROUTE_DURATIONS if routes is None else routes)

    def lookup(self, origin: Optional[str], destination: Optional[str]) -> Optional[float]:
        o, d = _code(origin), _code(destination)
        if (o, d) in self._routes:
            return self._routes[(o, d)]
        if (d, o) in self._routes:
            return self._routes[(d, o)]
        return None

    def estimate(self, origin: Optional[str], destination: Optional[str]) -> timedelta:
        hours = self.lookup(origin, destination)
        if hours is None:
            o, d = _code(origin), _code(destination)
            # First letter mismatch is taken as international
            if o[:1] != d[:1]:
                hours = INTERNATIONAL_FALLBACK_HOURS
            else:
                hours = DOMESTIC_FALLBACK_HOURS
        return timedelta(hours=hours)
