"""
Timestamp normalization for model-extracted date/time strings.

The canonical stored value is a naive datetime carrying the wall-clock time
printed on the document. Offsets are discarded, never applied: a departure
printed as 11:45 stays 11:45 regardless of any "Z" or "+05:30" the model adds.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Optional

from .logging_utils import log_event

logger = logging.getLogger("tripintel.timestamps")

# Tried in order after datetime.fromisoformat
_FALLBACK_FORMATS = (
    "%Y-%m-%dT%H:%M",
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
    "%d-%m-%Y %H:%M",
    "%d-%m-%Y",
    "%d %b %Y %H:%M",
    "%d %b %Y",
    "%d %B %Y %H:%M",
    "%d %B %Y",
    "%d-%b-%Y %H:%M",
    "%d-%b-%Y",
    "%b %d, %Y %H:%M",
    "%b %d, %Y",
    "%B %d, %Y %H:%M",
    "%B %d, %Y",
)

_MIN_YEAR = 1900
_MAX_YEAR = 2100


class TimestampNormalizer:
    @staticmethod
    def parse(value: Any) -> datetime:
        """Parse into a naive wall-clock datetime; raises ValueError when unparseable."""
        if isinstance(value, datetime):
            dt = value
        elif isinstance(value, date):
            dt = datetime(value.year, value.month, value.day)
        elif isinstance(value, str) and value.strip():
            dt = TimestampNormalizer._parse_text(value.strip())
        else:
            raise ValueError(f"not a timestamp: {value!r}")

        if dt.tzinfo is not None:
            dt = dt.replace(tzinfo=None)
        if not (_MIN_YEAR <= dt.year <= _MAX_YEAR):
            raise ValueError(f"implausible year in {value!r}")
        return dt

    @staticmethod
    def _parse_text(text: str) -> datetime:
        iso = text[:-1] + "+00:00" if text.endswith("Z") else text
        try:
            return datetime.fromisoformat(iso)
        except ValueError:
            pass

        for fmt in _FALLBACK_FORMATS:
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue
        raise ValueError(f"unrecognised timestamp format: {text!r}")

    @staticmethod
    def normalize(value: Any, field: str = "") -> Optional[datetime]:
        """Total variant: None for missing or unparseable input."""
        if value is None:
            return None
        try:
            return TimestampNormalizer.parse(value)
        except ValueError as e:
            log_event(
                logger,
                "timestamp_rejected",
                level=logging.WARNING,
                field_name=field,
                raw_value=str(value),
                error=str(e),
            )
            return None
