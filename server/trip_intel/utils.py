from __future__ import annotations

import asyncio
import re as _re
import time
from typing import Optional, Pattern

_FENCE_RE: Pattern[str] = _re.compile(r"^```(?:json|JSON)?\s*([\s\S]*?)\s*```$")


def strip_code_fences(text: Optional[str]) -> str:
    """
    Remove a markdown code-fence wrapper the model sometimes puts around JSON.
    ```json {...} ``` -> {...}
    """
    if not text:
        return ""
    cleaned = text.strip()
    m = _FENCE_RE.match(cleaned)
    if m:
        return m.group(1).strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()
class TokenBucket:
    """Async token bucket: `rate` requests per second, up to `burst` back to back."""

    def __init__(self, rate: float, burst: int):
        self.rate = float(rate)
        self.capacity = float(burst)
        self._available = float(burst)
        self._last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        self._available = min(self.capacity, self._available + (now - self._last_refill) * self.rate)
        self._last_refill = now

    async def acquire(self) -> None:
        async with self._lock:
            self._refill()
            shortfall = 1.0 - self._available
            if shortfall > 0:
                # Holding the lock keeps waiters in arrival order
                await asyncio.sleep(shortfall / self.rate)
                self._refill()
            self._available -= 1.0
