"""Token-bucket rate limiter for nonce issuance, keyed per wallet."""

from __future__ import annotations
import time
from dataclasses import dataclass, field
from threading import Lock


@dataclass
class _TokenBucket:
    """Per-key token bucket."""

    max_tokens: int
    refill_rate: float  # tokens per second
    tokens: float = 0.0
    last_refill: float = field(default_factory=time.monotonic)

    def __post_init__(self):
        self.tokens = float(self.max_tokens)

    def consume(self, now: float) -> bool:
        """Try to consume one token. Returns True if allowed."""
        elapsed = max(now - self.last_refill, 0.0)
        self.last_refill = now

        self.tokens = min(self.max_tokens, self.tokens + elapsed * self.refill_rate)

        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return True
        return False


class RateLimiter:
    """Per-key rate limiter using token buckets."""

    def __init__(self, max_per_minute: float = 10.0, burst: int = 5, clock=time.monotonic):
        self._burst = burst
        self._refill_rate = max_per_minute / 60.0
        self._buckets: dict[str, _TokenBucket] = {}
        self._clock = clock
        self._lock = Lock()

    def is_allowed(self, key: str) -> bool:
        """Check if a request for key is allowed."""
        now = self._clock()
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = _TokenBucket(
                    max_tokens=self._burst,
                    refill_rate=self._refill_rate,
                    last_refill=now,
                )
                self._buckets[key] = bucket
            return bucket.consume(now)

    def cleanup_stale(self, max_age: float = 600.0) -> int:
        """Remove buckets not used in max_age seconds. Returns count removed."""
        now = self._clock()
        with self._lock:
            stale = [
                key for key, bucket in self._buckets.items()
                if (now - bucket.last_refill) > max_age
            ]
            for key in stale:
                del self._buckets[key]
        return len(stale)
