"""
Nonce Store

Outstanding sign-in challenges, keyed by nonce. The issuer writes one record
per nonce request and the authenticator claims it with consume(), an atomic
compare-and-swap on the `consumed` flag: among concurrent verify calls for the
same nonce exactly one sees True.

Expiry is checked lazily by the caller; purge_expired() only bounds memory.
Records are kept for `retention_seconds` past expiry so a late replay is
reported as expired/used rather than unknown.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, Optional

from redis import Redis

from app.core.networks import Network

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_SECONDS = 300


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class NonceChallenge:
    nonce: str
    address: str
    network: Network
    domain: str
    uri: str
    issued_at: datetime
    expires_at: datetime
    consumed: bool = False

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) >= self.expires_at

    def to_json(self) -> str:
        data = asdict(self)
        data["network"] = self.network.value
        data["issued_at"] = self.issued_at.isoformat()
        data["expires_at"] = self.expires_at.isoformat()
        data.pop("consumed")
        return json.dumps(data)

    @classmethod
    def from_json(cls, raw: str, consumed: bool = False) -> "NonceChallenge":
        data = json.loads(raw)
        return cls(
            nonce=data["nonce"],
            address=data["address"],
            network=Network(data["network"]),
            domain=data["domain"],
            uri=data["uri"],
            issued_at=datetime.fromisoformat(data["issued_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            consumed=consumed,
        )


class NonceStore(ABC):
    """Storage contract injected into the issuer and the authenticator."""

    @abstractmethod
    def put(self, challenge: NonceChallenge) -> None:
        ...

    @abstractmethod
    def get(self, nonce: str) -> Optional[NonceChallenge]:
        """Return the challenge (expired or not), or None if unknown."""

    @abstractmethod
    def consume(self, nonce: str) -> bool:
        """Mark the nonce consumed. True only for the single caller that flipped it."""

    @abstractmethod
    def delete(self, nonce: str) -> None:
        ...

    @abstractmethod
    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Drop records past expiry + retention. Returns count removed."""


class MemoryNonceStore(NonceStore):
    """Process-local store; every operation runs under one lock."""

    def __init__(self, retention_seconds: int = DEFAULT_RETENTION_SECONDS) -> None:
        self._retention = retention_seconds
        self._items: Dict[str, NonceChallenge] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        return len(self._items)

    def put(self, challenge):
        with self._lock:
            self._items[challenge.nonce] = challenge

    def get(self, nonce):
        with self._lock:
            return self._items.get(nonce)

    def consume(self, nonce):
        with self._lock:
            current = self._items.get(nonce)
            if current is None or current.consumed:
                return False
            self._items[nonce] = replace(current, consumed=True)
            return True

    def delete(self, nonce):
        with self._lock:
            self._items.pop(nonce, None)

    def purge_expired(self, now=None):
        now = now or utc_now()
        with self._lock:
            stale = [
                nonce for nonce, item in self._items.items()
                if (now - item.expires_at).total_seconds() > self._retention
            ]
            for nonce in stale:
                del self._items[nonce]
        if stale:
            logger.debug("purged %d expired nonces", len(stale))
        return len(stale)


class RedisNonceStore(NonceStore):
    """
    Redis-backed store for multi-process deployments.

    The challenge lives under `<prefix>:nonce:<nonce>` and consumption is a
    separate claim key written with SET NX, so the first writer wins across
    every worker sharing the Redis instance. Both keys expire on their own.
    """

    def __init__(
        self,
        client: Redis,
        prefix: str = "auth",
        retention_seconds: int = DEFAULT_RETENTION_SECONDS,
    ) -> None:
        self._redis = client
        self._prefix = prefix
        self._retention = retention_seconds

    def _key(self, nonce: str) -> str:
        return f"{self._prefix}:nonce:{nonce}"

    def _claim_key(self, nonce: str) -> str:
        return f"{self._prefix}:nonce:{nonce}:consumed"

    def _ttl(self, challenge: NonceChallenge) -> int:
        remaining = int((challenge.expires_at - utc_now()).total_seconds())
        return max(remaining, 0) + self._retention

    def put(self, challenge):
        self._redis.set(self._key(challenge.nonce), challenge.to_json(), ex=self._ttl(challenge))

    def get(self, nonce):
        raw = self._redis.get(self._key(nonce))
        if raw is None:
            return None
        consumed = bool(self._redis.exists(self._claim_key(nonce)))
        return NonceChallenge.from_json(raw, consumed=consumed)

    def consume(self, nonce):
        ttl = self._redis.ttl(self._key(nonce))
        if ttl == -2:
            # challenge key is gone
            return False
        if ttl < 1:
            ttl = self._retention
        return bool(self._redis.set(self._claim_key(nonce), "1", nx=True, ex=ttl))

    def delete(self, nonce):
        self._redis.delete(self._key(nonce), self._claim_key(nonce))

    def purge_expired(self, now=None):
        # key TTLs handle expiry
        return 0
