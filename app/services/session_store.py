"""
Session Store

Maps a session id (the `sid` claim of the bearer token) to the verified wallet
it was minted for. Reads happen on every protected request; writes only on
verify and logout.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Dict, Optional

from redis import Redis

from app.core.networks import Network
from app.services.nonce_store import utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    """A verified wallet login. Frozen: the bound wallet never changes."""

    id: str
    wallet_address: str
    network: Network
    author_uuid: str
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) >= self.expires_at

    def to_json(self) -> str:
        return json.dumps({
            "id": self.id,
            "wallet_address": self.wallet_address,
            "network": self.network.value,
            "author_uuid": self.author_uuid,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        })

    @classmethod
    def from_json(cls, raw: str) -> "Session":
        data = json.loads(raw)
        return cls(
            id=data["id"],
            wallet_address=data["wallet_address"],
            network=Network(data["network"]),
            author_uuid=data["author_uuid"],
            created_at=datetime.fromisoformat(data["created_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
        )


class SessionStore(ABC):
    @abstractmethod
    def put(self, session: Session) -> None:
        ...

    @abstractmethod
    def get(self, session_id: str) -> Optional[Session]:
        """Return the session or None; never raises for a missing id."""

    @abstractmethod
    def delete(self, session_id: str) -> None:
        """Remove the session; unknown ids are ignored."""

    @abstractmethod
    def purge_expired(self, now: Optional[datetime] = None) -> int:
        ...


class MemorySessionStore(SessionStore):
    def __init__(self) -> None:
        self._items: Dict[str, Session] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        return len(self._items)

    def put(self, session):
        with self._lock:
            self._items[session.id] = session

    def get(self, session_id):
        with self._lock:
            return self._items.get(session_id)

    def delete(self, session_id):
        with self._lock:
            self._items.pop(session_id, None)

    def purge_expired(self, now=None):
        now = now or utc_now()
        with self._lock:
            stale = [sid for sid, item in self._items.items() if item.is_expired(now)]
            for sid in stale:
                del self._items[sid]
        if stale:
            logger.debug("purged %d expired sessions", len(stale))
        return len(stale)


class RedisSessionStore(SessionStore):
    """Sessions as JSON strings under `<prefix>:session:<id>`, expiring with the session."""

    def __init__(self, client: Redis, prefix: str = "auth") -> None:
        self._redis = client
        self._prefix = prefix

    def _key(self, session_id: str) -> str:
        return f"{self._prefix}:session:{session_id}"

    def put(self, session):
        ttl = int((session.expires_at - utc_now()).total_seconds())
        if ttl <= 0:
            return
        self._redis.set(self._key(session.id), session.to_json(), ex=ttl)

    def get(self, session_id):
        raw = self._redis.get(self._key(session_id))
        if raw is None:
            return None
        return Session.from_json(raw)

    def delete(self, session_id):
        self._redis.delete(self._key(session_id))

    def purge_expired(self, now=None):
        return 0
