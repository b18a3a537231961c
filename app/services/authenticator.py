"""
Session Authenticator

Turns a signed challenge into a session:

    NoncePending -> Verifying -> SessionIssued
                              -> Rejected

1. Load the challenge by nonce (NonceNotFound / NonceAlreadyUsed / NonceExpired)
2. Claim it with the store's compare-and-swap; a racing duplicate loses and
   gets NonceAlreadyUsed
3. Verify message and signature with the chain family's verifier
4. Resolve the author, mint the session and its bearer token

The nonce is claimed before the signature is checked, so a failed attempt
burns it too. Issuance is rate limited per address to keep that from being
used to lock a wallet out.
"""

import logging
import time
import uuid
from datetime import timedelta
from typing import Callable, Optional, Tuple

from app.core.config import settings
from app.core.errors import (
    AuthError,
    NonceAlreadyUsed,
    NonceExpired,
    NonceNotFound,
    Unauthenticated,
)
from app.core.jwt_utils import create_access_token, decode_access_token
from app.core.networks import Network
from app.core.signature import get_verifier
from app.services.authors import derived_author_uuid
from app.services.nonce_store import NonceStore, utc_now
from app.services.session_store import Session, SessionStore

logger = logging.getLogger(__name__)

AuthorResolver = Callable[[str, Network], str]


class SessionAuthenticator:
    def __init__(
        self,
        nonce_store: NonceStore,
        session_store: SessionStore,
        session_ttl_seconds: Optional[int] = None,
        resolve_author: AuthorResolver = derived_author_uuid,
        purge_interval: Optional[float] = None,
        clock=utc_now,
    ) -> None:
        self.nonce_store = nonce_store
        self.session_store = session_store
        self.session_ttl = timedelta(
            seconds=session_ttl_seconds or settings.ACCESS_TOKEN_EXPIRE_SECONDS
        )
        self.resolve_author = resolve_author
        self.purge_interval = (
            settings.STORE_PURGE_INTERVAL_SECONDS if purge_interval is None else purge_interval
        )
        self.clock = clock
        self._last_purge = time.monotonic()

    def verify(
        self,
        message: str,
        signature: str,
        nonce: str,
        resolve_author: Optional[AuthorResolver] = None,
    ) -> Tuple[str, Session]:
        """
        Verify a signed challenge and issue a session.

        Returns:
            (token, session)

        Raises:
            NonceNotFound, NonceExpired, NonceAlreadyUsed,
            MessageMismatch, MessageExpired, SignatureInvalid
        """
        nonce = (nonce or "").strip()
        now = self.clock()

        challenge = self.nonce_store.get(nonce) if nonce else None
        if challenge is None:
            raise NonceNotFound()
        if challenge.consumed:
            raise NonceAlreadyUsed()
        if challenge.is_expired(now):
            # left for purge_expired so a late replay still reads as expired
            raise NonceExpired()
        if not self.nonce_store.consume(nonce):
            raise NonceAlreadyUsed()

        try:
            get_verifier(challenge.network).verify(message, signature, challenge, now=now)
        except AuthError as e:
            logger.info(
                "rejected sign-in for %s on %s: %s",
                challenge.address, challenge.network.value, e.code,
            )
            raise

        author_uuid = (resolve_author or self.resolve_author)(challenge.address, challenge.network)
        session = Session(
            id=uuid.uuid4().hex,
            wallet_address=challenge.address,
            network=challenge.network,
            author_uuid=author_uuid,
            created_at=now,
            expires_at=now + self.session_ttl,
        )
        token = create_access_token(session)
        self.session_store.put(session)
        self._maybe_purge()

        logger.info(
            "session %s issued for %s on %s (nonce %s...)",
            session.id, session.wallet_address, session.network.value, nonce[:8],
        )
        return token, session

    def authorize(self, token: Optional[str]) -> Session:
        """
        Resolve a bearer token to its live session.

        Raises:
            Unauthenticated: token missing, malformed, expired, or its session is gone
        """
        payload = decode_access_token(token or "")
        session = self.session_store.get(payload["sid"])
        if session is None:
            raise Unauthenticated("Session not found")
        if session.is_expired(self.clock()):
            self.session_store.delete(session.id)
            raise Unauthenticated("Session expired")
        if session.wallet_address != payload["wallet_address"]:
            raise Unauthenticated("Invalid token payload")
        return session

    def invalidate(self, token: Optional[str]) -> None:
        """Log out. Unknown, expired or garbage tokens are ignored."""
        if not token:
            return
        try:
            payload = decode_access_token(token, verify_exp=False)
        except Unauthenticated:
            return
        self.session_store.delete(payload["sid"])
        logger.info("session %s invalidated", payload["sid"])

    def _maybe_purge(self) -> None:
        now = time.monotonic()
        if now - self._last_purge < self.purge_interval:
            return
        self._last_purge = now
        self.session_store.purge_expired(self.clock())
