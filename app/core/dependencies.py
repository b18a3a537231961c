"""
FastAPI Authentication Dependencies
This module wires the auth core together and provides the dependency
functions route handlers use to reach it.
Usage in endpoints:
    @router.get("/protected")
    def protected_route(session: Session = Depends(get_current_session)):
        # session is the live session named by the bearer token
        return {"user": session.wallet_address}
Flow:
1. Client sends request with Authorization: Bearer <token> header
2. FastAPI calls get_current_session() dependency
3. extract_bearer_token() pulls the token out of the header
4. SessionAuthenticator.authorize() validates the JWT and the session record
5. Returns the Session to the route handler, or raises Unauthenticated (401)
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header

from app.core.cache import redis_manager
from app.core.config import settings
from app.core.errors import Unauthenticated
from app.services.authenticator import SessionAuthenticator
from app.services.challenge_issuer import ChallengeIssuer
from app.services.nonce_store import MemoryNonceStore, NonceStore, RedisNonceStore
from app.services.rate_limiter import RateLimiter
from app.services.session_store import MemorySessionStore, RedisSessionStore, Session, SessionStore

logger = logging.getLogger(__name__)


@dataclass
class AuthServices:
    nonce_store: NonceStore
    session_store: SessionStore
    issuer: ChallengeIssuer
    authenticator: SessionAuthenticator
    backend: str


def build_auth_services(
    nonce_store: Optional[NonceStore] = None,
    session_store: Optional[SessionStore] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> AuthServices:
    """Build the issuer/authenticator pair over Redis when configured, memory otherwise."""
    if redis_manager.configured:
        client = redis_manager.client()
        if nonce_store is None:
            nonce_store = RedisNonceStore(client, prefix=settings.REDIS_KEY_PREFIX)
        if session_store is None:
            session_store = RedisSessionStore(client, prefix=settings.REDIS_KEY_PREFIX)
    else:
        if nonce_store is None:
            nonce_store = MemoryNonceStore()
        if session_store is None:
            session_store = MemorySessionStore()
    backend = "redis" if isinstance(nonce_store, RedisNonceStore) else "memory"
    if rate_limiter is None:
        rate_limiter = RateLimiter(
            max_per_minute=settings.NONCE_RATE_LIMIT_PER_MINUTE,
            burst=settings.NONCE_RATE_LIMIT_BURST,
        )

    logger.info("auth stores backed by %s", backend)
    return AuthServices(
        nonce_store=nonce_store,
        session_store=session_store,
        issuer=ChallengeIssuer(nonce_store, rate_limiter=rate_limiter),
        authenticator=SessionAuthenticator(nonce_store, session_store),
        backend=backend,
    )


@lru_cache(maxsize=1)
def get_auth_services() -> AuthServices:
    return build_auth_services()


def get_issuer(services: AuthServices = Depends(get_auth_services)) -> ChallengeIssuer:
    return services.issuer


def get_authenticator(services: AuthServices = Depends(get_auth_services)) -> SessionAuthenticator:
    return services.authenticator


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """
    Extract the token from an Authorization header.
    Supports both "Bearer <token>" and plain token formats.
    Returns None when the header is missing or empty.
    """
    if not authorization:
        return None

    authorization = authorization.strip()
    if authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    else:
        token = authorization
    return token or None


def get_current_session(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    authenticator: SessionAuthenticator = Depends(get_authenticator),
) -> Session:
    """
    returning the live session for the bearer token.
    """
    token = extract_bearer_token(authorization)
    if token is None:
        raise Unauthenticated("Authorization header missing")
    return authenticator.authorize(token)
