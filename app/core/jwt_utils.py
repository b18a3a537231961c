"""
JWT Token Utilities

This module handles the bearer tokens handed out after a wallet signature has
been verified.

Flow:
1. User verifies wallet signature -> create_access_token() signs a JWT for the new session
2. User makes API request with JWT in Authorization header -> decode_access_token() validates it
3. The authenticator looks the `sid` claim up in the session store, so a
   logged-out session stops working even though its JWT has not expired yet

The JWT contains:
- sid: The server-side session id
- sub: The author uuid linked to the wallet
- wallet_address: The authenticated wallet address
- network: The network the wallet signed in on
- iat / exp: Issued at and expiration timestamps (ACCESS_TOKEN_EXPIRE_SECONDS)
"""

from typing import Any, Dict

import jwt

from app.core.config import settings
from app.core.errors import Unauthenticated
from app.services.session_store import Session

REQUIRED_CLAIMS = ("sid", "sub", "wallet_address", "network", "exp")


def _encode_key() -> str:
    if not settings.ENCODE_KEY:
        raise RuntimeError("ENCODE_KEY is not configured")
    return settings.ENCODE_KEY


def create_access_token(session: Session) -> str:
    """
    Create a JWT access token for a freshly minted session.

    Args:
        session: The session the token should name

    Returns:
        A JWT token string that can be used in Authorization: Bearer <token> header
    """
    payload: Dict[str, Any] = {
        "sid": session.id,
        "sub": session.author_uuid,
        "wallet_address": session.wallet_address,
        "network": session.network.value,
        "iat": int(session.created_at.timestamp()),
        "exp": int(session.expires_at.timestamp()),
    }
    return jwt.encode(payload, _encode_key(), algorithm=settings.ENCODE_ALGORITHM)


def decode_access_token(token: str, verify_exp: bool = True) -> Dict[str, Any]:
    """
    Verify and decode a JWT token.

    Args:
        token: The JWT token string from Authorization header
        verify_exp: Set to False to read an expired token (logout does this)

    Returns:
        Decoded JWT payload dictionary

    Raises:
        Unauthenticated: If token is missing, expired, invalid, or missing claims
    """
    if not token:
        raise Unauthenticated("Missing token")

    try:
        payload = jwt.decode(
            token,
            _encode_key(),
            algorithms=[settings.ENCODE_ALGORITHM],
            options={"verify_exp": verify_exp},
        )
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token expired")
    except jwt.InvalidTokenError:
        raise Unauthenticated("Invalid token")

    if any(claim not in payload for claim in REQUIRED_CLAIMS):
        raise Unauthenticated("Invalid token payload")

    return payload
