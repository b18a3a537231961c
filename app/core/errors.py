"""
Authentication Errors

Every failure the auth core can produce is an AuthError subclass carrying a
stable machine-readable code and the HTTP status it maps to. Services raise
them, and the handlers in main.py turn them into the
{"success": false, "error": ..., "code": ...} envelope.
"""

from fastapi import status


class AuthError(Exception):
    """Base class for auth-core failures."""

    code: str = "AUTH_ERROR"
    status_code: int = status.HTTP_400_BAD_REQUEST
    message: str = "Authentication failed"

    def __init__(self, message: str | None = None) -> None:
        if message:
            self.message = message
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code}


# bad input
class InvalidAddress(AuthError):
    code = "INVALID_ADDRESS"
    message = "Invalid wallet address"


class UnsupportedNetwork(AuthError):
    code = "UNSUPPORTED_NETWORK"
    message = "Unsupported network"


class RateLimited(AuthError):
    code = "RATE_LIMITED"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    message = "Too many nonce requests, try again shortly"


# stale or replayed challenge
class NonceNotFound(AuthError):
    code = "NONCE_NOT_FOUND"
    message = "Nonce not found"


class NonceExpired(AuthError):
    code = "NONCE_EXPIRED"
    message = "Nonce expired"


class NonceAlreadyUsed(AuthError):
    code = "NONCE_ALREADY_USED"
    message = "Nonce already used"


# cryptographic / protocol violations
class SignatureInvalid(AuthError):
    code = "SIGNATURE_INVALID"
    message = "Invalid signature"


class MessageMismatch(AuthError):
    code = "MESSAGE_MISMATCH"
    message = "Signed message does not match the issued challenge"


class MessageExpired(AuthError):
    code = "MESSAGE_EXPIRED"
    message = "Signed message has expired"


class Unauthenticated(AuthError):
    # the client maps this code to a re-authentication prompt
    code = "AUTH_401"
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Authentication required"


class InternalError(AuthError):
    code = "INTERNAL"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal server error"
