"""
Wallet Signature Verification

This module checks that a sign-in message was signed by the wallet that
requested the challenge. It is polymorphic over chain family:

- EVM (Base, Base Sepolia): the wallet signs an EIP-4361 (SIWE) message with
  EIP-191 personal_sign. The message is rebuilt from the stored challenge and
  must match the signed text byte for byte, then the signer address is
  recovered from the signature and compared to the challenge address.
- Solana: the wallet signs a plain templated message
  ("Sign in to <app>\\nNonce: <nonce>\\nDomain: <domain>") with its Ed25519 key;
  the signature is checked against the base58 public key (the address).

Verification is pure given (message, signature, challenge, now): the only
state it reads is the challenge the caller already loaded from the nonce store.
"""

import base64
import binascii
import logging
import secrets
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Dict, Optional

import base58
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from eth_account import Account
from eth_account.messages import encode_defunct
from siwe import SiweMessage, VerificationError

from app.core.config import settings
from app.core.errors import MessageExpired, MessageMismatch, SignatureInvalid
from app.core.networks import ChainFamily, Network, addresses_equal, decode_solana_address

if TYPE_CHECKING:
    from app.services.nonce_store import NonceChallenge

logger = logging.getLogger(__name__)

NONCE_NUM_BYTES = 16  # 128 bits = 32 hex characters
ED25519_SIGNATURE_BYTES = 64


def generate_nonce(num_bytes: int = NONCE_NUM_BYTES) -> str:
    """
    Generate a cryptographically secure random nonce for wallet authentication.

    Hex output keeps the nonce alphanumeric, which EIP-4361 requires.
    """
    if num_bytes < NONCE_NUM_BYTES:
        num_bytes = NONCE_NUM_BYTES
    return secrets.token_hex(num_bytes)


def format_timestamp(moment: datetime) -> str:
    """Format like Date.toISOString(): UTC with millisecond precision."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def parse_timestamp(value) -> datetime:
    """Parse an RFC 3339 timestamp from a SIWE field; naive values are taken as UTC."""
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def solana_sign_in_message(nonce: str, domain: str, app_name: Optional[str] = None) -> str:
    """The exact text a Solana wallet signs for a challenge."""
    return f"Sign in to {app_name or settings.APP_NAME}\nNonce: {nonce}\nDomain: {domain}"


def _decode_signature_bytes(value: str) -> bytes:
    """
    Helper: decode a Solana signature sent as base64, base58 or hex.

    Browser wallets hand back raw bytes that the client base64-encodes, while
    CLI tooling usually prints base58. Only a 64-byte result is accepted.
    """
    value = (value or "").strip()
    if not value:
        raise SignatureInvalid("Signature is required")

    decoders = (
        lambda v: base64.b64decode(v, validate=True),
        base58.b58decode,
        lambda v: binascii.unhexlify(v[2:] if v.startswith("0x") else v),
    )
    for decode in decoders:
        try:
            raw = decode(value)
        except (binascii.Error, ValueError):
            continue
        if len(raw) == ED25519_SIGNATURE_BYTES:
            return raw
    raise SignatureInvalid("Signature must be a 64-byte Ed25519 signature")


class SignatureVerifier(ABC):
    """Shared capability of every chain family."""

    family: ChainFamily

    @abstractmethod
    def verify(
        self,
        message: str,
        signature: str,
        challenge: "NonceChallenge",
        now: Optional[datetime] = None,
    ) -> None:
        """Return None when valid, raise MessageMismatch/MessageExpired/SignatureInvalid otherwise."""


class EvmSignatureVerifier(SignatureVerifier):
    family = ChainFamily.EVM

    def __init__(self, statement: Optional[str] = None) -> None:
        self.statement = statement

    def expected_message(self, challenge: "NonceChallenge", signed: SiweMessage) -> str:
        """
        Rebuild the SIWE message from the stored challenge.

        Only issuedAt and expirationTime are taken from the client's message;
        everything that binds the login comes from the challenge.
        """
        return SiweMessage(
            domain=challenge.domain,
            address=challenge.address,
            statement=self.statement or settings.sign_in_statement,
            uri=challenge.uri,
            version="1",
            chain_id=challenge.network.chain_id,
            nonce=challenge.nonce,
            issued_at=str(signed.issued_at),
            expiration_time=str(signed.expiration_time) if signed.expiration_time else None,
        ).prepare_message()

    def verify(self, message, signature, challenge, now=None):
        now = now or datetime.now(timezone.utc)
        try:
            signed = SiweMessage.from_message(message)
        except (ValueError, VerificationError) as e:
            raise MessageMismatch(f"Malformed sign-in message: {e}")

        # the server issues no notBefore, requestId or resources
        if signed.not_before or signed.request_id or signed.resources:
            raise MessageMismatch("Sign-in message carries fields that were not issued")

        if message != self.expected_message(challenge, signed):
            raise MessageMismatch()

        if not signed.expiration_time:
            raise MessageExpired("Sign-in message has no expiration time")
        try:
            expires_at = parse_timestamp(signed.expiration_time)
            parse_timestamp(signed.issued_at)
        except ValueError as e:
            raise MessageMismatch(f"Invalid timestamp: {e}")
        if expires_at <= now:
            raise MessageExpired()

        try:
            recovered = Account.recover_message(encode_defunct(text=message), signature=signature)
        except Exception as e:
            # eth_account raises a mix of ValueError/BadSignature/eth_keys errors
            logger.debug("EVM signature recovery failed: %s", e)
            raise SignatureInvalid()

        if not addresses_equal(recovered, challenge.address, challenge.network):
            raise SignatureInvalid("Signature was not produced by the claimed address")


class SolanaSignatureVerifier(SignatureVerifier):
    family = ChainFamily.SOLANA

    def __init__(self, app_name: Optional[str] = None) -> None:
        self.app_name = app_name

    def expected_message(self, challenge: "NonceChallenge") -> str:
        return solana_sign_in_message(challenge.nonce, challenge.domain, self.app_name)

    def verify(self, message, signature, challenge, now=None):
        if message != self.expected_message(challenge):
            raise MessageMismatch()

        signature_bytes = _decode_signature_bytes(signature)
        public_key_bytes = decode_solana_address(challenge.address)

        try:
            Ed25519PublicKey.from_public_bytes(public_key_bytes).verify(
                signature_bytes, message.encode("utf-8")
            )
        except (InvalidSignature, ValueError):
            raise SignatureInvalid()


_VERIFIERS: Dict[ChainFamily, SignatureVerifier] = {
    ChainFamily.EVM: EvmSignatureVerifier(),
    ChainFamily.SOLANA: SolanaSignatureVerifier(),
}


def get_verifier(network: Network) -> SignatureVerifier:
    """Dispatch on the explicit network of the challenge."""
    return _VERIFIERS[network.family]
