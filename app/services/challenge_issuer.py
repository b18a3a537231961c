"""
Challenge Issuer

Hands out single-use sign-in challenges. Each request produces a fresh nonce
bound to the (normalized) address, the network and the configured domain/uri,
stored in the nonce store until it is claimed or expires.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from app.core.config import settings
from app.core.errors import RateLimited
from app.core.networks import Network, normalize_address, parse_network
from app.core.signature import generate_nonce
from app.services.nonce_store import NonceChallenge, NonceStore, utc_now
from app.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NonceIssue:
    """What the client needs to build the message it signs."""

    nonce: str
    network: Network
    domain: str
    uri: str
    statement: str
    issued_at: datetime
    expires_at: datetime


class ChallengeIssuer:
    def __init__(
        self,
        nonce_store: NonceStore,
        domain: Optional[str] = None,
        uri: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
        rate_limiter: Optional[RateLimiter] = None,
        purge_interval: Optional[float] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.nonce_store = nonce_store
        self.domain = domain or settings.AUTH_DOMAIN
        self.uri = uri or settings.AUTH_URI
        self.ttl = timedelta(seconds=ttl_seconds or settings.NONCE_EXPIRY_SECONDS)
        self.rate_limiter = rate_limiter
        self.purge_interval = (
            settings.STORE_PURGE_INTERVAL_SECONDS if purge_interval is None else purge_interval
        )
        self.clock = clock
        self._last_purge = time.monotonic()

    def issue_nonce(self, address: str, network: str | Network) -> NonceIssue:
        """
        Create and store a challenge for address on network.

        Raises:
            UnsupportedNetwork: network is not one of the supported networks
            InvalidAddress: address is malformed for the network's chain family
            RateLimited: too many challenges requested for this address
        """
        network = parse_network(network)
        address = normalize_address(address, network)

        # EVM addresses are already checksummed here, Solana base58 is case-sensitive
        if self.rate_limiter and not self.rate_limiter.is_allowed(f"{network.value}:{address}"):
            logger.warning("nonce rate limit hit for %s on %s", address, network.value)
            raise RateLimited()

        issued_at = self.clock()
        challenge = NonceChallenge(
            nonce=generate_nonce(),
            address=address,
            network=network,
            domain=self.domain,
            uri=self.uri,
            issued_at=issued_at,
            expires_at=issued_at + self.ttl,
        )
        self.nonce_store.put(challenge)
        self._maybe_purge()

        logger.info("issued nonce %s... for %s on %s", challenge.nonce[:8], address, network.value)
        return NonceIssue(
            nonce=challenge.nonce,
            network=network,
            domain=challenge.domain,
            uri=challenge.uri,
            statement=settings.sign_in_statement,
            issued_at=challenge.issued_at,
            expires_at=challenge.expires_at,
        )

    def _maybe_purge(self) -> None:
        now = time.monotonic()
        if now - self._last_purge < self.purge_interval:
            return
        self._last_purge = now
        self.nonce_store.purge_expired(self.clock())
        if self.rate_limiter:
            self.rate_limiter.cleanup_stale()
