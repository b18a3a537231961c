"""
Client Auth Agent

Drives the three-step wallet sign-in against the API and keeps the resulting
bearer token:

1. POST /api/auth/nonce  -> challenge (nonce, domain, uri)
2. the wallet signs a SIWE message (EVM) or the templated Solana message
3. POST /api/auth/verify -> token, attached to later calls as
   Authorization: Bearer <token>

The agent holds at most one token. It drops it as soon as the wallet
disconnects or switches to another address, and when a protected call comes
back 401 it clears the token and flags `session_expired` instead of retrying.
"""

import json
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import requests
from siwe import SiweMessage

from app.client.wallet import SigningRejected, WalletState, normalize_caip_network
from app.core.config import settings
from app.core.networks import ChainFamily, Network, family_of_address
from app.core.signature import format_timestamp, solana_sign_in_message

logger = logging.getLogger(__name__)

DEFAULT_SIGN_TIMEOUT = 120.0
MESSAGE_VALIDITY = timedelta(minutes=5)


class AuthAgentError(Exception):
    """A sign-in step failed; the message is safe to show to the user."""


class AuthRequired(AuthAgentError):
    """A protected call was made without ever authenticating."""


class SessionExpired(AuthAgentError):
    """The server rejected a token that used to be valid."""


class TokenStorage:
    """Keeps the token in memory. FileTokenStorage persists it across runs."""

    def __init__(self) -> None:
        self._token: Optional[str] = None
        self._address: Optional[str] = None

    def load(self) -> tuple[Optional[str], Optional[str]]:
        return self._token, self._address

    def save(self, token: Optional[str], address: Optional[str]) -> None:
        self._token, self._address = token, address


class FileTokenStorage(TokenStorage):
    def __init__(self, path: str) -> None:
        super().__init__()
        self.path = path

    def load(self):
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return None, None
        except (OSError, ValueError) as e:
            logger.warning("ignoring unreadable token file %s: %s", self.path, e)
            return None, None
        return data.get("token"), data.get("address")

    def save(self, token, address):
        if token is None:
            if os.path.exists(self.path):
                os.remove(self.path)
            return
        with open(self.path, "w", encoding="utf-8") as fh:
            json.dump({"token": token, "address": address}, fh)


class AuthAgent:
    def __init__(
        self,
        wallet: WalletState,
        base_url: str = "http://localhost:3001",
        http: Any = None,
        storage: Optional[TokenStorage] = None,
        sign_timeout: float = DEFAULT_SIGN_TIMEOUT,
        app_name: Optional[str] = None,
    ) -> None:
        self.wallet = wallet
        self.base_url = base_url.rstrip("/")
        self.http = http if http is not None else requests.Session()
        self.storage = storage or TokenStorage()
        self.sign_timeout = sign_timeout
        self.app_name = app_name or settings.APP_NAME

        self.token, self.authenticated_address = self.storage.load()
        self.is_authenticating = False
        self.error: Optional[str] = None
        self.session_expired = False
        self.session: Optional[Dict[str, Any]] = None

        self._unsubscribe = wallet.subscribe(self._on_wallet_change)
        # a persisted token only survives if it belongs to the connected wallet
        self._on_wallet_change(wallet)

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    def close(self) -> None:
        self._unsubscribe()

    # wallet reactions

    def _on_wallet_change(self, wallet: WalletState) -> None:
        if not wallet.is_connected:
            if self.token or self.authenticated_address:
                logger.info("wallet disconnected, discarding session")
                self._clear_token()
            return
        if self.authenticated_address and wallet.address != self.authenticated_address:
            logger.info("wallet switched to %s, discarding session for %s", wallet.address, self.authenticated_address)
            self._clear_token()

    def _clear_token(self) -> None:
        self.token = None
        self.authenticated_address = None
        self.session = None
        self.storage.save(None, None)

    # sign-in

    def login(self) -> bool:
        """Run nonce -> sign -> verify. Returns True on success, False with `error` set otherwise."""
        signer = self.wallet.signer
        if signer is None:
            self.error = "Connect your wallet first"
            return False

        self.is_authenticating = True
        self.error = None
        try:
            address = signer.address
            is_evm = family_of_address(address) is ChainFamily.EVM
            network = normalize_caip_network(
                self.wallet.caip_network_id,
                Network.BASE_SEPOLIA if is_evm else Network.SOLANA,
            )

            challenge = self._post("/api/auth/nonce", {"address": address, "network": network.value})
            message = self._build_message(address, network, challenge)
            signature = self._sign(signer, message)
            result = self._post(
                "/api/auth/verify",
                {"message": message, "signature": signature, "nonce": challenge["nonce"]},
            )

            if self.wallet.address != address:
                raise AuthAgentError("Wallet changed during sign-in")

            self.token = result["token"]
            self.session = result.get("session")
            self.authenticated_address = address
            self.session_expired = False
            self.storage.save(self.token, address)
            logger.info("signed in as %s on %s", address, network.value)
            return True
        except (AuthAgentError, requests.RequestException, KeyError) as e:
            logger.warning("Authentication error: %s", e)
            self.error = str(e) or "Failed to authenticate"
            self._clear_token()
            return False
        finally:
            self.is_authenticating = False

    def _build_message(self, address: str, network: Network, challenge: Dict[str, Any]) -> str:
        if network.family is ChainFamily.SOLANA:
            return solana_sign_in_message(challenge["nonce"], challenge["domain"], self.app_name)

        now = datetime.now(timezone.utc)
        return SiweMessage(
            domain=challenge["domain"],
            address=address,
            statement=challenge.get("statement") or f"Sign in to {self.app_name}",
            uri=challenge["uri"],
            version="1",
            chain_id=network.chain_id,
            nonce=challenge["nonce"],
            issued_at=format_timestamp(now),
            expiration_time=format_timestamp(now + MESSAGE_VALIDITY),
        ).prepare_message()

    def _sign(self, signer, message: str) -> str:
        """Ask the wallet to sign; a dismissed or stalled prompt becomes a failure."""
        executor = ThreadPoolExecutor(max_workers=1)
        future = executor.submit(signer.sign_message, message)
        try:
            return future.result(timeout=self.sign_timeout)
        except FutureTimeout:
            future.cancel()
            raise AuthAgentError("Signature request timed out")
        except SigningRejected as e:
            raise AuthAgentError(str(e) or "Signature request was rejected")
        except Exception as e:
            raise AuthAgentError(f"Signing failed: {e}") from e
        finally:
            executor.shutdown(wait=False)

    def _post(self, path: str, body: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        response = self.http.post(self.base_url + path, json=body, headers=headers or {})
        try:
            payload = response.json()
        except ValueError:
            raise AuthAgentError(f"Unexpected response from {path} ({response.status_code})")
        if not payload.get("success") or "data" not in payload:
            raise AuthAgentError(payload.get("error") or f"Request to {path} failed")
        return payload["data"]

    # session use

    def logout(self) -> None:
        """Forget the token locally, then tell the server. Server errors are ignored."""
        current = self.token
        self._clear_token()
        self.error = None
        self.session_expired = False
        if not current:
            return
        try:
            self.http.post(
                self.base_url + "/api/auth/logout",
                json={},
                headers={"Authorization": f"Bearer {current}"},
            )
        except requests.RequestException as e:
            logger.warning("Logout request failed (ignored): %s", e)

    def auth_headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    def request(self, method: str, path: str, **kwargs):
        """
        Call a protected endpoint with the bearer token attached.

        Raises:
            AuthRequired: no token is held
            SessionExpired: the server answered 401 for the held token
        """
        if not self.token:
            raise AuthRequired("Authentication required")
        headers = dict(kwargs.pop("headers", None) or {})
        headers.update(self.auth_headers())
        response = self.http.request(method, self.base_url + path, headers=headers, **kwargs)
        if response.status_code == 401:
            self.handle_auth_error()
            raise SessionExpired("Session expired. Please authenticate again.")
        return response

    def handle_auth_error(self) -> None:
        """A protected call was rejected: drop the token and ask for re-authentication."""
        had_token = self.token is not None
        self._clear_token()
        if had_token:
            self.session_expired = True

    def clear_session_expired(self) -> None:
        self.session_expired = False
