"""
Wallet side of the sign-in flow: signers and an observable wallet state.

WalletState stands in for the wallet connection a browser exposes. Listeners
subscribe explicitly and get back an unsubscribe callable; they are told about
every connect, account switch, network switch and disconnect.
"""

import base64
import logging
from threading import Lock
from typing import Callable, List, Optional, Protocol

import base58
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount

from app.core.networks import Network

logger = logging.getLogger(__name__)


class SigningRejected(Exception):
    """The wallet refused or the user dismissed the signature prompt."""


class WalletSigner(Protocol):
    address: str

    def sign_message(self, message: str) -> str:
        """Sign the UTF-8 message and return the encoded signature."""
        ...


class EvmAccountSigner:
    """EIP-191 personal_sign with a local eth_account key, signature as 0x hex."""

    def __init__(self, account: LocalAccount) -> None:
        self.account = account
        self.address = account.address

    @classmethod
    def generate(cls) -> "EvmAccountSigner":
        return cls(Account.create())

    @classmethod
    def from_key(cls, private_key: str) -> "EvmAccountSigner":
        return cls(Account.from_key(private_key))

    def sign_message(self, message: str) -> str:
        signed = self.account.sign_message(encode_defunct(text=message))
        return "0x" + signed.signature.hex().removeprefix("0x")


class SolanaKeypairSigner:
    """Ed25519 signing with the address as the base58 public key, signature as base64."""

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self.private_key = private_key
        public_bytes = private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        self.address = base58.b58encode(public_bytes).decode("ascii")

    @classmethod
    def generate(cls) -> "SolanaKeypairSigner":
        return cls(Ed25519PrivateKey.generate())

    def sign_message(self, message: str) -> str:
        signature = self.private_key.sign(message.encode("utf-8"))
        return base64.b64encode(signature).decode("ascii")


def normalize_caip_network(caip_network_id: Optional[str], fallback: Optional[Network] = None) -> Network:
    """
    Map a CAIP-2 network id (e.g. "eip155:84532", "solana:devnet") to a supported network.
    """
    if not caip_network_id:
        return fallback or Network.BASE_SEPOLIA

    if "solana" in caip_network_id:
        return Network.SOLANA_DEVNET if "devnet" in caip_network_id else Network.SOLANA

    # check the longer id first, "84532" contains "8453"
    if "84532" in caip_network_id:
        return Network.BASE_SEPOLIA
    if "8453" in caip_network_id:
        return Network.BASE

    return fallback or Network.BASE_SEPOLIA


WalletListener = Callable[["WalletState"], None]


class WalletState:
    """Observable wallet connection."""

    def __init__(self) -> None:
        self.signer: Optional[WalletSigner] = None
        self.caip_network_id: Optional[str] = None
        self._listeners: List[WalletListener] = []
        self._lock = Lock()

    @property
    def address(self) -> Optional[str]:
        return self.signer.address if self.signer else None

    @property
    def is_connected(self) -> bool:
        return self.signer is not None

    def subscribe(self, listener: WalletListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def connect(self, signer: WalletSigner, caip_network_id: Optional[str] = None) -> None:
        self.signer = signer
        self.caip_network_id = caip_network_id
        self._notify()

    def switch_account(self, signer: WalletSigner) -> None:
        self.signer = signer
        self._notify()

    def switch_network(self, caip_network_id: str) -> None:
        self.caip_network_id = caip_network_id
        self._notify()

    def disconnect(self) -> None:
        self.signer = None
        self._notify()

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(self)
