"""
Supported networks and per-chain address rules.

Each network belongs to a chain family. The family decides the address syntax,
the message format the wallet signs and the signature scheme used to verify it.
"""

from enum import Enum
from typing import Dict, Optional

import base58
from eth_utils import is_hex_address, to_checksum_address

from app.core.errors import InvalidAddress, UnsupportedNetwork

SOLANA_PUBLIC_KEY_BYTES = 32


class ChainFamily(str, Enum):
    EVM = "evm"
    SOLANA = "solana"


class Network(str, Enum):
    BASE = "base"
    BASE_SEPOLIA = "base-sepolia"
    SOLANA = "solana"
    SOLANA_DEVNET = "solana-devnet"

    @property
    def family(self) -> ChainFamily:
        return NETWORK_FAMILY[self]

    @property
    def chain_id(self) -> Optional[int]:
        """EIP-155 chain id for EVM networks, None for Solana."""
        return EVM_CHAIN_IDS.get(self)


NETWORK_FAMILY: Dict[Network, ChainFamily] = {
    Network.BASE: ChainFamily.EVM,
    Network.BASE_SEPOLIA: ChainFamily.EVM,
    Network.SOLANA: ChainFamily.SOLANA,
    Network.SOLANA_DEVNET: ChainFamily.SOLANA,
}

EVM_CHAIN_IDS: Dict[Network, int] = {
    Network.BASE: 8453,
    Network.BASE_SEPOLIA: 84532,
}


def parse_network(value: str | Network | None) -> Network:
    """Resolve a network name, raising UnsupportedNetwork for anything else."""
    if isinstance(value, Network):
        return value
    if not value:
        raise UnsupportedNetwork("Network is required")
    try:
        return Network(value.strip().lower())
    except ValueError:
        raise UnsupportedNetwork(f"Unsupported network: {value}")


def family_of_address(address: str) -> ChainFamily:
    """Guess the chain family from address syntax (EVM addresses are 0x-prefixed)."""
    return ChainFamily.EVM if address.strip().lower().startswith("0x") else ChainFamily.SOLANA


def decode_solana_address(address: str) -> bytes:
    try:
        raw = base58.b58decode(address)
    except ValueError:
        raise InvalidAddress("Solana address must be base58 encoded")
    if len(raw) != SOLANA_PUBLIC_KEY_BYTES:
        raise InvalidAddress("Solana address must encode a 32-byte public key")
    return raw


def normalize_address(address: str, network: Network) -> str:
    """
    Validate an address for the network's chain family and return its canonical form.

    EVM addresses are returned EIP-55 checksummed; Solana addresses are
    case-sensitive base58 and are returned as given (trimmed).
    """
    if not isinstance(address, str) or not address.strip():
        raise InvalidAddress("Address is required")
    address = address.strip()

    if network.family is ChainFamily.EVM:
        if not is_hex_address(address) or not address.startswith(("0x", "0X")):
            raise InvalidAddress("EVM address must be 0x followed by 40 hex characters")
        return to_checksum_address(address)

    decode_solana_address(address)
    return address


def addresses_equal(left: str, right: str, network: Network) -> bool:
    if network.family is ChainFamily.EVM:
        return left.lower() == right.lower()
    return left == right
