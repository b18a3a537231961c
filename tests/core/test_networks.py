import pytest

from app.core.errors import InvalidAddress, UnsupportedNetwork
from app.core.networks import (
    ChainFamily,
    Network,
    addresses_equal,
    family_of_address,
    normalize_address,
    parse_network,
)

EVM_ADDRESS = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
SOLANA_ADDRESS = "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"


class TestNetworks:
    def test_families_and_chain_ids(self):
        assert Network.BASE.family is ChainFamily.EVM
        assert Network.SOLANA_DEVNET.family is ChainFamily.SOLANA
        assert Network.BASE.chain_id == 8453
        assert Network.BASE_SEPOLIA.chain_id == 84532
        assert Network.SOLANA.chain_id is None

    @pytest.mark.parametrize("value", ["base", " Base-Sepolia ", Network.SOLANA])
    def test_parse_network(self, value):
        assert isinstance(parse_network(value), Network)

    @pytest.mark.parametrize("value", ["", None, "ethereum", "base-mainnet"])
    def test_parse_network_rejects(self, value):
        with pytest.raises(UnsupportedNetwork):
            parse_network(value)

    def test_family_of_address(self):
        assert family_of_address(EVM_ADDRESS) is ChainFamily.EVM
        assert family_of_address(SOLANA_ADDRESS) is ChainFamily.SOLANA


class TestNormalizeAddress:
    def test_evm_is_checksummed(self):
        assert normalize_address(EVM_ADDRESS.lower(), Network.BASE) == EVM_ADDRESS
        assert normalize_address(f"  {EVM_ADDRESS}  ", Network.BASE) == EVM_ADDRESS

    @pytest.mark.parametrize("address", ["", "0x123", "5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed", "0xZZZeb6053F3E94C9b9A09f33669435E7Ef1BeAed"])
    def test_evm_rejects(self, address):
        with pytest.raises(InvalidAddress):
            normalize_address(address, Network.BASE_SEPOLIA)

    def test_solana_is_kept(self):
        assert normalize_address(SOLANA_ADDRESS, Network.SOLANA) == SOLANA_ADDRESS

    @pytest.mark.parametrize("address", [EVM_ADDRESS, "abc", "0OIl" * 11])
    def test_solana_rejects(self, address):
        with pytest.raises(InvalidAddress):
            normalize_address(address, Network.SOLANA)

    def test_addresses_equal(self):
        assert addresses_equal(EVM_ADDRESS, EVM_ADDRESS.lower(), Network.BASE)
        assert not addresses_equal(SOLANA_ADDRESS, SOLANA_ADDRESS.lower(), Network.SOLANA)
