import base64
from datetime import datetime, timedelta, timezone

import base58
import pytest

from app.client.wallet import EvmAccountSigner, SolanaKeypairSigner
from app.core.errors import MessageExpired, MessageMismatch, SignatureInvalid
from app.core.networks import Network
from app.core.signature import (
    EvmSignatureVerifier,
    SolanaSignatureVerifier,
    format_timestamp,
    generate_nonce,
    get_verifier,
    parse_timestamp,
    solana_sign_in_message,
)
from app.services.nonce_store import NonceChallenge
from tests.messages import build_siwe_message

NOW = datetime.now(timezone.utc)


def make_challenge(address: str, network: Network) -> NonceChallenge:
    return NonceChallenge(
        nonce=generate_nonce(),
        address=address,
        network=network,
        domain="readia.test",
        uri="https://readia.test",
        issued_at=NOW,
        expires_at=NOW + timedelta(minutes=5),
    )


def as_dict(challenge: NonceChallenge) -> dict:
    return {"nonce": challenge.nonce, "domain": challenge.domain, "uri": challenge.uri}


class TestHelpers:
    def test_generate_nonce(self):
        assert len(generate_nonce()) == 32
        assert len(generate_nonce(4)) == 32
        assert generate_nonce() != generate_nonce()

    def test_solana_message_template(self):
        assert solana_sign_in_message("abc", "readia.test", "Readia.io") == (
            "Sign in to Readia.io\nNonce: abc\nDomain: readia.test"
        )

    def test_dispatch_by_network(self):
        assert isinstance(get_verifier(Network.BASE), EvmSignatureVerifier)
        assert isinstance(get_verifier(Network.SOLANA_DEVNET), SolanaSignatureVerifier)

    def test_format_timestamp_like_iso_string(self):
        moment = datetime(2025, 1, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)

        assert format_timestamp(moment) == "2025-01-01T12:00:00.123Z"

    def test_parse_timestamp(self):
        assert parse_timestamp("2025-01-01T12:00:00.123Z") == datetime(2025, 1, 1, 12, 0, 0, 123000, tzinfo=timezone.utc)
        assert parse_timestamp("2025-01-01T12:00:00").tzinfo is not None
        with pytest.raises(ValueError):
            parse_timestamp("yesterday")


class TestEvmSignatureVerifier:
    @pytest.fixture
    def signer(self):
        return EvmAccountSigner.generate()

    @pytest.fixture
    def challenge(self, signer):
        return make_challenge(signer.address, Network.BASE_SEPOLIA)

    def test_valid(self, signer, challenge):
        message = build_siwe_message(as_dict(challenge), signer.address)

        assert EvmSignatureVerifier().verify(message, signer.sign_message(message), challenge) is None

    def test_lowercase_address_in_message(self, signer, challenge):
        message = build_siwe_message(as_dict(challenge), signer.address).replace(signer.address, signer.address.lower())

        with pytest.raises(MessageMismatch):
            EvmSignatureVerifier().verify(message, signer.sign_message(message), challenge)

    @pytest.mark.parametrize("extra", [
        {"request_id": "r1"},
        {"resources": ["https://readia.test/x"]},
        {"not_before": format_timestamp(NOW - timedelta(minutes=1))},
    ])
    def test_fields_not_issued_are_rejected(self, signer, challenge, extra):
        message = build_siwe_message(as_dict(challenge), signer.address, **extra)

        with pytest.raises(MessageMismatch):
            EvmSignatureVerifier().verify(message, signer.sign_message(message), challenge)

    @pytest.mark.parametrize("overrides", [
        {"domain": "evil.test"},
        {"uri": "https://evil.test"},
        {"chain_id": 8453},
        {"nonce": "f" * 32},
        {"statement": "Sign in to Elsewhere"},
    ])
    def test_field_mismatch(self, signer, challenge, overrides):
        message = build_siwe_message(as_dict(challenge), signer.address, **overrides)

        with pytest.raises(MessageMismatch):
            EvmSignatureVerifier().verify(message, signer.sign_message(message), challenge)

    def test_other_address_in_message(self, signer, challenge):
        other = EvmAccountSigner.generate()
        message = build_siwe_message(as_dict(challenge), other.address)

        with pytest.raises(MessageMismatch):
            EvmSignatureVerifier().verify(message, other.sign_message(message), challenge)

    def test_not_siwe(self, signer, challenge):
        with pytest.raises(MessageMismatch):
            EvmSignatureVerifier().verify("hello", signer.sign_message("hello"), challenge)

    def test_expired(self, signer, challenge):
        message = build_siwe_message(as_dict(challenge), signer.address, issued_at=NOW - timedelta(minutes=10))

        with pytest.raises(MessageExpired):
            EvmSignatureVerifier().verify(message, signer.sign_message(message), challenge)

    def test_expiration_required(self, signer, challenge):
        message = build_siwe_message(as_dict(challenge), signer.address, expiration_time=None)

        with pytest.raises(MessageExpired):
            EvmSignatureVerifier().verify(message, signer.sign_message(message), challenge)

    def test_wrong_signer(self, signer, challenge):
        message = build_siwe_message(as_dict(challenge), signer.address)

        with pytest.raises(SignatureInvalid):
            EvmSignatureVerifier().verify(message, EvmAccountSigner.generate().sign_message(message), challenge)

    @pytest.mark.parametrize("signature", ["", "0x", "0xdeadbeef", "not-hex"])
    def test_garbage_signature(self, signer, challenge, signature):
        message = build_siwe_message(as_dict(challenge), signer.address)

        with pytest.raises(SignatureInvalid):
            EvmSignatureVerifier().verify(message, signature, challenge)


class TestSolanaSignatureVerifier:
    @pytest.fixture
    def signer(self):
        return SolanaKeypairSigner.generate()

    @pytest.fixture
    def challenge(self, signer):
        return make_challenge(signer.address, Network.SOLANA)

    def message_for(self, challenge):
        return solana_sign_in_message(challenge.nonce, challenge.domain, "Readia.io")

    def test_valid_base64(self, signer, challenge):
        message = self.message_for(challenge)

        SolanaSignatureVerifier().verify(message, signer.sign_message(message), challenge)

    def test_valid_base58(self, signer, challenge):
        message = self.message_for(challenge)
        raw = base64.b64decode(signer.sign_message(message))

        SolanaSignatureVerifier().verify(message, base58.b58encode(raw).decode(), challenge)

    def test_message_mismatch(self, signer, challenge):
        message = solana_sign_in_message(challenge.nonce, "evil.test", "Readia.io")

        with pytest.raises(MessageMismatch):
            SolanaSignatureVerifier().verify(message, signer.sign_message(message), challenge)

    def test_wrong_key(self, challenge):
        message = self.message_for(challenge)

        with pytest.raises(SignatureInvalid):
            SolanaSignatureVerifier().verify(message, SolanaKeypairSigner.generate().sign_message(message), challenge)

    @pytest.mark.parametrize("signature", ["", "AAAA", "zz" * 64])
    def test_malformed_signature(self, challenge, signature):
        with pytest.raises(SignatureInvalid):
            SolanaSignatureVerifier().verify(self.message_for(challenge), signature, challenge)
