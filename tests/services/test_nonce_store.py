import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

from app.core.networks import Network
from app.services.nonce_store import MemoryNonceStore, NonceChallenge, RedisNonceStore

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_challenge(nonce: str = "a" * 32, expires_in: int = 300) -> NonceChallenge:
    return NonceChallenge(
        nonce=nonce,
        address="0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed",
        network=Network.BASE,
        domain="readia.test",
        uri="https://readia.test",
        issued_at=NOW,
        expires_at=NOW + timedelta(seconds=expires_in),
    )


class TestNonceChallenge:
    def test_is_expired_at_boundary(self):
        challenge = make_challenge(expires_in=60)

        assert not challenge.is_expired(NOW + timedelta(seconds=59))
        assert challenge.is_expired(NOW + timedelta(seconds=60))

    def test_json_keeps_fields_but_not_consumed_flag(self):
        challenge = make_challenge()
        restored = NonceChallenge.from_json(challenge.to_json())

        assert restored == challenge
        assert "consumed" not in challenge.to_json()
        assert NonceChallenge.from_json(challenge.to_json(), consumed=True).consumed


class TestMemoryNonceStore:
    def test_put_get(self):
        store = MemoryNonceStore()
        store.put(make_challenge())

        assert store.get("a" * 32) == make_challenge()
        assert store.get("missing") is None

    def test_consume_only_once(self):
        store = MemoryNonceStore()
        store.put(make_challenge())

        assert store.consume("a" * 32) is True
        assert store.consume("a" * 32) is False
        assert store.get("a" * 32).consumed is True

    def test_consume_unknown(self):
        assert MemoryNonceStore().consume("nope") is False

    def test_concurrent_consume_has_single_winner(self):
        store = MemoryNonceStore()
        store.put(make_challenge())
        results = []
        start = threading.Barrier(16)

        def claim():
            start.wait()
            results.append(store.consume("a" * 32))

        threads = [threading.Thread(target=claim) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        assert results.count(False) == 15

    def test_delete(self):
        store = MemoryNonceStore()
        store.put(make_challenge())
        store.delete("a" * 32)
        store.delete("a" * 32)

        assert len(store) == 0

    def test_purge_keeps_records_during_retention(self):
        store = MemoryNonceStore(retention_seconds=60)
        store.put(make_challenge("a" * 32, expires_in=10))
        store.put(make_challenge("b" * 32, expires_in=600))

        assert store.purge_expired(NOW + timedelta(seconds=30)) == 0
        assert store.purge_expired(NOW + timedelta(seconds=120)) == 1
        assert store.get("a" * 32) is None
        assert store.get("b" * 32) is not None


class TestRedisNonceStore:
    def test_put_writes_json_with_ttl(self):
        client = Mock()
        store = RedisNonceStore(client, prefix="test", retention_seconds=100)
        challenge = make_challenge(expires_in=10**9)

        store.put(challenge)

        key, raw = client.set.call_args.args
        assert key == f"test:nonce:{challenge.nonce}"
        assert NonceChallenge.from_json(raw) == challenge
        assert client.set.call_args.kwargs["ex"] > 100

    def test_get_reads_claim_key(self):
        client = Mock()
        client.get.return_value = make_challenge().to_json()
        client.exists.return_value = 1
        store = RedisNonceStore(client, prefix="test")

        challenge = store.get("a" * 32)

        assert challenge.consumed is True
        client.exists.assert_called_once_with(f"test:nonce:{'a' * 32}:consumed")

    def test_get_missing(self):
        client = Mock()
        client.get.return_value = None

        assert RedisNonceStore(client).get("x") is None

    def test_consume_uses_set_nx(self):
        client = Mock()
        client.ttl.return_value = 250
        client.set.side_effect = [True, None]
        store = RedisNonceStore(client, prefix="test")

        assert store.consume("n") is True
        assert store.consume("n") is False
        client.set.assert_called_with("test:nonce:n:consumed", "1", nx=True, ex=250)

    def test_consume_when_challenge_gone(self):
        client = Mock()
        client.ttl.return_value = -2

        assert RedisNonceStore(client).consume("n") is False
        client.set.assert_not_called()

    def test_delete_removes_both_keys(self):
        client = Mock()
        RedisNonceStore(client, prefix="test").delete("n")

        client.delete.assert_called_once_with("test:nonce:n", "test:nonce:n:consumed")
