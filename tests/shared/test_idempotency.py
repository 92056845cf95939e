"""Tests for the idempotency stores (in-memory and SQLAlchemy)."""

from datetime import UTC, datetime, timedelta

import pytest
from shared.db import drop_db, make_engine, setup_db
from shared.errors import RequestInProgressError
from shared.idempotency import MemoryIdempotencyStore, SqlAlchemyIdempotencyStore, order_keys


@pytest.fixture(params=["memory", "sqlalchemy"])
def store(request):
    if request.param == "memory":
        yield MemoryIdempotencyStore(lease_seconds=60)
        return

    engine = make_engine("sqlite://")
    setup_db(engine)
    yield SqlAlchemyIdempotencyStore(engine, order_keys, lease_seconds=60)
    drop_db(engine)
    engine.dispose()


class TestClaim:
    def test_first_claim_owns_the_key(self, store):
        assert store.claim("k1", scope="place_order") is None
        record = store.get("k1")
        assert record.scope == "place_order"
        assert not record.is_finished

    def test_second_claim_while_running(self, store):
        store.claim("k1", scope="place_order")
        with pytest.raises(RequestInProgressError) as exc_info:
            store.claim("k1", scope="place_order")
        assert exc_info.value.key == "k1"

    def test_completed_result_replayed(self, store):
        store.claim("k1", scope="place_order")
        store.complete("k1", {"order_id": "ord-001"})

        previous = store.claim("k1", scope="place_order")

        assert previous.is_finished
        assert not previous.failed
        assert previous.result == {"order_id": "ord-001"}

    def test_failure_replayed(self, store):
        store.claim("k1", scope="place_order")
        store.fail("k1", {"error": "insufficient_stock"})

        previous = store.claim("k1", scope="place_order")

        assert previous.failed
        assert previous.result == {"error": "insufficient_stock"}

    def test_released_key_can_be_claimed_again(self, store):
        store.claim("k1", scope="place_order")
        store.release("k1")
        assert store.get("k1") is None
        assert store.claim("k1", scope="place_order") is None

    def test_release_keeps_finished_records(self, store):
        store.claim("k1", scope="place_order")
        store.complete("k1", {"order_id": "ord-001"})
        store.release("k1")
        assert store.get("k1").result == {"order_id": "ord-001"}

    def test_keys_are_independent(self, store):
        store.claim("k1", scope="place_order")
        assert store.claim("k2", scope="place_order") is None


class TestStaleClaims:
    def test_stale_claim_is_taken_over(self, store, monkeypatch):
        store.claim("k1", scope="place_order")
        later = datetime.now(UTC) + timedelta(seconds=120)

        class _Later(datetime):
            @classmethod
            def now(cls, tz=None):
                return later

        monkeypatch.setattr("shared.idempotency.datetime", _Later)

        assert store.claim("k1", scope="place_order") is None
