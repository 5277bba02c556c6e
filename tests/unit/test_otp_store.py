"""Tests for the in-memory OTP store."""

import pytest

from app.core.otp.store import OtpStore


class TestOtpStoreBasics:
    """Test put/get/remove."""

    @pytest.fixture
    def store(self, clock):
        return OtpStore(capacity=3, ttl_seconds=600, clock=clock)

    def test_get_missing(self, store):
        """Unknown subject returns None."""
        assert store.get("9000000001") is None

    def test_put_then_get(self, store):
        """Stored code is returned."""
        store.put("9000000001", "123456")
        assert store.get("9000000001") == "123456"

    def test_put_overwrites(self, store):
        """A second put for the same subject replaces the code."""
        store.put("9000000001", "111111")
        store.put("9000000001", "222222")

        assert store.get("9000000001") == "222222"
        assert len(store) == 1

    def test_remove(self, store):
        """Removed code is gone; removing twice is a no-op."""
        store.put("9000000001", "123456")
        store.remove("9000000001")
        store.remove("9000000001")

        assert store.get("9000000001") is None

    def test_codes_keep_leading_zeros(self, store):
        """Codes are stored as strings, untouched."""
        store.put("9000000001", "004521")
        assert store.get("9000000001") == "004521"

    def test_contains(self, store, clock):
        store.put("9000000001", "123456")
        assert "9000000001" in store
        assert "9000000002" not in store

        clock.advance(600)
        assert "9000000001" not in store

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            OtpStore(capacity=0)
        with pytest.raises(ValueError):
            OtpStore(ttl_seconds=0)


class TestOtpStoreExpiry:
    """Test TTL handling."""

    @pytest.fixture
    def store(self, clock):
        return OtpStore(capacity=3, ttl_seconds=600, clock=clock)

    def test_valid_just_before_expiry(self, store, clock):
        store.put("9000000001", "123456")
        clock.advance(599.9)
        assert store.get("9000000001") == "123456"

    def test_expired_at_ttl(self, store, clock):
        """A code is invalid from the moment its TTL elapses."""
        store.put("9000000001", "123456")
        clock.advance(600)
        assert store.get("9000000001") is None

    def test_expired_read_deletes(self, store, clock):
        store.put("9000000001", "123456")
        clock.advance(601)
        store.get("9000000001")

        assert store._records == {}

    def test_overwrite_resets_expiry(self, store, clock):
        store.put("9000000001", "111111")
        clock.advance(500)
        store.put("9000000001", "222222")
        clock.advance(500)

        assert store.get("9000000001") == "222222"

    def test_purge_expired(self, store, clock):
        store.put("9000000001", "111111")
        clock.advance(300)
        store.put("9000000002", "222222")
        clock.advance(300)

        assert store.purge_expired() == 1
        assert len(store) == 1
        assert store.get("9000000002") == "222222"


class TestOtpStoreCapacity:
    """Test eviction when full."""

    @pytest.fixture
    def store(self, clock):
        return OtpStore(capacity=3, ttl_seconds=600, clock=clock)

    def test_never_exceeds_capacity(self, store):
        for i in range(10):
            store.put(f"90000000{i:02d}", f"{i:06d}")
            assert len(store) <= 3

    def test_evicts_least_recently_used(self, store):
        """Inserting into a full store drops the oldest entry."""
        store.put("A", "000001")
        store.put("B", "000002")
        store.put("C", "000003")
        store.put("D", "000004")

        assert store.get("A") is None
        assert store.get("B") == "000002"
        assert store.get("C") == "000003"
        assert store.get("D") == "000004"

    def test_get_refreshes_recency(self, store):
        """Reading an entry protects it from the next eviction."""
        store.put("A", "000001")
        store.put("B", "000002")
        store.put("C", "000003")

        store.get("A")
        store.put("D", "000004")

        assert store.get("A") == "000001"
        assert store.get("B") is None

    def test_expired_entries_evicted_first(self, store, clock):
        """A full store drops expired entries before any valid one."""
        store.put("X", "000009")
        clock.advance(100)
        store.put("A", "000001")
        store.put("B", "000002")

        # X becomes most recently used but expires first
        assert store.get("X") == "000009"
        clock.advance(500)

        store.put("D", "000004")

        assert store.get("A") == "000001"
        assert store.get("B") == "000002"
        assert store.get("D") == "000004"
        assert store.get("X") is None

    def test_overwrite_in_full_store_does_not_evict(self, store):
        store.put("A", "000001")
        store.put("B", "000002")
        store.put("C", "000003")
        store.put("A", "000009")

        assert len(store) == 3
        assert store.get("B") == "000002"

    def test_clear(self, store):
        store.put("A", "000001")
        store.clear()
        assert len(store) == 0
