"""Tests for the request correlation store.

Covers:
- retention window = max(0, expiration - now) + 300s
- all fields of a request expire together
- caller name fallback
- expiration lookup used by the callback flow
"""

import asyncio
import uuid

import pytest

from app.core.config import DEFAULT_CALLER_NAME, RETENTION_GRACE_SECONDS
from app.vid.cache import ExpiringStore
from app.vid.request_store import RequestStore, retention_ttl


@pytest.fixture
def store(clock):
    return RequestStore(ExpiringStore(clock=clock))


@pytest.fixture
def request_id():
    return uuid.uuid4()


class TestRetentionTTL:
    """Test the retention window computation."""

    def test_future_expiration_adds_grace(self):
        assert retention_ttl(1600, now=1000) == 600 + RETENTION_GRACE_SECONDS

    def test_past_expiration_keeps_grace_only(self):
        assert retention_ttl(900, now=1000) == RETENTION_GRACE_SECONDS

    def test_grace_is_five_minutes(self):
        assert RETENTION_GRACE_SECONDS == 300


class TestRecordAndRead:
    """Test writing and reading request context fields."""

    @pytest.mark.asyncio
    async def test_caller_context_scenario(self, store, clock, request_id):
        """Status + caller context are immediately readable."""
        expiration = int(clock.now) + 600

        await store.record_status(request_id, "request_created", expiration)
        await store.record_caller_context(request_id, "https://caller/hook", "Alice", expiration)

        assert await store.try_get_callback_url(request_id) == "https://caller/hook"
        assert await store.get_caller_name(request_id) == "Alice"
        assert await store.try_get_status(request_id) == "request_created"

    @pytest.mark.asyncio
    async def test_expiration_round_trip(self, store, clock, request_id):
        """try_get_expiration returns the expiration used for the TTL."""
        expiration = int(clock.now) + 120

        await store.record_status(request_id, "request_created", expiration)

        assert await store.try_get_expiration(request_id) == expiration

    @pytest.mark.asyncio
    async def test_missing_caller_name_falls_back(self, store, clock, request_id):
        expiration = int(clock.now) + 600

        await store.record_status(request_id, "request_created", expiration)
        await store.record_caller_context(request_id, "https://caller/hook", None, expiration)

        assert await store.get_caller_name(request_id) == DEFAULT_CALLER_NAME

    @pytest.mark.asyncio
    async def test_status_update_keeps_caller_context(self, store, clock, request_id):
        expiration = int(clock.now) + 600
        await store.record_status(request_id, "request_created", expiration)
        await store.record_caller_context(request_id, "https://caller/hook", "Alice", expiration)

        await store.record_status(request_id, "request_retrieved", expiration)

        assert await store.try_get_status(request_id) == "request_retrieved"
        assert await store.try_get_callback_url(request_id) == "https://caller/hook"
        assert await store.get_caller_name(request_id) == "Alice"

    @pytest.mark.asyncio
    async def test_concurrent_field_writes_are_not_lost(self, store, clock, request_id):
        expiration = int(clock.now) + 600

        await asyncio.gather(
            store.record_status(request_id, "request_created", expiration),
            store.record_caller_context(request_id, "https://caller/hook", "Alice", expiration),
        )

        assert await store.try_get_expiration(request_id) == expiration
        assert await store.try_get_callback_url(request_id) == "https://caller/hook"


class TestUnknownRequests:
    """Test reads for ids with no live context."""

    @pytest.mark.asyncio
    async def test_never_recorded(self, store, request_id):
        assert await store.try_get_expiration(request_id) is None
        assert await store.try_get_callback_url(request_id) is None
        assert await store.try_get_status(request_id) is None
        assert await store.get_caller_name(request_id) == DEFAULT_CALLER_NAME

    @pytest.mark.asyncio
    async def test_caller_context_without_status_has_no_expiration(self, store, clock, request_id):
        """Expiration lookup requires a recorded status."""
        expiration = int(clock.now) + 600

        await store.record_caller_context(request_id, "https://caller/hook", "Alice", expiration)

        assert await store.try_get_expiration(request_id) is None
        assert await store.try_get_callback_url(request_id) == "https://caller/hook"

    @pytest.mark.asyncio
    async def test_zero_expiration_is_unset(self, store, request_id):
        await store.record_status(request_id, "request_created", 0)

        assert await store.try_get_status(request_id) == "request_created"
        assert await store.try_get_expiration(request_id) is None


class TestExpiry:
    """Test that contexts vanish after the retention window."""

    @pytest.mark.asyncio
    async def test_readable_within_grace_period(self, store, clock, request_id):
        expiration = int(clock.now) + 600
        await store.record_status(request_id, "request_created", expiration)

        clock.advance(600 + 299)

        assert await store.try_get_expiration(request_id) == expiration

    @pytest.mark.asyncio
    async def test_gone_after_retention_window(self, store, clock, request_id):
        """All fields disappear together once expiration + 300s has passed."""
        expiration = int(clock.now) + 600
        await store.record_status(request_id, "request_created", expiration)
        await store.record_caller_context(request_id, "https://caller/hook", "Alice", expiration)

        clock.advance(905)

        assert await store.try_get_expiration(request_id) is None
        assert await store.try_get_status(request_id) is None
        assert await store.try_get_callback_url(request_id) is None
        assert await store.get_caller_name(request_id) == DEFAULT_CALLER_NAME

    @pytest.mark.asyncio
    async def test_status_update_does_not_extend_retention(self, store, clock, request_id):
        """Re-recording with the same expiration keeps the same deadline."""
        expiration = int(clock.now) + 600
        await store.record_status(request_id, "request_created", expiration)

        clock.advance(500)
        await store.record_status(request_id, "request_retrieved", expiration)

        clock.advance(401)
        assert await store.try_get_status(request_id) is None

    @pytest.mark.asyncio
    async def test_late_callback_gets_grace_period(self, store, clock, request_id):
        """A write after the nominal expiry is still kept for the grace period."""
        expiration = int(clock.now) + 60
        await store.record_status(request_id, "request_created", expiration)

        clock.advance(120)
        await store.record_status(request_id, "presentation_verified", expiration)

        clock.advance(RETENTION_GRACE_SECONDS - 1)
        assert await store.try_get_status(request_id) == "presentation_verified"
