"""Per-request context shared between the start flow and the callback flow.

A presentation request is created in one HTTP call and completed in another,
possibly minutes later. The context recorded at creation (status, expiry,
where and how to tell the caller) is kept in memory keyed by the request
service's request id.

All fields of a request live in one RequestContext record, so they expire
together. Every write recomputes the retention window from the expiration it
is given:

    ttl = max(0, expiration - now) + RETENTION_GRACE_SECONDS

The grace period lets a callback that arrives just after the nominal expiry
still find its context.
"""

import logging
import uuid
from dataclasses import dataclass, replace
from typing import Optional

from app.core.config import DEFAULT_CALLER_NAME, RETENTION_GRACE_SECONDS

from .cache import ExpiringStore

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestContext:
    """Stored state for one presentation request.

    Attributes:
        request_id: Request id assigned by the request service.
        status: Latest status reported for the request.
        expiration: Unix epoch seconds after which the presentation flow is
            dead. None means unset.
        callback_url: Caller URL to post the verification result to.
        caller_name: Caller display name for notifications.
    """

    request_id: uuid.UUID
    status: Optional[str] = None
    expiration: Optional[int] = None
    callback_url: Optional[str] = None
    caller_name: Optional[str] = None


def retention_ttl(expiration: int, now: float) -> float:
    """Seconds a context stays readable, given its presentation expiration."""
    return max(0.0, expiration - now) + RETENTION_GRACE_SECONDS


class RequestStore:
    """Request contexts keyed by request id, backed by an ExpiringStore."""

    def __init__(self, store: Optional[ExpiringStore[RequestContext]] = None):
        self._store: ExpiringStore[RequestContext] = store or ExpiringStore()

    @property
    def backing_store(self) -> ExpiringStore[RequestContext]:
        return self._store

    async def record_status(
        self,
        request_id: uuid.UUID,
        status: str,
        expiration: int,
    ) -> None:
        """Set the status of a request, creating its context if needed.

        The expiration is stored alongside the status so the callback flow,
        which does not receive one, can re-derive the same retention window.
        """
        ttl = retention_ttl(expiration, self._store.now())

        def apply(ctx: Optional[RequestContext]) -> RequestContext:
            ctx = ctx or RequestContext(request_id=request_id)
            return replace(ctx, status=status, expiration=expiration)

        await self._store.update(request_id, apply, ttl)
        log.info(
            f"Updated status of request '{request_id}' to '{status}' "
            f"with time to live: {ttl:.0f}s"
        )

    async def record_caller_context(
        self,
        request_id: uuid.UUID,
        callback_url: str,
        caller_name: Optional[str],
        expiration: int,
    ) -> None:
        """Store the caller's callback URL and display name for a request.

        Call once, right after the first record_status(), with the same
        expiration. A caller_name of None leaves the name unset so readers
        fall back to DEFAULT_CALLER_NAME.
        """
        ttl = retention_ttl(expiration, self._store.now())

        def apply(ctx: Optional[RequestContext]) -> RequestContext:
            ctx = ctx or RequestContext(request_id=request_id)
            ctx = replace(ctx, callback_url=callback_url)
            if caller_name is not None:
                ctx = replace(ctx, caller_name=caller_name)
            return ctx

        await self._store.update(request_id, apply, ttl)
        log.debug(f"Stored caller context for request '{request_id}'")

    async def try_get_callback_url(self, request_id: uuid.UUID) -> Optional[str]:
        """Caller callback URL, or None if the context is gone or has none."""
        ctx = await self._store.get(request_id)
        if ctx is None or ctx.callback_url is None:
            log.warning(f"Failed to get caller callback URL for request '{request_id}'")
            return None
        return ctx.callback_url

    async def get_caller_name(self, request_id: uuid.UUID) -> str:
        """Caller display name, or DEFAULT_CALLER_NAME when unknown."""
        ctx = await self._store.get(request_id)
        if ctx is not None and ctx.caller_name is not None:
            return ctx.caller_name
        return DEFAULT_CALLER_NAME

    async def try_get_status(self, request_id: uuid.UUID) -> Optional[str]:
        """Latest recorded status, or None if the context is gone."""
        ctx = await self._store.get(request_id)
        if ctx is None or ctx.status is None:
            log.warning(f"Failed to get status for request '{request_id}'")
            return None
        return ctx.status

    async def try_get_expiration(self, request_id: uuid.UUID) -> Optional[int]:
        """Stored presentation expiration, or None.

        None when the context is gone, has no status yet, or its expiration
        is unset (0 is treated as unset).
        """
        ctx = await self._store.get(request_id)
        if ctx is None or ctx.status is None or not ctx.expiration:
            log.warning(f"Failed to get expiration for request '{request_id}'")
            return None
        return ctx.expiration


# Module-level singleton
_request_store: Optional[RequestStore] = None


def get_request_store() -> RequestStore:
    """Get or create the request store singleton."""
    global _request_store
    if _request_store is None:
        _request_store = RequestStore()
    return _request_store


def reset_request_store() -> None:
    """Reset the request store singleton (for testing)."""
    global _request_store
    _request_store = None
