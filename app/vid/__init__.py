"""Verified ID presentation request handling.

Request contexts are kept in memory between the start call and the request
service's callback; see request_store for the retention rules.
"""

from .cache import CacheMetrics, ExpiringStore
from .dispatch import BackgroundDispatcher, get_dispatcher
from .exceptions import (
    AccessTokenError,
    CallbackDeliveryError,
    NotificationError,
    PresentationRequestError,
    UnknownRequestError,
    VIDError,
)
from .presentation import PresentationService, get_presentation_service
from .request_store import RequestContext, RequestStore, get_request_store, retention_ttl

__all__ = [
    # Stores
    "CacheMetrics",
    "ExpiringStore",
    "RequestContext",
    "RequestStore",
    "get_request_store",
    "retention_ttl",
    # Orchestration
    "BackgroundDispatcher",
    "get_dispatcher",
    "PresentationService",
    "get_presentation_service",
    # Exceptions
    "VIDError",
    "AccessTokenError",
    "PresentationRequestError",
    "UnknownRequestError",
    "CallbackDeliveryError",
    "NotificationError",
]
