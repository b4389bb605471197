"""
VID Verifier custom exceptions.

Handlers map the first three to HTTP 500. CallbackDeliveryError and
NotificationError are only raised inside background tasks, where they are
logged and dropped.
"""


class VIDError(Exception):
    """Base exception for all VID Verifier errors."""
    pass


class AccessTokenError(VIDError):
    """Could not obtain an access token for the Verified ID request service."""
    pass


class PresentationRequestError(VIDError):
    """The request service rejected the presentation request or returned an
    unusable response (non-2xx, unparsable body, missing QR code or expiry).
    """

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class UnknownRequestError(VIDError):
    """A callback referenced a request id with no live context."""

    def __init__(self, request_id):
        self.request_id = request_id
        super().__init__(f"No live context for request '{request_id}'")


class CallbackDeliveryError(VIDError):
    """Posting the verification result to the caller's URL failed."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class NotificationError(VIDError):
    """Posting a notification to the Teams webhook failed."""
    pass
