"""
VID Verifier API models.

Inbound bodies from callers and the request service, the outbound
presentation request, and the result payload posted back to callers.
All wire formats are camelCase JSON.
"""

import uuid
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Caller-facing models
# =============================================================================

class StartFlowRequest(CamelModel):
    """Body of POST /api/createPresentationRequest."""

    # Correlation id passed through to the caller's callback
    state: str
    caller_callback_url: str
    # Shown in the wallet and in notifications, e.g. "Role activation"
    caller_name: Optional[str] = None
    credential_type: Optional[str] = None
    require_face_check: Optional[bool] = None


class VerificationResultCallback(CamelModel):
    """Result posted to the caller's callback URL."""

    request_id: str
    status: str
    message: Optional[str] = None
    face_check: Optional[Dict[str, Any]] = None


# =============================================================================
# Request service models
# =============================================================================

class Callback(CamelModel):
    url: str
    state: str


class CreatePresentationRequest(CamelModel):
    """Body sent to the request service createPresentationRequest API."""

    authority: str
    registration: Dict[str, Any]
    requested_credentials: List[Dict[str, Any]]
    include_qr_code: bool = Field(default=False, alias="includeQRCode")
    include_receipt: bool = False
    callback: Optional[Callback] = None


class CreateRequestResponse(CamelModel):
    """Response of the createPresentationRequest API.

    qr_code and expiration are only for this service; they are stripped
    before the response is relayed to the caller.
    """

    request_id: uuid.UUID
    url: str
    expiration: Optional[int] = Field(default=None, alias="expiry")
    qr_code: Optional[str] = None

    def for_caller(self) -> Dict[str, Any]:
        """Serialize without the QR code and expiry."""
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude={"expiration", "qr_code"},
        )


class PresentationCallbackRequest(CamelModel):
    """Presentation event posted by the request service to /api/callback.

    Only the fields this service acts on are modeled; others are ignored.
    """

    request_status: str
    request_id: uuid.UUID
    state: str
    face_check: Optional[Dict[str, Any]] = None
