"""Presentation request orchestration.

Start flow (caller -> POST /api/createPresentationRequest):
1. Acquire an access token for the request service
2. Build and submit the presentation request
3. Record status "request_created" and the caller context, both keyed by
   the request service's request id and sharing its expiry
4. Announce the pending presentation with its QR code
5. Return the request id and deep link, without the QR code or expiry

Callback flow (request service -> POST /api/callback):
1. Look up the stored expiry; an unknown request id is an error
2. Record the new status
3. On "presentation_verified" only: announce it, then deliver the result to
   the caller in the background and announce successful delivery

Nothing is stored unless the start flow's upstream calls both succeed. In the
callback flow, notifications and the caller callback run detached: their
failures are logged and never change the response to the request service.
"""

import logging
import uuid
from typing import Any, Dict, Optional

from app.core.config import (
    CALLER_STATUS_VERIFIED,
    DEFAULT_CALLER_NAME,
    STATUS_PRESENTATION_VERIFIED,
    STATUS_REQUEST_CREATED,
)

from .api_models import (
    Callback,
    CreatePresentationRequest,
    CreateRequestResponse,
    PresentationCallbackRequest,
    StartFlowRequest,
    VerificationResultCallback,
)
from .caller_callback import CallerCallbackClient
from .dispatch import BackgroundDispatcher
from .exceptions import CallbackDeliveryError, UnknownRequestError
from .notifications import NotificationCenter
from .request_service import RequestServiceClient
from .request_store import RequestStore
from .token import AccessTokenProvider

log = logging.getLogger(__name__)

VERIFIED_MESSAGE = "Verified ID presentation completed successfully."


def build_presentation_request(
    request: StartFlowRequest,
    authority: str,
    default_credential_type: str,
    callback_url: str,
) -> CreatePresentationRequest:
    """Translate a caller's start request into a request service payload.

    Defaults: credential type from configuration, face check required,
    caller name DEFAULT_CALLER_NAME.
    """
    credential_type = request.credential_type or default_credential_type
    require_face_check = True if request.require_face_check is None else request.require_face_check
    caller_name = request.caller_name or DEFAULT_CALLER_NAME
    purpose = f"Verified ID presentation for {caller_name}"

    credential: Dict[str, Any] = {
        "type": credential_type,
        "purpose": purpose,
        "schema": {"uri": credential_type},
    }
    if require_face_check:
        credential["configuration"] = {
            "validation": {
                "faceCheck": {"sourcePhotoClaimName": "photo"},
            },
        }

    return CreatePresentationRequest(
        authority=authority,
        registration={"clientName": caller_name, "purpose": purpose},
        requested_credentials=[credential],
        include_qr_code=True,
        include_receipt=False,
        callback=Callback(url=callback_url, state=request.state),
    )


class PresentationService:
    """Runs the start and callback flows against injected collaborators."""

    def __init__(
        self,
        store: RequestStore,
        token_provider: AccessTokenProvider,
        request_service: RequestServiceClient,
        notifications: NotificationCenter,
        caller_callbacks: CallerCallbackClient,
        dispatcher: BackgroundDispatcher,
        authority: str,
        default_credential_type: str,
        callback_url: str,
    ):
        self.store = store
        self.token_provider = token_provider
        self.request_service = request_service
        self.notifications = notifications
        self.caller_callbacks = caller_callbacks
        self.dispatcher = dispatcher
        self.authority = authority
        self.default_credential_type = default_credential_type
        self.callback_url = callback_url

    async def create_presentation_request(self, request: StartFlowRequest) -> CreateRequestResponse:
        """Run the start flow.

        Returns:
            The request service response with QR code and expiry removed.

        Raises:
            AccessTokenError: If no token could be obtained.
            PresentationRequestError: If the request service call failed.
        """
        access_token = await self.token_provider.get_access_token()

        presentation_request = build_presentation_request(
            request,
            authority=self.authority,
            default_credential_type=self.default_credential_type,
            callback_url=self.callback_url,
        )
        log.info(
            f"Creating presentation request with authority: {self.authority}, "
            f"credential: {presentation_request.requested_credentials[0]['type']}, "
            f"faceCheck: {'configuration' in presentation_request.requested_credentials[0]}, "
            f"callback: {self.callback_url}"
        )

        created = await self.request_service.create_presentation_request(
            presentation_request, access_token
        )
        log.info(f"Presentation request created successfully. RequestId: {created.request_id}")

        await self.store.record_status(created.request_id, STATUS_REQUEST_CREATED, created.expiration)
        await self.store.record_caller_context(
            created.request_id,
            request.caller_callback_url,
            request.caller_name,
            created.expiration,
        )

        self.notifications.send_presentation_pending(
            created.request_id,
            created.qr_code,
            request.caller_name or DEFAULT_CALLER_NAME,
        )

        return created.model_copy(update={"expiration": None, "qr_code": None})

    async def handle_callback(self, callback: PresentationCallbackRequest) -> None:
        """Run the callback flow.

        Returns once the status is recorded; notification and caller
        delivery continue in the background.

        Raises:
            UnknownRequestError: If no live context exists for the request id.
        """
        request_id = callback.request_id
        log.info(
            f"Callback received. RequestId: {request_id}, "
            f"RequestStatus: {callback.request_status}"
        )

        expiration = await self.store.try_get_expiration(request_id)
        if expiration is None:
            raise UnknownRequestError(request_id)

        await self.store.record_status(request_id, callback.request_status, expiration)

        if callback.request_status != STATUS_PRESENTATION_VERIFIED:
            return

        log.info(
            f"Presentation request '{request_id}' verified successfully. "
            f"Face check: {callback.face_check}"
        )
        caller_name = await self.store.get_caller_name(request_id)
        self.notifications.send_presentation_verified(request_id, caller_name)
        await self._start_caller_callback(callback)

    async def _start_caller_callback(self, callback: PresentationCallbackRequest) -> None:
        callback_url = await self.store.try_get_callback_url(callback.request_id)
        if callback_url is None:
            log.error(
                f"No caller callback URL found for request '{callback.request_id}'. "
                f"Skipping callback."
            )
            return

        result = VerificationResultCallback(
            request_id=callback.state,
            status=CALLER_STATUS_VERIFIED,
            message=VERIFIED_MESSAGE,
            face_check=callback.face_check,
        )
        log.info(
            f"Performing caller callback for request '{callback.request_id}' "
            f"to '{callback_url}'"
        )
        self.dispatcher.spawn(
            self._deliver_caller_callback(callback.request_id, callback_url, result),
            name=f"caller-callback-{callback.request_id}",
        )

    async def _deliver_caller_callback(
        self,
        request_id: uuid.UUID,
        callback_url: str,
        result: VerificationResultCallback,
    ) -> None:
        try:
            await self.caller_callbacks.send(callback_url, result)
        except CallbackDeliveryError as e:
            log.error(f"Failed to perform caller callback for request '{request_id}': {e}")
            return

        log.info(f"Successfully performed caller callback for request '{request_id}'")
        caller_name = await self.store.get_caller_name(request_id)
        self.notifications.send_callback_completed(request_id, caller_name)


# Module-level singleton
_presentation_service: Optional[PresentationService] = None


def get_presentation_service() -> PresentationService:
    """Get or create the presentation service singleton.

    Collaborators are the module singletons; configuration is read from
    app.core.config on first access.
    """
    global _presentation_service
    if _presentation_service is None:
        from app.core.config import (
            VID_DEFAULT_AUTHORITY,
            VID_DEFAULT_CREDENTIAL_TYPE,
            callback_url,
        )

        from .caller_callback import get_caller_callback_client
        from .dispatch import get_dispatcher
        from .notifications import get_notification_center
        from .request_service import get_request_service_client
        from .request_store import get_request_store
        from .token import get_token_provider

        _presentation_service = PresentationService(
            store=get_request_store(),
            token_provider=get_token_provider(),
            request_service=get_request_service_client(),
            notifications=get_notification_center(),
            caller_callbacks=get_caller_callback_client(),
            dispatcher=get_dispatcher(),
            authority=VID_DEFAULT_AUTHORITY,
            default_credential_type=VID_DEFAULT_CREDENTIAL_TYPE,
            callback_url=callback_url(),
        )
    return _presentation_service


def reset_presentation_service() -> None:
    """Reset the presentation service singleton (for testing)."""
    global _presentation_service
    _presentation_service = None
