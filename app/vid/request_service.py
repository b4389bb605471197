"""Client for the Verified ID request service createPresentationRequest API."""

import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from .api_models import CreatePresentationRequest, CreateRequestResponse
from .exceptions import PresentationRequestError

log = logging.getLogger(__name__)


class RequestServiceClient:
    """Creates presentation requests on behalf of callers.

    Uses a persistent httpx session for connection reuse.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the client.

        Args:
            url: Full URL of the createPresentationRequest endpoint.
            timeout: Request timeout in seconds.
            client: Shared HTTP client (created lazily when None).
        """
        self.url = url
        self._timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def create_presentation_request(
        self,
        request: CreatePresentationRequest,
        access_token: str,
    ) -> CreateRequestResponse:
        """Submit a presentation request.

        Args:
            request: The presentation request to create.
            access_token: Bearer token for the request service.

        Returns:
            The parsed response, guaranteed to carry a QR code and expiry.

        Raises:
            PresentationRequestError: On transport errors, non-2xx responses,
                or a response without a QR code or expiry.
        """
        body = request.model_dump(mode="json", by_alias=True, exclude_none=True)
        headers = {"Authorization": f"Bearer {access_token}"}

        try:
            response = await self._get_client().post(self.url, json=body, headers=headers)
        except httpx.RequestError as e:
            raise PresentationRequestError(f"Request service unreachable: {e}")

        if not response.is_success:
            log.error(
                f"Failed to create presentation request: {response.status_code}: "
                f"'{response.text[:500]}'"
            )
            raise PresentationRequestError(
                "Failed to create presentation request",
                status_code=response.status_code,
            )

        try:
            result = CreateRequestResponse.model_validate_json(response.content)
        except ValidationError as e:
            raise PresentationRequestError(f"Invalid createPresentationRequest response: {e}")

        if not result.qr_code:
            log.error("Received empty QR code for presentation request")
            raise PresentationRequestError("Response is missing the QR code")

        if not result.expiration:
            log.error("Received no expiry for presentation request")
            raise PresentationRequestError("Response is missing the expiry")

        return result


# Module-level singleton
_request_service_client: Optional[RequestServiceClient] = None


def get_request_service_client() -> RequestServiceClient:
    """Get or create the request service client singleton."""
    global _request_service_client
    if _request_service_client is None:
        from app.core.config import VID_HTTP_TIMEOUT, VID_REQUEST_SERVICE_URL

        _request_service_client = RequestServiceClient(
            url=VID_REQUEST_SERVICE_URL,
            timeout=VID_HTTP_TIMEOUT,
        )
    return _request_service_client


async def close_request_service_client() -> None:
    if _request_service_client is not None:
        await _request_service_client.close()


def reset_request_service_client() -> None:
    """Reset the request service client singleton (for testing)."""
    global _request_service_client
    _request_service_client = None
