"""Delivers verification results to the caller's callback URL."""

import logging
from typing import Optional

import httpx

from .api_models import VerificationResultCallback
from .exceptions import CallbackDeliveryError

log = logging.getLogger(__name__)


class CallerCallbackClient:
    """POSTs VerificationResultCallback payloads to caller URLs.

    No retries: one attempt per verified presentation.
    """

    def __init__(self, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
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

    async def send(self, callback_url: str, result: VerificationResultCallback) -> None:
        """Post the result.

        Raises:
            CallbackDeliveryError: On transport errors or a non-2xx response.
        """
        body = result.model_dump(mode="json", by_alias=True, exclude_none=True)

        try:
            response = await self._get_client().post(callback_url, json=body)
        except httpx.RequestError as e:
            raise CallbackDeliveryError(f"Caller callback request failed: {e}")

        if not response.is_success:
            log.error(
                f"Caller callback for request '{result.request_id}' failed "
                f"with status code {response.status_code}"
            )
            raise CallbackDeliveryError(
                f"Caller callback failed with status {response.status_code}",
                status_code=response.status_code,
            )


# Module-level singleton
_caller_callback_client: Optional[CallerCallbackClient] = None


def get_caller_callback_client() -> CallerCallbackClient:
    """Get or create the caller callback client singleton."""
    global _caller_callback_client
    if _caller_callback_client is None:
        from app.core.config import VID_HTTP_TIMEOUT

        _caller_callback_client = CallerCallbackClient(timeout=VID_HTTP_TIMEOUT)
    return _caller_callback_client


async def close_caller_callback_client() -> None:
    if _caller_callback_client is not None:
        await _caller_callback_client.close()


def reset_caller_callback_client() -> None:
    """Reset the caller callback client singleton (for testing)."""
    global _caller_callback_client
    _caller_callback_client = None
