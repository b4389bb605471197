"""Access tokens for the Verified ID request service.

Uses the OAuth 2.0 client credentials grant against Microsoft Entra ID.
The client secret is taken from configuration directly or, when a Key Vault
is configured, read once from Key Vault with DefaultAzureCredential.

Tokens are cached in memory and reused until shortly before they expire.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from .exceptions import AccessTokenError

log = logging.getLogger(__name__)

# Refresh this many seconds before the token's reported expiry
TOKEN_REFRESH_MARGIN_SECONDS = 60


@dataclass
class _CachedToken:
    access_token: str
    expires_at: float


def get_token_url(authority_host: str, tenant_id: str) -> str:
    """Get Entra ID token endpoint URL for a tenant."""
    return f"{authority_host.rstrip('/')}/{tenant_id}/oauth2/v2.0/token"


async def read_key_vault_secret(vault_url: str, secret_name: str) -> str:
    """Read a secret value from Azure Key Vault.

    Raises:
        AccessTokenError: If the secret cannot be read.
    """
    from azure.core.exceptions import AzureError
    from azure.identity.aio import DefaultAzureCredential
    from azure.keyvault.secrets.aio import SecretClient

    try:
        async with DefaultAzureCredential() as credential:
            async with SecretClient(vault_url=vault_url, credential=credential) as client:
                secret = await client.get_secret(secret_name)
    except AzureError as e:
        raise AccessTokenError(f"Failed to read secret '{secret_name}' from Key Vault: {e}")

    if not secret.value:
        raise AccessTokenError(f"Key Vault secret '{secret_name}' is empty")
    return secret.value


class AccessTokenProvider:
    """Acquires and caches client-credential tokens."""

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        scope: str,
        client_secret: str = "",
        key_vault_url: str = "",
        client_secret_name: str = "",
        authority_host: str = "https://login.microsoftonline.com",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.scope = scope
        self.authority_host = authority_host
        self._client_secret = client_secret or None
        self._key_vault_url = key_vault_url
        self._client_secret_name = client_secret_name
        self._timeout = timeout
        self._client = client
        self._clock = clock
        self._token: Optional[_CachedToken] = None
        self._lock = asyncio.Lock()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get_access_token(self) -> str:
        """Return a valid access token, acquiring a new one if needed.

        Raises:
            AccessTokenError: If configuration is incomplete or Entra ID
                refuses the request.
        """
        async with self._lock:
            now = self._clock()
            if self._token is not None and now < self._token.expires_at:
                return self._token.access_token

            self._token = await self._acquire_token()
            return self._token.access_token

    async def _client_secret_value(self) -> str:
        if self._client_secret is None:
            if not (self._key_vault_url and self._client_secret_name):
                raise AccessTokenError("No client secret or Key Vault secret configured")
            self._client_secret = await read_key_vault_secret(
                self._key_vault_url, self._client_secret_name
            )
            log.info(f"Loaded client secret '{self._client_secret_name}' from Key Vault")
        return self._client_secret

    async def _acquire_token(self) -> _CachedToken:
        if not self.tenant_id or not self.client_id:
            raise AccessTokenError("Tenant ID and client ID must be configured")

        data = {
            "client_id": self.client_id,
            "client_secret": await self._client_secret_value(),
            "scope": self.scope,
            "grant_type": "client_credentials",
        }
        token_url = get_token_url(self.authority_host, self.tenant_id)

        try:
            response = await self._get_client().post(
                token_url,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.RequestError as e:
            raise AccessTokenError(f"Token request failed: {e}")

        if response.status_code != 200:
            log.error(f"Token request failed: {response.status_code} - {response.text}")
            raise AccessTokenError(f"Token request failed: {response.status_code}")

        try:
            result = response.json()
            access_token = result["access_token"]
            expires_in = int(result.get("expires_in", 3600))
        except (ValueError, KeyError, TypeError) as e:
            raise AccessTokenError(f"Invalid token response: {e}")

        log.debug(f"Acquired access token for {self.scope} (expires_in={expires_in}s)")
        return _CachedToken(
            access_token=access_token,
            expires_at=self._clock() + max(0, expires_in - TOKEN_REFRESH_MARGIN_SECONDS),
        )


# Module-level singleton
_token_provider: Optional[AccessTokenProvider] = None


def get_token_provider() -> AccessTokenProvider:
    """Get or create the access token provider singleton."""
    global _token_provider
    if _token_provider is None:
        from app.core.config import (
            VID_AUTHORITY_HOST,
            VID_CLIENT_API_RESOURCE,
            VID_CLIENT_ID,
            VID_CLIENT_SECRET,
            VID_CLIENT_SECRET_NAME,
            VID_HTTP_TIMEOUT,
            VID_KEY_VAULT_URL,
            VID_TENANT_ID,
        )

        _token_provider = AccessTokenProvider(
            tenant_id=VID_TENANT_ID,
            client_id=VID_CLIENT_ID,
            scope=VID_CLIENT_API_RESOURCE,
            client_secret=VID_CLIENT_SECRET,
            key_vault_url=VID_KEY_VAULT_URL,
            client_secret_name=VID_CLIENT_SECRET_NAME,
            authority_host=VID_AUTHORITY_HOST,
            timeout=VID_HTTP_TIMEOUT,
        )
    return _token_provider


async def close_token_provider() -> None:
    if _token_provider is not None:
        await _token_provider.close()


def reset_token_provider() -> None:
    """Reset the token provider singleton (for testing)."""
    global _token_provider
    _token_provider = None
