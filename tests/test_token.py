"""Tests for the client credentials access token provider."""

from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs

import httpx
import pytest

from app.vid.exceptions import AccessTokenError
from app.vid.token import AccessTokenProvider, get_token_url

AUTHORITY = "https://login.example.com"
SCOPE = "3db474b9-6a0c-4840-96ac-1fceb342124f/.default"


def _provider(handler, clock, **kwargs):
    defaults = dict(
        tenant_id="tenant-1",
        client_id="client-1",
        scope=SCOPE,
        client_secret="s3cret",
        authority_host=AUTHORITY,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        clock=clock,
    )
    defaults.update(kwargs)
    return AccessTokenProvider(**defaults)


def _token_handler(requests, expires_in=3600):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json={"access_token": f"token-{len(requests)}", "expires_in": expires_in},
        )
    return handler


class TestTokenUrl:
    def test_token_url(self):
        assert (
            get_token_url("https://login.microsoftonline.com/", "tenant-1")
            == "https://login.microsoftonline.com/tenant-1/oauth2/v2.0/token"
        )


class TestAcquireToken:
    """Test the token request itself."""

    @pytest.mark.asyncio
    async def test_client_credentials_form(self, clock):
        requests = []
        provider = _provider(_token_handler(requests), clock)

        token = await provider.get_access_token()

        assert token == "token-1"
        request = requests[0]
        assert str(request.url) == f"{AUTHORITY}/tenant-1/oauth2/v2.0/token"
        form = parse_qs(request.content.decode())
        assert form == {
            "client_id": ["client-1"],
            "client_secret": ["s3cret"],
            "scope": [SCOPE],
            "grant_type": ["client_credentials"],
        }

    @pytest.mark.asyncio
    async def test_error_status_raises(self, clock):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": "invalid_client"})

        provider = _provider(handler, clock)

        with pytest.raises(AccessTokenError, match="401"):
            await provider.get_access_token()

    @pytest.mark.asyncio
    async def test_transport_error_raises(self, clock):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        provider = _provider(handler, clock)

        with pytest.raises(AccessTokenError, match="Token request failed"):
            await provider.get_access_token()

    @pytest.mark.asyncio
    async def test_response_without_token_raises(self, clock):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"token_type": "Bearer"})

        provider = _provider(handler, clock)

        with pytest.raises(AccessTokenError, match="Invalid token response"):
            await provider.get_access_token()

    @pytest.mark.asyncio
    async def test_missing_identity_config_raises(self, clock):
        requests = []
        provider = _provider(_token_handler(requests), clock, tenant_id="")

        with pytest.raises(AccessTokenError, match="must be configured"):
            await provider.get_access_token()
        assert requests == []

    @pytest.mark.asyncio
    async def test_no_secret_source_raises(self, clock):
        requests = []
        provider = _provider(_token_handler(requests), clock, client_secret="")

        with pytest.raises(AccessTokenError, match="No client secret"):
            await provider.get_access_token()
        assert requests == []


class TestTokenCaching:
    """Test token reuse and refresh."""

    @pytest.mark.asyncio
    async def test_token_reused_until_refresh_margin(self, clock):
        requests = []
        provider = _provider(_token_handler(requests, expires_in=3600), clock)

        assert await provider.get_access_token() == "token-1"
        clock.advance(3500)
        assert await provider.get_access_token() == "token-1"
        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_token_refreshed_near_expiry(self, clock):
        requests = []
        provider = _provider(_token_handler(requests, expires_in=3600), clock)

        await provider.get_access_token()
        clock.advance(3541)

        assert await provider.get_access_token() == "token-2"
        assert len(requests) == 2


class TestKeyVaultSecret:
    """Test reading the client secret from Key Vault."""

    @pytest.mark.asyncio
    async def test_secret_read_once_from_key_vault(self, clock):
        requests = []
        provider = _provider(
            _token_handler(requests, expires_in=0),
            clock,
            client_secret="",
            key_vault_url="https://vault.example.com",
            client_secret_name="vid-client-secret",
        )

        with patch(
            "app.vid.token.read_key_vault_secret",
            new=AsyncMock(return_value="vault-secret"),
        ) as mock_read:
            await provider.get_access_token()
            await provider.get_access_token()

        mock_read.assert_awaited_once_with("https://vault.example.com", "vid-client-secret")
        assert len(requests) == 2
        for request in requests:
            assert parse_qs(request.content.decode())["client_secret"] == ["vault-secret"]

    @pytest.mark.asyncio
    async def test_key_vault_failure_propagates(self, clock):
        requests = []
        provider = _provider(
            _token_handler(requests),
            clock,
            client_secret="",
            key_vault_url="https://vault.example.com",
            client_secret_name="vid-client-secret",
        )

        with patch(
            "app.vid.token.read_key_vault_secret",
            new=AsyncMock(side_effect=AccessTokenError("vault unavailable")),
        ):
            with pytest.raises(AccessTokenError, match="vault unavailable"):
                await provider.get_access_token()
        assert requests == []
