"""Tests for the token exchange, refresh, and revocation client."""

from __future__ import annotations

import httpx
import pytest

from authflow.auth.endpoints import build_endpoints
from authflow.auth.token_client import TokenClient, tokens_from_response
from authflow.exceptions import RefreshError, TokenError
from authflow.models import AuthErrorCode, StoredTokens, TokenResponse


class TestTokensFromResponse:
    def test_absolute_expiry(self) -> None:
        response = TokenResponse(access_token="at", expires_in=300, refresh_token="rt")
        tokens = tokens_from_response(response, now=1000.0)
        assert tokens.expires_at == 1300.0
        assert tokens.refresh_token == "rt"
        assert tokens.token_type == "Bearer"

    def test_keeps_previous_refresh_and_id_token(self) -> None:
        previous = StoredTokens(
            access_token="old", refresh_token="rt-old", id_token="id-old", expires_at=1.0
        )
        tokens = tokens_from_response(
            TokenResponse(access_token="new", expires_in=60), now=0.0, previous=previous
        )
        assert tokens.access_token == "new"
        assert tokens.refresh_token == "rt-old"
        assert tokens.id_token == "id-old"

    def test_rotated_refresh_token_wins(self) -> None:
        previous = StoredTokens(access_token="old", refresh_token="rt-old", expires_at=1.0)
        tokens = tokens_from_response(
            TokenResponse(access_token="new", expires_in=60, refresh_token="rt-new"),
            now=0.0,
            previous=previous,
        )
        assert tokens.refresh_token == "rt-new"


class TestExchangeCode:
    @pytest.mark.asyncio
    async def test_posts_form(self, provider, token_client) -> None:
        provider.grant("at-1", refresh_token="rt-1", scope="openid", session_state="x")
        response = await token_client().exchange_code("code-1", "verifier", "http://x/cb")

        assert response.access_token == "at-1"
        assert response.refresh_token == "rt-1"
        url, form = provider.calls[0]
        assert url.endswith("/protocol/openid-connect/token")
        assert form == {
            "grant_type": "authorization_code",
            "client_id": "app1",
            "code": "code-1",
            "code_verifier": "verifier",
            "redirect_uri": "http://x/cb",
        }

    @pytest.mark.asyncio
    async def test_error_status_carries_body(self, provider, token_client) -> None:
        provider.fail(400, '{"error":"invalid_grant"}')
        with pytest.raises(TokenError) as exc_info:
            await token_client().exchange_code("c", "v", "http://x/cb")
        assert exc_info.value.code == AuthErrorCode.TOKEN_ERROR
        assert exc_info.value.details == '{"error":"invalid_grant"}'
        assert "400" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_transport_error(self, provider, token_client) -> None:
        provider.token_responses.append(httpx.ConnectError("connection refused"))
        with pytest.raises(TokenError):
            await token_client().exchange_code("c", "v", "http://x/cb")

    @pytest.mark.asyncio
    async def test_malformed_body(self, provider, token_client) -> None:
        provider.token_responses.append(httpx.Response(200, json={"token_type": "Bearer"}))
        with pytest.raises(TokenError):
            await token_client().exchange_code("c", "v", "http://x/cb")


class TestRefresh:
    @pytest.mark.asyncio
    async def test_posts_refresh_grant(self, provider, token_client) -> None:
        provider.grant("at-2")
        response = await token_client().refresh("rt-1")
        assert response.access_token == "at-2"
        assert provider.calls[0][1] == {
            "grant_type": "refresh_token",
            "client_id": "app1",
            "refresh_token": "rt-1",
        }

    @pytest.mark.asyncio
    async def test_error_status_not_retried(self, provider, token_client) -> None:
        provider.fail(400)
        provider.grant("never")
        with pytest.raises(RefreshError) as exc_info:
            await token_client(refresh_retries=2).refresh("rt-1")
        assert exc_info.value.code == AuthErrorCode.REFRESH_ERROR
        assert provider.grant_types() == ["refresh_token"]

    @pytest.mark.asyncio
    async def test_no_retry_by_default(self, provider, token_client) -> None:
        provider.token_responses.append(httpx.ConnectError("down"))
        provider.grant("never")
        with pytest.raises(RefreshError):
            await token_client().refresh("rt-1")
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_transport_error_retried_when_enabled(self, provider, token_client) -> None:
        provider.token_responses.append(httpx.ReadTimeout("slow"))
        provider.grant("at-2")
        response = await token_client(refresh_retries=1).refresh("rt-1")
        assert response.access_token == "at-2"
        assert len(provider.calls) == 2


class TestRevoke:
    @pytest.mark.asyncio
    async def test_posts_hint(self, provider, token_client) -> None:
        await token_client().revoke("rt-1", "refresh_token")
        url, form = provider.calls[0]
        assert url.endswith("/protocol/openid-connect/revoke")
        assert form == {"client_id": "app1", "token": "rt-1", "token_type_hint": "refresh_token"}

    @pytest.mark.asyncio
    async def test_failure_swallowed(self, provider, token_client) -> None:
        provider.revoke_error = httpx.ConnectTimeout("timed out")
        await token_client().revoke("at-1", "access_token")

    @pytest.mark.asyncio
    async def test_no_endpoint_is_noop(self, provider) -> None:
        endpoints = build_endpoints("https://idp.example/realms/demo").model_copy(
            update={"revocation": None}
        )
        client = TokenClient(endpoints, "app1", transport=provider.transport)
        await client.revoke("at-1", "access_token")
        assert provider.calls == []
