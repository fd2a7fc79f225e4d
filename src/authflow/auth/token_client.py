"""HTTP calls to the provider's token and revocation endpoints.

:class:`TokenClient` performs the three back-channel requests of the flow,
each as an ``application/x-www-form-urlencoded`` POST through
:class:`httpx.AsyncClient` with a bounded timeout:

1. **Code exchange** -- ``grant_type=authorization_code`` with the PKCE
   verifier. Failures raise :class:`~authflow.exceptions.TokenError`.
2. **Refresh** -- ``grant_type=refresh_token``. Failures raise
   :class:`~authflow.exceptions.RefreshError`.
3. **Revocation** -- best effort; the response is never inspected and
   transport failures are logged and swallowed.

Error ``details`` carry the provider's raw response body so callers can
surface it without re-reading the response.
"""

from __future__ import annotations

import logging
import time
from typing import Literal, Optional

import httpx
from pydantic import ValidationError

from authflow.exceptions import AuthError, RefreshError, TokenError
from authflow.models import OAuthEndpoints, RequestConfig, StoredTokens, TokenResponse

logger = logging.getLogger(__name__)

TokenTypeHint = Literal["access_token", "refresh_token"]


def tokens_from_response(
    response: TokenResponse,
    now: Optional[float] = None,
    previous: Optional[StoredTokens] = None,
) -> StoredTokens:
    """Convert a token endpoint response into the persisted form.

    Args:
        response: Parsed token endpoint body.
        now: Current time in epoch seconds. Defaults to ``time.time()``.
        previous: Token set being replaced by a refresh. Its refresh and ID
            tokens are kept when the provider does not rotate them.

    Returns:
        A :class:`~authflow.models.StoredTokens` with an absolute expiry.
    """
    issued_at = time.time() if now is None else now
    refresh_token = response.refresh_token
    id_token = response.id_token
    if previous is not None:
        refresh_token = refresh_token or previous.refresh_token
        id_token = id_token or previous.id_token
    return StoredTokens(
        access_token=response.access_token,
        refresh_token=refresh_token,
        id_token=id_token,
        expires_at=issued_at + response.expires_in,
        token_type=response.token_type,
    )


class TokenClient:
    """Async client for the provider's token and revocation endpoints.

    A fresh :class:`httpx.AsyncClient` is opened per call, so one
    ``TokenClient`` can be shared freely within the event loop.

    Args:
        endpoints: Provider endpoints (token and optional revocation URL).
        client_id: Public client identifier sent with every request.
        request: Timeout and retry settings.
        transport: Optional httpx transport, e.g. :class:`httpx.MockTransport`.

    Example::

        client = TokenClient(build_endpoints(url), "app1")
        tokens = await client.exchange_code(code, pkce.code_verifier, pkce.redirect_uri)
    """

    def __init__(
        self,
        endpoints: OAuthEndpoints,
        client_id: str,
        request: Optional[RequestConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._endpoints = endpoints
        self._client_id = client_id
        self._request = request or RequestConfig()
        self._transport = transport

    @property
    def endpoints(self) -> OAuthEndpoints:
        return self._endpoints

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._request.timeout, transport=self._transport)

    async def _post_form(self, url: str, data: dict[str, str]) -> httpx.Response:
        async with self._client() as client:
            return await client.post(
                url,
                data=data,
                headers={"Accept": "application/json"},
            )

    @staticmethod
    def _parse(
        response: httpx.Response,
        error_type: type[AuthError],
        action: str,
    ) -> TokenResponse:
        if not response.is_success:
            raise error_type(
                f"{action} failed: {response.status_code}",
                details=response.text,
            )
        try:
            return TokenResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise error_type(
                f"{action} returned an invalid token response",
                details=response.text,
            ) from exc

    async def exchange_code(
        self,
        code: str,
        code_verifier: str,
        redirect_uri: str,
    ) -> TokenResponse:
        """Exchange an authorization code for tokens.

        Args:
            code: Authorization code from the callback.
            code_verifier: The PKCE verifier matching the challenge sent
                with the authorization request.
            redirect_uri: The redirect URI bound to the PKCE record.

        Returns:
            The parsed :class:`~authflow.models.TokenResponse`.

        Raises:
            TokenError: On transport errors, non-2xx status (``details``
                holds the raw body), or a malformed response.
        """
        logger.debug("Exchanging authorization code at %s", self._endpoints.token)
        try:
            response = await self._post_form(
                self._endpoints.token,
                {
                    "grant_type": "authorization_code",
                    "client_id": self._client_id,
                    "code": code,
                    "code_verifier": code_verifier,
                    "redirect_uri": redirect_uri,
                },
            )
        except httpx.HTTPError as exc:
            raise TokenError(f"Token exchange failed: {exc}", details=str(exc)) from exc
        return self._parse(response, TokenError, "Token exchange")

    async def refresh(self, refresh_token: str) -> TokenResponse:
        """Mint a new token set from a refresh token.

        Transport failures are retried ``request.refresh_retries`` times;
        an error status from the provider is never retried.

        Raises:
            RefreshError: On transport errors, non-2xx status (``details``
                holds the raw body), or a malformed response.
        """
        attempts = 1 + self._request.refresh_retries
        attempt = 0
        while True:
            attempt += 1
            logger.debug(
                "Refreshing tokens at %s (attempt %d/%d)",
                self._endpoints.token,
                attempt,
                attempts,
            )
            try:
                response = await self._post_form(
                    self._endpoints.token,
                    {
                        "grant_type": "refresh_token",
                        "client_id": self._client_id,
                        "refresh_token": refresh_token,
                    },
                )
            except httpx.TransportError as exc:
                if attempt < attempts:
                    continue
                raise RefreshError(f"Token refresh failed: {exc}", details=str(exc)) from exc
            except httpx.HTTPError as exc:
                raise RefreshError(f"Token refresh failed: {exc}", details=str(exc)) from exc
            return self._parse(response, RefreshError, "Token refresh")

    async def revoke(self, token: str, token_type_hint: TokenTypeHint) -> None:
        """Ask the provider to revoke *token*. Never raises for HTTP failures.

        A missing revocation endpoint makes this a no-op.
        """
        if not self._endpoints.revocation:
            return
        try:
            await self._post_form(
                self._endpoints.revocation,
                {
                    "client_id": self._client_id,
                    "token": token,
                    "token_type_hint": token_type_hint,
                },
            )
        except httpx.HTTPError as exc:
            logger.warning("Revoking %s failed (ignored): %s", token_type_hint, exc)
