"""Provider endpoint and application URL construction.

All functions here are pure: no I/O and no caching. Endpoints follow the
Keycloak convention of fixed ``/protocol/openid-connect/*`` sub-paths below
the realm URL.
"""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urlencode

from authflow.constants import (
    AUTHORIZATION_PATH,
    LOGOUT_PATH,
    REVOCATION_PATH,
    TOKEN_PATH,
    USERINFO_PATH,
)
from authflow.models import AuthConfig, OAuthEndpoints, PKCEData

_DUPLICATE_SLASHES = re.compile(r"/+")


def build_endpoints(auth_server_url: str) -> OAuthEndpoints:
    """Derive the provider endpoints from the realm URL.

    Example::

        >>> build_endpoints("https://idp.example/realms/demo/").token
        'https://idp.example/realms/demo/protocol/openid-connect/token'
    """
    base = auth_server_url[:-1] if auth_server_url.endswith("/") else auth_server_url
    return OAuthEndpoints(
        authorization=f"{base}{AUTHORIZATION_PATH}",
        token=f"{base}{TOKEN_PATH}",
        userinfo=f"{base}{USERINFO_PATH}",
        logout=f"{base}{LOGOUT_PATH}",
        revocation=f"{base}{REVOCATION_PATH}",
    )


def build_authorization_url(
    config: AuthConfig,
    endpoints: OAuthEndpoints,
    pkce: PKCEData,
    prompt: Optional[str] = None,
    login_hint: Optional[str] = None,
) -> str:
    """Build the authorization request URL for one PKCE record.

    Args:
        config: Client configuration (client id and scopes).
        endpoints: Provider endpoints.
        pkce: The in-flight sign-in record; its redirect URI, state, nonce
            and challenge are sent.
        prompt: Optional ``prompt`` parameter (``none``, ``login``, ``consent``).
        login_hint: Optional username to pre-fill.

    Returns:
        The full URL to navigate to.
    """
    params = {
        "response_type": "code",
        "client_id": config.client_id,
        "redirect_uri": pkce.redirect_uri,
        "scope": " ".join(config.scopes),
        "state": pkce.state,
        "nonce": pkce.nonce,
        "code_challenge": pkce.code_challenge,
        "code_challenge_method": "S256",
    }
    if prompt:
        params["prompt"] = prompt
    if login_hint:
        params["login_hint"] = login_hint
    return f"{endpoints.authorization}?{urlencode(params)}"


def normalize_path(path: str) -> str:
    """Collapse runs of ``/`` into a single separator."""
    return _DUPLICATE_SLASHES.sub("/", path)


def build_app_url(app_url: str, base_path: str, path: str) -> str:
    """Join the application origin, base path, and a route path.

    Example::

        >>> build_app_url("http://127.0.0.1:8765", "/simple-app/", "callback")
        'http://127.0.0.1:8765/simple-app/callback'
    """
    normalized_base = base_path[:-1] if base_path.endswith("/") else base_path
    normalized_path = path if path.startswith("/") else f"/{path}"
    return f"{app_url.rstrip('/')}{normalized_base}{normalized_path}"
