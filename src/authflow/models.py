"""Canonical Pydantic models shared across all authflow modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into three groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`RequestConfig` and :class:`AuthConfig`.

**Protocol records** -- produced during the flow and persisted by
:class:`~authflow.auth.storage.AuthStorage`:
    :class:`PKCEData`, :class:`TokenResponse`, :class:`StoredTokens`,
    :class:`AuthUser`, and :class:`OAuthEndpoints`.

**State snapshot** -- the externally visible state of
:class:`~authflow.auth.machine.AuthStateMachine`:
    :class:`AuthStatus`, :class:`AuthErrorCode`, :class:`AuthErrorInfo`,
    :class:`AuthState`, and :class:`SignInOptions`.

All models use Pydantic v2. Provider payloads use ``extra="ignore"`` so that
unrecognised claims and response fields are dropped on parse.
"""

from __future__ import annotations

import enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from authflow.constants import (
    DEFAULT_BASE_PATH,
    DEFAULT_CALLBACK_PATH,
    DEFAULT_POST_LOGIN_REDIRECT,
    DEFAULT_SCOPES,
)


# --- Configuration ---


class RequestConfig(BaseModel):
    """HTTP settings applied to every call against the provider."""

    model_config = ConfigDict(extra="forbid")

    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    refresh_retries: int = Field(
        default=0,
        ge=0,
        description="Extra attempts for a refresh that failed at the transport level",
    )


class AuthConfig(BaseModel):
    """Client configuration supplied once at startup.

    ``auth_server_url`` and ``client_id`` are required before use, but are
    declared with empty defaults so that a partially filled config can be
    loaded, inspected, and reported on by
    :func:`~authflow.config.validate_auth_config`.

    Example::

        AuthConfig(
            auth_server_url="https://idp.example/realms/demo",
            client_id="app1",
            app_url="http://127.0.0.1:8765",
            base_path="/simple-app",
        )
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    auth_server_url: str = Field(
        default="", description="Provider realm URL, e.g. https://idp/realms/demo"
    )
    client_id: str = Field(default="", description="Public client identifier")
    app_url: Optional[str] = Field(
        default=None,
        description="Application origin (falls back to the current location's origin)",
    )
    base_path: str = Field(
        default=DEFAULT_BASE_PATH, description="Base path, also the storage namespace"
    )
    callback_path: str = Field(default=DEFAULT_CALLBACK_PATH)
    scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES))
    post_login_redirect: str = Field(default=DEFAULT_POST_LOGIN_REDIRECT)
    request: RequestConfig = Field(default_factory=RequestConfig)


# --- Protocol records ---


class OAuthEndpoints(BaseModel):
    """Provider endpoint URLs derived from the realm URL."""

    authorization: str
    token: str
    userinfo: str
    logout: str
    revocation: Optional[str] = None


class PKCEData(BaseModel):
    """Secrets for one in-flight sign-in attempt.

    ``timestamp`` is the creation time in epoch seconds; the record is
    abandoned once it is older than
    :data:`~authflow.constants.PKCE_DATA_EXPIRY_SECONDS`.
    """

    code_verifier: str
    code_challenge: str
    state: str
    nonce: str
    redirect_uri: str
    timestamp: float


class TokenResponse(BaseModel):
    """JSON body returned by the provider's token endpoint."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    token_type: str = "Bearer"
    expires_in: float
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None
    scope: Optional[str] = None


class StoredTokens(BaseModel):
    """Persisted token set with an absolute expiry (epoch seconds)."""

    access_token: str
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None
    expires_at: float
    token_type: str = "Bearer"


class AuthUser(BaseModel):
    """Identity claims read from an unverified ID token.

    These are display hints only and must never feed an authorization
    decision.
    """

    model_config = ConfigDict(extra="ignore")

    sub: str
    email: Optional[str] = None
    email_verified: Optional[bool] = None
    name: Optional[str] = None
    preferred_username: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None


# --- State snapshot ---


class AuthStatus(str, enum.Enum):
    """States of :class:`~authflow.auth.machine.AuthStateMachine`."""

    LOADING = "loading"
    CALLBACK_PROCESSING = "callback_processing"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"
    ERROR = "error"


class AuthErrorCode(str, enum.Enum):
    """Machine-readable error kinds carried by every auth error."""

    CONFIG_ERROR = "config_error"
    NETWORK_ERROR = "network_error"
    TOKEN_ERROR = "token_error"
    CALLBACK_ERROR = "callback_error"
    STATE_MISMATCH = "state_mismatch"
    PKCE_ERROR = "pkce_error"
    TOKEN_EXPIRED = "token_expired"
    REFRESH_ERROR = "refresh_error"
    LOGOUT_ERROR = "logout_error"
    UNKNOWN_ERROR = "unknown_error"


class AuthErrorInfo(BaseModel):
    """Serialisable error snapshot held in :class:`AuthState`."""

    code: AuthErrorCode
    message: str
    details: Any = None


class AuthState(BaseModel):
    """Externally visible snapshot of the auth state machine."""

    status: AuthStatus = AuthStatus.LOADING
    is_authenticated: bool = False
    is_loading: bool = True
    user: Optional[AuthUser] = None
    error: Optional[AuthErrorInfo] = None
    is_processing_callback: bool = False
    callback_error: Optional[AuthErrorInfo] = None
    callback_return_url: Optional[str] = Field(
        default=None, description="Pending post-login navigation target"
    )


class SignInOptions(BaseModel):
    """Per-call overrides for :meth:`~authflow.auth.machine.AuthStateMachine.sign_in`."""

    redirect_uri: Optional[str] = Field(
        default=None, description="Override the default callback URL"
    )
    prompt: Optional[Literal["none", "login", "consent"]] = None
    login_hint: Optional[str] = Field(default=None, description="Pre-fill username")
