"""The authentication state machine.

:class:`AuthStateMachine` is the only component with externally observable
state. It owns the storage, the endpoints and the token client, and drives
them through four transitions:

1. **Startup** (:meth:`AuthStateMachine.start`) -- either process a
   callback found on the current location, or restore a stored session
   (refreshing it when it is about to expire).
2. **Sign-in** (:meth:`AuthStateMachine.sign_in`) -- persist a fresh PKCE
   record and navigate to the provider.
3. **Callback processing** (:meth:`AuthStateMachine.process_callback`) --
   validate ``state`` against the PKCE record, exchange the code, persist
   tokens and user, clean the visible URL and compute the post-login
   redirect.
4. **Sign-out** (:meth:`AuthStateMachine.sign_out`) -- best-effort
   revocation followed by unconditional local clearing.

Protocol failures never propagate out of these methods; they are published
in :attr:`AuthStateMachine.state` as :class:`~authflow.models.AuthErrorInfo`.

States::

    loading --+--> callback_processing --+--> authenticated
              |                          +--> error
              +--> authenticated
              +--> unauthenticated

Callback processing runs at most once per authorization code: the first
caller schedules a task *before* any suspension point and every duplicate
caller awaits that same task.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Optional

from authflow.auth.endpoints import (
    build_app_url,
    build_authorization_url,
    build_endpoints,
    normalize_path,
)
from authflow.auth.id_token import decode_id_token
from authflow.auth.navigation import Navigator, strip_query_params
from authflow.auth.pkce import build_pkce_data
from authflow.auth.storage import AuthStorage, MemoryBackend
from authflow.auth.token_client import TokenClient, tokens_from_response
from authflow.config import require_valid_config
from authflow.constants import TOKEN_REFRESH_BUFFER_SECONDS
from authflow.exceptions import (
    AuthError,
    CallbackError,
    LogoutError,
    PKCEError,
    StateMismatchError,
)
from authflow.models import (
    AuthConfig,
    AuthErrorCode,
    AuthErrorInfo,
    AuthState,
    AuthStatus,
    AuthUser,
    OAuthEndpoints,
    SignInOptions,
    StoredTokens,
)

logger = logging.getLogger(__name__)

StateListener = Callable[[AuthState], None]

_CALLBACK_PARAMS = ("code", "state")


class AuthStateMachine:
    """OAuth 2.1 Authorization Code + PKCE flow for one application.

    Args:
        config: Client configuration. Validated here; a missing provider
            URL or client id raises :class:`~authflow.exceptions.ConfigError`.
        navigator: Access to the current location and navigation.
        storage: Persistence for tokens and the in-flight sign-in. Defaults
            to an in-memory store namespaced by ``config.base_path``.
        token_client: Client for the token and revocation endpoints.
            Defaults to one built from ``config``.
        clock: Returns the current time in epoch seconds.

    Example::

        machine = AuthStateMachine(config, MemoryNavigator("http://127.0.0.1:8765/"))
        state = await machine.start()
        if not state.is_authenticated:
            machine.sign_in()
    """

    def __init__(
        self,
        config: AuthConfig,
        navigator: Navigator,
        storage: Optional[AuthStorage] = None,
        token_client: Optional[TokenClient] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = require_valid_config(config)
        self._navigator = navigator
        self._clock = clock
        self._storage = storage or AuthStorage(MemoryBackend(), config.base_path, clock)
        self._endpoints = build_endpoints(config.auth_server_url)
        self._token_client = token_client or TokenClient(
            self._endpoints, config.client_id, config.request
        )
        self._state = AuthState()
        self._listeners: list[StateListener] = []
        self._start_task: Optional[asyncio.Task[None]] = None
        self._callback_tasks: dict[Optional[str], asyncio.Task[None]] = {}
        self._last_callback: Optional[asyncio.Task[None]] = None
        self._refresh_task: Optional[asyncio.Task[bool]] = None

    # ------------------------------------------------------------------ #
    # Accessors
    # ------------------------------------------------------------------ #

    @property
    def config(self) -> AuthConfig:
        return self._config

    @property
    def endpoints(self) -> OAuthEndpoints:
        return self._endpoints

    @property
    def storage(self) -> AuthStorage:
        return self._storage

    @property
    def state(self) -> AuthState:
        """A copy of the current externally visible state."""
        return self._state.model_copy(deep=True)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call *listener* with a fresh snapshot after every state change.

        Returns:
            A function that removes the listener again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _update(self, **changes: Any) -> None:
        self._state = self._state.model_copy(update=changes)
        logger.debug("Auth state -> %s", self._state.status.value)
        for listener in list(self._listeners):
            listener(self.state)

    def _app_origin(self) -> str:
        return (self._config.app_url or self._navigator.origin).rstrip("/")

    # ------------------------------------------------------------------ #
    # Startup
    # ------------------------------------------------------------------ #

    async def start(self) -> AuthState:
        """Initialise from the current location and stored session.

        Safe to call repeatedly; the work runs once per machine.
        """
        if self._start_task is None:
            self._start_task = asyncio.ensure_future(self._start())
        await self._start_task
        return self.state

    async def _start(self) -> None:
        if self._navigator.query_param("code") is not None:
            await self.process_callback()
            return

        tokens = self._storage.get_tokens()
        user = self._storage.get_user()
        if tokens is not None and user is not None:
            expiring = tokens.expires_at - self._clock() < TOKEN_REFRESH_BUFFER_SECONDS
            if not (expiring and tokens.refresh_token):
                self._set_authenticated(user)
                return
            if await self._attempt_refresh(tokens):
                self._set_authenticated(self._storage.get_user() or user)
                return

        self._update(
            status=AuthStatus.UNAUTHENTICATED,
            is_authenticated=False,
            is_loading=False,
            user=None,
        )

    def _set_authenticated(self, user: Optional[AuthUser]) -> None:
        self._update(
            status=AuthStatus.AUTHENTICATED,
            is_authenticated=True,
            is_loading=False,
            user=user,
        )

    # ------------------------------------------------------------------ #
    # Sign-in
    # ------------------------------------------------------------------ #

    def sign_in(self, options: Optional[SignInOptions] = None) -> str:
        """Start a sign-in by navigating to the provider.

        The current location is remembered as the post-login return URL and
        a fresh PKCE record replaces any previous one. The navigation is a
        full, irreversible one; the result of the sign-in only becomes
        observable when the provider redirects back to the callback.

        Returns:
            The authorization URL that was navigated to.
        """
        options = options or SignInOptions()
        self._update(error=None)

        redirect_uri = options.redirect_uri or build_app_url(
            self._app_origin(), self._config.base_path, self._config.callback_path
        )
        self._storage.set_return_url(self._navigator.path_and_query)

        pkce = build_pkce_data(redirect_uri, now=self._clock())
        self._storage.set_pkce(pkce)

        url = build_authorization_url(
            self._config,
            self._endpoints,
            pkce,
            prompt=options.prompt,
            login_hint=options.login_hint,
        )
        logger.debug("Redirecting to authorization endpoint %s", self._endpoints.authorization)
        self._navigator.assign(url)
        return url

    # ------------------------------------------------------------------ #
    # Callback processing
    # ------------------------------------------------------------------ #

    async def process_callback(self) -> AuthState:
        """Complete the sign-in from the callback on the current location.

        Runs at most once per authorization code. Duplicate calls, including
        calls made after the code was stripped from the location, wait for
        the original run and return its outcome.
        """
        code = self._navigator.query_param("code")
        task = self._callback_tasks.get(code)
        if task is None and code is None:
            task = self._last_callback
        if task is None:
            self._update(
                status=AuthStatus.CALLBACK_PROCESSING,
                is_loading=False,
                is_processing_callback=True,
                callback_error=None,
            )
            task = asyncio.ensure_future(self._process_callback())
            self._callback_tasks[code] = task
            self._last_callback = task
        await task
        return self.state

    async def _process_callback(self) -> None:
        nav = self._navigator
        error = nav.query_param("error")
        if error:
            description = nav.query_param("error_description")
            self._fail_callback(
                CallbackError(
                    description or error,
                    details={"error": error, "error_description": description},
                )
            )
            return

        code = nav.query_param("code")
        state = nav.query_param("state")
        if not code or not state:
            self._fail_callback(CallbackError("Missing code or state parameter"))
            return

        pkce = self._storage.get_pkce()
        if pkce is None:
            self._fail_callback(PKCEError("PKCE data not found or expired"))
            return

        if state != pkce.state:
            self._storage.clear_pkce()
            self._fail_callback(
                StateMismatchError("State parameter mismatch (CSRF protection)")
            )
            return

        try:
            response = await self._token_client.exchange_code(
                code, pkce.code_verifier, pkce.redirect_uri
            )
            user = decode_id_token(response.id_token) if response.id_token else None
            self._storage.set_tokens(tokens_from_response(response, now=self._clock()))
            if user is not None:
                self._storage.set_user(user)

            self._storage.clear_pkce()
            return_url = self._storage.get_return_url()
            self._storage.clear_return_url()

            nav.replace(strip_query_params(nav.current_url, _CALLBACK_PARAMS))

            target = return_url or normalize_path(
                f"{self._config.base_path}{self._config.post_login_redirect}"
            )
            redirect = f"{self._app_origin()}{target}"
        except AuthError as exc:
            self._abort_exchange(exc.to_info())
            return
        except Exception as exc:
            logger.debug("Token exchange failed", exc_info=True)
            self._abort_exchange(
                AuthErrorInfo(
                    code=AuthErrorCode.TOKEN_ERROR,
                    message="Token exchange failed",
                    details=str(exc),
                )
            )
            return

        logger.debug("Sign-in complete; pending redirect to %s", redirect)
        self._update(
            status=AuthStatus.AUTHENTICATED,
            is_authenticated=True,
            is_loading=False,
            is_processing_callback=False,
            user=user,
            callback_return_url=redirect,
        )

    def _abort_exchange(self, info: AuthErrorInfo) -> None:
        # Nothing from a failed exchange may survive: no PKCE, no half session
        self._storage.clear_pkce()
        self._storage.clear_tokens()
        self._storage.clear_user()
        self._publish_callback_error(info)

    def _fail_callback(self, exc: AuthError) -> None:
        self._publish_callback_error(exc.to_info())

    def _publish_callback_error(self, info: AuthErrorInfo) -> None:
        logger.debug("Callback failed: %s (%s)", info.message, info.code.value)
        self._update(
            status=AuthStatus.ERROR,
            is_authenticated=False,
            is_loading=False,
            is_processing_callback=False,
            user=None,
            callback_error=info,
        )

    # ------------------------------------------------------------------ #
    # Sign-out
    # ------------------------------------------------------------------ #

    async def sign_out(self) -> AuthState:
        """Revoke tokens (best effort) and clear the local session.

        The provider's end-session endpoint is not visited, so a provider
        session may outlive the local one.

        Raises:
            LogoutError: If the local storage cannot be cleared.
        """
        tokens = self._storage.get_tokens()
        try:
            if tokens is not None and tokens.refresh_token:
                await self._token_client.revoke(tokens.refresh_token, "refresh_token")
            if tokens is not None:
                await self._token_client.revoke(tokens.access_token, "access_token")
        finally:
            try:
                self._storage.clear_all()
            except OSError as exc:
                raise LogoutError(f"Could not clear local session: {exc}") from exc
            self._update(
                status=AuthStatus.UNAUTHENTICATED,
                is_authenticated=False,
                is_loading=False,
                user=None,
                error=None,
            )
        return self.state

    # ------------------------------------------------------------------ #
    # Tokens
    # ------------------------------------------------------------------ #

    async def get_access_token(self) -> Optional[str]:
        """Return a usable access token, refreshing it when about to expire.

        A failed refresh ends the session: all stored artifacts are cleared
        and the machine becomes unauthenticated.

        Returns:
            The access token, or ``None`` when none is available.
        """
        tokens = self._storage.get_tokens()
        if tokens is None:
            return None
        expiring = tokens.expires_at - self._clock() < TOKEN_REFRESH_BUFFER_SECONDS
        if not (expiring and tokens.refresh_token):
            return tokens.access_token

        if not await self._attempt_refresh(tokens):
            self._update(
                status=AuthStatus.UNAUTHENTICATED,
                is_authenticated=False,
                user=None,
            )
            return None
        refreshed = self._storage.get_tokens()
        return refreshed.access_token if refreshed is not None else None

    async def refresh_access_token(self) -> bool:
        """Refresh the stored tokens now, regardless of their expiry.

        Returns:
            ``True`` if new tokens were stored. ``False`` when there is no
            refresh token or the refresh failed (which clears storage but
            leaves the published state untouched).
        """
        tokens = self._storage.get_tokens()
        if tokens is None or not tokens.refresh_token:
            return False
        return await self._attempt_refresh(tokens)

    async def _attempt_refresh(self, tokens: StoredTokens) -> bool:
        # One refresh grant at a time; concurrent callers share its outcome
        task = self._refresh_task
        if task is None:
            task = asyncio.ensure_future(self._refresh(tokens))
            task.add_done_callback(self._refresh_finished)
            self._refresh_task = task
        return await task

    def _refresh_finished(self, task: asyncio.Task[bool]) -> None:
        if self._refresh_task is task:
            self._refresh_task = None

    async def _refresh(self, tokens: StoredTokens) -> bool:
        assert tokens.refresh_token is not None
        try:
            response = await self._token_client.refresh(tokens.refresh_token)
            user = decode_id_token(response.id_token) if response.id_token else None
        except AuthError as exc:
            logger.debug("Token refresh failed: %s", exc.message)
            self._storage.clear_all()
            return False

        self._storage.set_tokens(
            tokens_from_response(response, now=self._clock(), previous=tokens)
        )
        if user is not None:
            self._storage.set_user(user)
            self._update(user=user)
        logger.debug("Tokens refreshed")
        return True
