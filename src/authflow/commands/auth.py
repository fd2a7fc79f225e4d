"""Auth commands -- sign in, sign out, and use the stored session.

These commands drive :class:`~authflow.auth.AuthStateMachine` against
file-backed storage under the data directory, so a session created by
``login`` is visible to every later invocation.

Typical workflow::

    authflow login                    # browser sign-in via loopback callback
    curl -H "Authorization: Bearer $(authflow token)" https://api.example/me
    authflow logout
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

import typer

from authflow.auth import AuthStateMachine, BrowserNavigator, CallbackServer, MemoryNavigator
from authflow.auth.endpoints import build_app_url
from authflow.commands import cli_errors, file_storage, home_url, resolve_cli_config
from authflow.exceptions import AuthError, RefreshError
from authflow.models import AuthErrorCode, AuthState, SignInOptions
from authflow.output import (
    info,
    print_data,
    print_record,
    progress,
    success,
    suggest,
    warning,
)


class Prompt(str, Enum):
    none = "none"
    login = "login"
    consent = "consent"


def _display_name(state: AuthState) -> str:
    user = state.user
    if user is None:
        return "unknown user"
    return user.preferred_username or user.email or user.name or user.sub


def login_command(
    ctx: typer.Context,
    prompt: Optional[Prompt] = typer.Option(
        None, "--prompt", help="Provider prompt behaviour: none, login, consent."
    ),
    login_hint: Optional[str] = typer.Option(
        None, "--login-hint", help="Pre-fill the username at the provider."
    ),
    timeout: float = typer.Option(
        120.0, "--timeout", min=1.0, help="Seconds to wait for the browser callback."
    ),
) -> None:
    """Sign in through the browser.

    Starts a loopback HTTP receiver on the configured ``app_url``, opens
    the provider's sign-in page, waits for the redirect back, and then
    completes the flow exactly as a page load at the callback route would.

    Raises:
        typer.Exit: With code 2 for an unusable ``app_url``, 3 when the
            sign-in fails, or 7 for missing configuration.

    Example::

        authflow login
        authflow login --prompt login --login-hint alice
    """
    with cli_errors():
        config = resolve_cli_config(ctx)
        storage = file_storage(config)
        assert config.app_url is not None
        redirect_uri = build_app_url(config.app_url, config.base_path, config.callback_path)

        with CallbackServer(redirect_uri, timeout=timeout) as server:
            machine = AuthStateMachine(config, BrowserNavigator(home_url(config)), storage)
            url = machine.sign_in(
                SignInOptions(
                    prompt=prompt.value if prompt else None,
                    login_hint=login_hint,
                )
            )
            info("Opening your browser to sign in...")
            info(f"If it does not open, visit:\n{url}")
            progress(f"Waiting up to {timeout:.0f}s for the sign-in to complete...")
            callback_url = server.wait()

        callback = AuthStateMachine(config, MemoryNavigator(callback_url), storage)
        state = asyncio.run(callback.process_callback())
        if state.callback_error is not None:
            raise AuthError.from_info(state.callback_error)

    success(f"Signed in as {_display_name(state)}.")


def logout_command(ctx: typer.Context) -> None:
    """Revoke the stored tokens and forget the local session.

    Revocation is best effort; the local session is always cleared.

    Example::

        authflow logout
    """
    with cli_errors():
        config = resolve_cli_config(ctx)
        storage = file_storage(config)
        had_session = storage.get_tokens() is not None
        machine = AuthStateMachine(config, MemoryNavigator(home_url(config)), storage)
        asyncio.run(machine.sign_out())
    if not had_session:
        warning("No stored session; nothing was revoked.")
    success("Signed out.")


def status_command(ctx: typer.Context) -> None:
    """Show whether a session exists, and who it belongs to.

    A session close to expiry is refreshed first, as on application start.

    Example::

        authflow status
        authflow --json status
    """
    with cli_errors():
        config = resolve_cli_config(ctx)
        storage = file_storage(config)
        machine = AuthStateMachine(config, MemoryNavigator(home_url(config)), storage)
        state = asyncio.run(machine.start())
        tokens = storage.get_tokens()

    user = state.user
    expires_at = None
    if tokens is not None:
        expires_at = datetime.fromtimestamp(tokens.expires_at, tz=timezone.utc).isoformat()
    print_record(
        {
            "status": state.status.value,
            "authenticated": state.is_authenticated,
            "sub": user.sub if user else None,
            "preferred_username": user.preferred_username if user else None,
            "email": user.email if user else None,
            "name": user.name if user else None,
            "expires_at": expires_at,
            "refreshable": bool(tokens and tokens.refresh_token),
        },
        title="Session",
    )
    if not state.is_authenticated:
        suggest("Sign in: authflow login")


def token_command(ctx: typer.Context) -> None:
    """Print a valid access token to stdout, refreshing it if needed.

    Exits with code 3 when no usable token exists; a failed refresh ends
    the stored session.

    Example::

        export TOKEN="$(authflow token)"
    """
    with cli_errors():
        config = resolve_cli_config(ctx)
        machine = AuthStateMachine(
            config, MemoryNavigator(home_url(config)), file_storage(config)
        )
        token = asyncio.run(machine.get_access_token())
        if token is None:
            raise AuthError(
                "No valid access token; sign in with: authflow login",
                code=AuthErrorCode.TOKEN_EXPIRED,
            )
    print_data(token)


def refresh_command(ctx: typer.Context) -> None:
    """Refresh the stored tokens now.

    Example::

        authflow refresh
    """
    with cli_errors():
        config = resolve_cli_config(ctx)
        machine = AuthStateMachine(
            config, MemoryNavigator(home_url(config)), file_storage(config)
        )
        if not asyncio.run(machine.refresh_access_token()):
            raise RefreshError("Token refresh failed or no refresh token is stored")
    success("Tokens refreshed.")
