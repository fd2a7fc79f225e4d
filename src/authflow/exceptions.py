"""Exception hierarchy for authflow.

All exceptions inherit from :class:`AuthflowError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`authflow.exit_codes`.
The top-level error handler in :func:`authflow.app.main` catches
``AuthflowError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Protocol failures are :class:`AuthError` subclasses. Each one carries an
:class:`~authflow.models.AuthErrorCode` and optional raw ``details`` (for
example the provider's response body) so the state machine can publish it
as an :class:`~authflow.models.AuthErrorInfo`.

Subclass hierarchy::

    AuthflowError (exit 1)
    +-- InvalidUsageError    (exit 2)
    +-- AuthError            (exit 3, unknown_error)
        +-- ConfigError      (exit 7, config_error)
        +-- TokenError       (exit 3, token_error)
        +-- CallbackError    (exit 3, callback_error)
        +-- StateMismatchError (exit 3, state_mismatch)
        +-- PKCEError        (exit 3, pkce_error)
        +-- RefreshError     (exit 3, refresh_error)
        +-- LogoutError      (exit 3, logout_error)
"""

from __future__ import annotations

from typing import Any

from authflow.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONFIG_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
)
from authflow.models import AuthErrorCode, AuthErrorInfo


class AuthflowError(Exception):
    """Base exception for all authflow errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`authflow.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(AuthflowError):
    """Raised for invalid CLI arguments or an unusable environment."""

    exit_code = EXIT_INVALID_USAGE


class AuthError(AuthflowError):
    """Base class for protocol failures carrying an error code.

    Args:
        message: Human-readable error description.
        details: Optional raw context, e.g. the provider's response body.
        code: Optional override for the class-level error code.
    """

    exit_code = EXIT_AUTH_FAILURE
    code: AuthErrorCode = AuthErrorCode.UNKNOWN_ERROR

    def __init__(
        self,
        message: str,
        details: Any = None,
        code: AuthErrorCode | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        if code is not None:
            self.code = code

    def to_info(self) -> AuthErrorInfo:
        """Return a serialisable snapshot for :class:`~authflow.models.AuthState`."""
        return AuthErrorInfo(code=self.code, message=self.message, details=self.details)

    @classmethod
    def from_info(cls, info: AuthErrorInfo) -> AuthError:
        """Rebuild the most specific exception for a published error snapshot."""
        exc_type = _BY_CODE.get(info.code, AuthError)
        return exc_type(info.message, details=info.details, code=info.code)


class ConfigError(AuthError):
    """Raised for configuration problems (missing fields, invalid JSON)."""

    exit_code = EXIT_CONFIG_ERROR
    code = AuthErrorCode.CONFIG_ERROR


class TokenError(AuthError):
    """Raised when the code exchange fails or a token cannot be decoded."""

    code = AuthErrorCode.TOKEN_ERROR


class CallbackError(AuthError):
    """Raised when the provider redirects back with an error or missing parameters."""

    code = AuthErrorCode.CALLBACK_ERROR


class StateMismatchError(AuthError):
    """Raised when the callback ``state`` does not match the stored PKCE record."""

    code = AuthErrorCode.STATE_MISMATCH


class PKCEError(AuthError):
    """Raised when no in-flight PKCE record exists or it has expired."""

    code = AuthErrorCode.PKCE_ERROR


class RefreshError(AuthError):
    """Raised when the refresh-token grant fails."""

    code = AuthErrorCode.REFRESH_ERROR


class LogoutError(AuthError):
    """Raised when local sign-out cannot complete."""

    code = AuthErrorCode.LOGOUT_ERROR


_BY_CODE: dict[AuthErrorCode, type[AuthError]] = {
    AuthErrorCode.CONFIG_ERROR: ConfigError,
    AuthErrorCode.TOKEN_ERROR: TokenError,
    AuthErrorCode.CALLBACK_ERROR: CallbackError,
    AuthErrorCode.STATE_MISMATCH: StateMismatchError,
    AuthErrorCode.PKCE_ERROR: PKCEError,
    AuthErrorCode.REFRESH_ERROR: RefreshError,
    AuthErrorCode.LOGOUT_ERROR: LogoutError,
}
