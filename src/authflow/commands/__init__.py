"""Built-in CLI commands for authflow.

* :mod:`~authflow.commands.auth` -- ``login``, ``logout``, ``status``,
  ``token`` and ``refresh``, registered directly on the root app.
* :mod:`~authflow.commands.config` -- the ``config`` group.

The helpers below are shared by both modules.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import typer

from authflow.auth.endpoints import build_app_url
from authflow.auth.storage import AuthStorage, FileBackend
from authflow.config import get_storage_dir, require_valid_config, resolve_config
from authflow.exceptions import AuthflowError
from authflow.exit_codes import EXIT_CONFIG_ERROR
from authflow.models import AuthConfig
from authflow.output import error, suggest

# Used when no app_url is configured; the loopback receiver listens here
DEFAULT_CLI_APP_URL = "http://127.0.0.1:8765"


@contextmanager
def cli_errors() -> Iterator[None]:
    """Report :class:`~authflow.exceptions.AuthflowError` and exit with its code."""
    try:
        yield
    except AuthflowError as exc:
        error(str(exc))
        if exc.exit_code == EXIT_CONFIG_ERROR:
            suggest("Check your settings: authflow config validate")
        raise typer.Exit(code=exc.exit_code) from None


def resolve_cli_config(ctx: typer.Context) -> AuthConfig:
    """Resolve the effective config, applying ``--auth-url``/``--client-id``.

    A missing ``app_url`` is filled with :data:`DEFAULT_CLI_APP_URL`.

    Raises:
        ConfigError: If a config layer is invalid or required fields are missing.
    """
    obj = ctx.obj or {}
    config = resolve_config(
        cli_auth_url=obj.get("auth_url"),
        cli_client_id=obj.get("client_id"),
    )
    if not config.app_url:
        config = config.model_copy(update={"app_url": DEFAULT_CLI_APP_URL})
    return require_valid_config(config)


def file_storage(config: AuthConfig) -> AuthStorage:
    """Storage persisted under the data directory, namespaced by base path."""
    return AuthStorage(FileBackend(get_storage_dir()), base_path=config.base_path)


def home_url(config: AuthConfig) -> str:
    """The application's root URL, used as the location outside a callback."""
    assert config.app_url is not None
    return build_app_url(config.app_url, config.base_path, "/")
