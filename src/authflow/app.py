"""Typer application and CLI entry point for authflow.

This module wires together the root Typer application, its global flags,
and the built-in commands (``login``, ``logout``, ``status``, ``token``,
``refresh`` and the ``config`` group).

:func:`main` is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers, registers commands and
invokes the app. :class:`~authflow.exceptions.AuthflowError` exits with
the error's code; any other exception is written to a crash log under the
data directory.

See Also:
    :mod:`authflow.config`: Configuration resolution used by every command.
    :mod:`authflow.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from authflow import __version__
from authflow.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="authflow",
    help="Sign in to an OAuth2/OIDC provider with Authorization Code + PKCE.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

_registered = False


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"authflow {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    """Send library log records to stderr; DEBUG with ``--verbose``, else WARNING."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    auth_url: Optional[str] = typer.Option(
        None, "--auth-url", help="Provider realm URL (overrides config)."
    ),
    client_id: Optional[str] = typer.Option(
        None, "--client-id", help="Public client id (overrides config)."
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Root callback executed before every command.

    Installs the global :class:`~authflow.output.OutputManager`, configures
    logging, and stores the provider overrides in ``ctx.obj`` for
    :func:`authflow.commands.resolve_cli_config`.
    """
    from authflow.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))
    _configure_logging(verbose)

    ctx.ensure_object(dict)
    ctx.obj["auth_url"] = auth_url
    ctx.obj["client_id"] = client_id
    ctx.obj["verbose"] = verbose


def register_commands() -> typer.Typer:
    """Attach the built-in commands to :data:`app` (once) and return it."""
    global _registered
    if not _registered:
        from authflow.commands.auth import (
            login_command,
            logout_command,
            refresh_command,
            status_command,
            token_command,
        )
        from authflow.commands.config import config_app

        app.command("login")(login_command)
        app.command("logout")(logout_command)
        app.command("status")(status_command)
        app.command("token")(token_command)
        app.command("refresh")(refresh_command)
        app.add_typer(config_app, name="config", help="Configuration management.")
        _registered = True
    return app


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write the current traceback under ``<data_dir>/logs`` and return its path."""
    from authflow.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``authflow`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        register_commands()
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from authflow.exceptions import AuthflowError
        from authflow.output import error

        if isinstance(exc, AuthflowError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
