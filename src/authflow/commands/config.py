"""Config commands -- view, modify, and validate configuration.

Provides the ``authflow config`` sub-command group. ``set`` writes the
global config file in the authflow config directory; ``show`` and
``validate`` operate on the effective configuration after every layer
(global file, ``./authflow.json``, environment, CLI flags) is applied.
"""

from __future__ import annotations

from typing import Any

import typer
from pydantic import ValidationError

from authflow.commands import cli_errors
from authflow.exceptions import InvalidUsageError
from authflow.exit_codes import EXIT_CONFIG_ERROR
from authflow.output import error, info, print_record, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Show the effective configuration.

    Example::

        authflow config show
        authflow --json config show
    """
    from authflow.config import get_config_dir, resolve_config

    obj = ctx.obj or {}
    with cli_errors():
        config = resolve_config(
            cli_auth_url=obj.get("auth_url"),
            cli_client_id=obj.get("client_id"),
        )
    info(f"Config directory: {get_config_dir()}")
    data = config.model_dump(mode="json")
    data["scopes"] = " ".join(data["scopes"])
    request = data.pop("request")
    data.update({f"request.{k}": v for k, v in request.items()})
    print_record(data, title="Configuration")


def _coerce(key: str, current: Any, value: str) -> Any:
    """Convert *value* to the type of the field's current value."""
    if isinstance(current, bool):
        return value.lower() in ("true", "1", "yes")
    if isinstance(current, int):
        try:
            return int(value)
        except ValueError:
            raise InvalidUsageError(f"Expected integer for {key}, got: {value}") from None
    if isinstance(current, float):
        try:
            return float(value)
        except ValueError:
            raise InvalidUsageError(f"Expected number for {key}, got: {value}") from None
    if isinstance(current, list):
        return value.replace(",", " ").split()
    return value


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key (dot notation, e.g. 'request.timeout')."
    ),
    value: str = typer.Argument(help="Value to set; use scopes='openid email' for lists."),
) -> None:
    """Set a value in the global configuration file.

    The value is coerced to the type of the existing field and the
    resulting config is validated before saving.

    Raises:
        typer.Exit: With code 2 for an unknown key or a value of the wrong type.

    Example::

        authflow config set auth_server_url https://idp.example/realms/demo
        authflow config set client_id app1
        authflow config set scopes "openid profile email offline_access"
        authflow config set request.timeout 10
    """
    from authflow.config import load_global_config, save_global_config
    from authflow.models import AuthConfig

    with cli_errors():
        data = load_global_config().model_dump(mode="json")

        keys = key.split(".")
        target = data
        for k in keys[:-1]:
            if k not in target or not isinstance(target[k], dict):
                raise InvalidUsageError(f"Invalid config key: {key}")
            target = target[k]

        final_key = keys[-1]
        if final_key not in target:
            raise InvalidUsageError(f"Unknown config key: {key}")
        target[final_key] = _coerce(key, target[final_key], value)

        try:
            new_config = AuthConfig.model_validate(data)
        except ValidationError as exc:
            raise InvalidUsageError(f"Validation error: {exc}") from None

        save_global_config(new_config)
    success(f"Set {key} = {target[final_key]}")


@config_app.command("validate")
def config_validate(ctx: typer.Context) -> None:
    """Check that the effective configuration can reach a provider.

    Raises:
        typer.Exit: With code 7 listing every problem found.

    Example::

        authflow config validate
    """
    from authflow.config import resolve_config, validate_auth_config

    obj = ctx.obj or {}
    with cli_errors():
        config = resolve_config(
            cli_auth_url=obj.get("auth_url"),
            cli_client_id=obj.get("client_id"),
        )
    problems = validate_auth_config(config)
    if problems:
        for problem in problems:
            error(problem)
        raise typer.Exit(code=EXIT_CONFIG_ERROR)
    success("Configuration is valid.")
