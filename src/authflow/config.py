"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for authflow:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.authflow/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_data_dir`, :func:`get_storage_dir`.
* **Global config** -- A single :class:`~authflow.models.AuthConfig`
  JSON file holding the provider URL, client id, and application URLs.
* **Project config** -- An optional ``./authflow.json`` whose keys
  override the global file for one working directory.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, project-local config, and global config into the
  final effective :class:`~authflow.models.AuthConfig`.
* **Validation** -- :func:`validate_auth_config` lists missing required
  fields; :func:`require_valid_config` raises on the first problem set.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlparse

from pydantic import ValidationError

from authflow.exceptions import ConfigError
from authflow.models import AuthConfig

_APP_NAME = "authflow"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "authflow.json"

# Environment variable -> AuthConfig field
ENV_OVERRIDES = {
    "AUTHFLOW_AUTH_URL": "auth_server_url",
    "AUTHFLOW_CLIENT_ID": "client_id",
    "AUTHFLOW_APP_URL": "app_url",
    "AUTHFLOW_BASE_PATH": "base_path",
}


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/authflow/`` (default ``~/.config/authflow/``).
    On macOS/Windows: ``~/.authflow/``.

    Returns:
        Absolute path to the configuration directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_CONFIG_HOME", (".config",))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (token storage, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/authflow/`` (default ``~/.local/share/authflow/``).
    On macOS/Windows: ``~/.authflow/data/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        base = _xdg_base("XDG_DATA_HOME", (".local", "share"))
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_storage_dir() -> Path:
    """Return the directory backing :class:`~authflow.auth.storage.FileBackend`."""
    path = get_data_dir() / "storage"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
    When *mode* is given it is applied before any content is written, so
    secrets are never readable by others, even momentarily.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close in finally
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up the temp file on any error (including KeyboardInterrupt).
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def _global_config_path() -> Path:
    """Path to the global config file."""
    return get_config_dir() / _CONFIG_FILENAME


def _read_json_object(path: Path, label: str) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid {label} at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid {label} at {path}: expected a JSON object")
    return data


def load_global_config() -> AuthConfig:
    """Load the global configuration from the XDG config directory.

    Returns:
        The deserialised :class:`~authflow.models.AuthConfig`. If the
        file does not exist, a default (and still invalid) instance is
        returned.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return AuthConfig()
    data = _read_json_object(path, "global config")
    try:
        return AuthConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: AuthConfig) -> None:
    """Persist the global configuration atomically to disk.

    Args:
        config: The configuration to save.
    """
    data = config.model_dump(mode="json")
    _atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local configuration from ``./authflow.json``.

    Project-local config sits between global config and environment
    variables in the precedence chain. Any :class:`AuthConfig` field may
    appear; unknown keys are rejected when the merged config is validated.

    Returns:
        The parsed JSON as a dict, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    return _read_json_object(path, "project config")


# --- Precedence resolution ---


def resolve_config(
    cli_auth_url: Optional[str] = None,
    cli_client_id: Optional[str] = None,
    cli_app_url: Optional[str] = None,
) -> AuthConfig:
    """Resolve config with full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_auth_url``, ``cli_client_id``, ``cli_app_url``)
        2. Environment variables (see :data:`ENV_OVERRIDES`)
        3. Project config (``./authflow.json``)
        4. User config (``~/.config/authflow/config.json``)
        5. Defaults

    The result is not validated for required fields; call
    :func:`require_valid_config` before using it against a provider.

    Raises:
        ConfigError: If any layer holds invalid JSON or the merged values
            fail Pydantic validation.
    """
    # 5 + 4
    data = load_global_config().model_dump(mode="json")

    # 3
    project = load_project_config()
    if project is not None:
        data.update(project)

    # 2
    for env_var, field_name in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            data[field_name] = value

    # 1
    cli_values = {
        "auth_server_url": cli_auth_url,
        "client_id": cli_client_id,
        "app_url": cli_app_url,
    }
    data.update({k: v for k, v in cli_values.items() if v is not None})

    try:
        return AuthConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


# --- Validation ---


def validate_auth_config(config: AuthConfig) -> list[str]:
    """Validate that the fields needed to talk to a provider are present.

    Args:
        config: The configuration to validate.

    Returns:
        A list of human-readable error strings. Empty if valid.
    """
    errors: list[str] = []
    if not config.auth_server_url:
        errors.append("'auth_server_url' is required (env: AUTHFLOW_AUTH_URL)")
    elif urlparse(config.auth_server_url).scheme not in ("http", "https"):
        errors.append("'auth_server_url' must be an http(s) URL")
    if not config.client_id:
        errors.append("'client_id' is required (env: AUTHFLOW_CLIENT_ID)")
    if config.app_url and urlparse(config.app_url).scheme not in ("http", "https"):
        errors.append("'app_url' must be an http(s) URL")
    return errors


def require_valid_config(config: AuthConfig) -> AuthConfig:
    """Return *config* unchanged, or raise if it is missing required fields.

    Raises:
        ConfigError: Listing every problem found by :func:`validate_auth_config`.
    """
    errors = validate_auth_config(config)
    if errors:
        raise ConfigError("; ".join(errors), details=errors)
    return config
