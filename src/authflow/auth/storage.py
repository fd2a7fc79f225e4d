"""Namespaced persistence of tokens, the in-flight PKCE record, user, and return URL.

Two layers live here:

- :class:`StorageBackend` -- a synchronous string key/value store.
  :class:`MemoryBackend` keeps values in process memory;
  :class:`FileBackend` stores one JSON file per key with ``0o600``
  permissions, written atomically via :func:`~authflow.config._atomic_write`.
- :class:`AuthStorage` -- typed get/set/clear operations over a backend,
  with keys prefixed by a namespace derived from the application's base
  path so several apps can share one backend.

Expiry is enforced lazily on read: :meth:`AuthStorage.get_tokens` and
:meth:`AuthStorage.get_pkce` evict and hide stale records. A record that
cannot be parsed is logged, evicted, and treated as absent.

See Also:
    :class:`~authflow.auth.machine.AuthStateMachine` -- the sole writer.
"""

from __future__ import annotations

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from authflow.config import _atomic_write
from authflow.constants import (
    PKCE_DATA_EXPIRY_SECONDS,
    STORAGE_KEY_PKCE,
    STORAGE_KEY_RETURN_URL,
    STORAGE_KEY_TOKENS,
    STORAGE_KEY_USER,
)
from authflow.models import AuthUser, PKCEData, StoredTokens

logger = logging.getLogger(__name__)

_ModelT = TypeVar("_ModelT", bound=BaseModel)

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class StorageBackend(ABC):
    """Synchronous string key/value store."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the stored value for *key*, or ``None`` if absent."""
        ...

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store *value* under *key*, replacing any previous value."""
        ...

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Delete *key*. A no-op when the key is absent."""
        ...


class MemoryBackend(StorageBackend):
    """Process-local backend, mostly useful for embedding and tests."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._items)


class FileBackend(StorageBackend):
    """Store each key as ``<directory>/<key>.json``.

    Writes are atomic and files are created with ``0o600`` permissions
    before any content is written, so tokens are never world-readable.

    Args:
        directory: Directory holding the entries. Created on first write.
    """

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self._directory / f"{key}.json"

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        _atomic_write(self._path(key), value, mode=0o600)

    def remove_item(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


def storage_prefix(base_path: str) -> str:
    """Derive the key namespace from a base path.

    ``/`` becomes ``_`` and leading/trailing underscores are trimmed; the
    root path maps to ``app``.

    Example::

        >>> storage_prefix("/simple-app/")
        'simple-app'
    """
    return base_path.replace("/", "_").strip("_") or "app"


class AuthStorage:
    """Typed, namespaced access to auth artifacts.

    Each artifact is a single JSON-encoded entry, so at most one token
    record and one PKCE record exist per namespace at any time.

    Args:
        backend: Key/value store to persist into.
        base_path: Application base path; determines the key prefix.
        clock: Returns the current time in epoch seconds.

    Example::

        storage = AuthStorage(MemoryBackend(), base_path="/simple-app")
        storage.set_return_url("/reports?page=2")
        assert storage.get_return_url() == "/reports?page=2"
    """

    def __init__(
        self,
        backend: StorageBackend,
        base_path: str = "/",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._backend = backend
        self._prefix = storage_prefix(base_path)
        self._clock = clock

    @property
    def prefix(self) -> str:
        return self._prefix

    def key(self, name: str) -> str:
        """Return the namespaced backend key for *name*."""
        return f"{self._prefix}_{name}"

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _get_raw(self, name: str) -> Optional[str]:
        key = self.key(name)
        try:
            return self._backend.get_item(key)
        except UnicodeDecodeError as exc:
            logger.warning("Discarding undecodable record %r: %s", key, exc.reason)
            self._backend.remove_item(key)
            return None

    def _read(self, name: str, model: type[_ModelT]) -> Optional[_ModelT]:
        raw = self._get_raw(name)
        if raw is None:
            return None
        try:
            return model.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning(
                "Discarding unreadable %s record %r: %s",
                model.__name__,
                self.key(name),
                exc.errors(include_url=False, include_input=False),
            )
            self._backend.remove_item(self.key(name))
            return None

    def _write(self, name: str, record: BaseModel) -> None:
        self._backend.set_item(self.key(name), record.model_dump_json())

    def _remove(self, name: str) -> None:
        self._backend.remove_item(self.key(name))

    # ------------------------------------------------------------------ #
    # Tokens
    # ------------------------------------------------------------------ #

    def get_tokens(self) -> Optional[StoredTokens]:
        """Return the stored tokens, evicting them if already expired."""
        tokens = self._read(STORAGE_KEY_TOKENS, StoredTokens)
        if tokens is None:
            return None
        if tokens.expires_at <= self._clock():
            logger.debug("Stored tokens expired; evicting")
            self.clear_tokens()
            return None
        return tokens

    def set_tokens(self, tokens: StoredTokens) -> None:
        self._write(STORAGE_KEY_TOKENS, tokens)

    def clear_tokens(self) -> None:
        self._remove(STORAGE_KEY_TOKENS)

    # ------------------------------------------------------------------ #
    # PKCE (temporary, one in-flight sign-in)
    # ------------------------------------------------------------------ #

    def get_pkce(self) -> Optional[PKCEData]:
        """Return the in-flight PKCE record, evicting it once stale."""
        pkce = self._read(STORAGE_KEY_PKCE, PKCEData)
        if pkce is None:
            return None
        if self._clock() - pkce.timestamp > PKCE_DATA_EXPIRY_SECONDS:
            logger.debug("PKCE record older than %ss; evicting", PKCE_DATA_EXPIRY_SECONDS)
            self.clear_pkce()
            return None
        return pkce

    def set_pkce(self, pkce: PKCEData) -> None:
        self._write(STORAGE_KEY_PKCE, pkce)

    def clear_pkce(self) -> None:
        self._remove(STORAGE_KEY_PKCE)

    # ------------------------------------------------------------------ #
    # User
    # ------------------------------------------------------------------ #

    def get_user(self) -> Optional[AuthUser]:
        return self._read(STORAGE_KEY_USER, AuthUser)

    def set_user(self, user: AuthUser) -> None:
        self._write(STORAGE_KEY_USER, user)

    def clear_user(self) -> None:
        self._remove(STORAGE_KEY_USER)

    # ------------------------------------------------------------------ #
    # Return URL (where to land after sign-in)
    # ------------------------------------------------------------------ #

    def get_return_url(self) -> Optional[str]:
        raw = self._get_raw(STORAGE_KEY_RETURN_URL)
        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            value = None
        if not isinstance(value, str):
            logger.warning(
                "Discarding unreadable return URL record %r",
                self.key(STORAGE_KEY_RETURN_URL),
            )
            self.clear_return_url()
            return None
        return value

    def set_return_url(self, url: str) -> None:
        self._backend.set_item(self.key(STORAGE_KEY_RETURN_URL), json.dumps(url))

    def clear_return_url(self) -> None:
        self._remove(STORAGE_KEY_RETURN_URL)

    def clear_all(self) -> None:
        """Remove tokens, PKCE record, user, and return URL."""
        self.clear_tokens()
        self.clear_pkce()
        self.clear_user()
        self.clear_return_url()
