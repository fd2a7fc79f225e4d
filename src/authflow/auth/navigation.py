"""Location and history abstraction used by the state machine.

The flow was designed around a browser page: it reads the current URL,
performs full navigations to the provider, and rewrites the visible URL
after a callback. :class:`Navigator` captures exactly those three
capabilities so the machine can be hosted anywhere.

- :class:`MemoryNavigator` records navigations in memory (embedding, tests).
- :class:`BrowserNavigator` additionally opens navigations in the user's
  web browser; the CLI uses it together with
  :class:`~authflow.auth.loopback.CallbackServer`.
"""

from __future__ import annotations

import logging
import threading
import webbrowser
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

logger = logging.getLogger(__name__)


class Navigator(ABC):
    """Access to the host's current location."""

    @property
    @abstractmethod
    def current_url(self) -> str:
        """The full URL of the current location."""
        ...

    @abstractmethod
    def assign(self, url: str) -> None:
        """Perform a full navigation to *url*. Not cancellable once issued."""
        ...

    @abstractmethod
    def replace(self, url: str) -> None:
        """Rewrite the visible location without navigating."""
        ...

    def query_param(self, name: str) -> Optional[str]:
        """Return the first value of query parameter *name*, if present."""
        for key, value in parse_qsl(urlsplit(self.current_url).query, keep_blank_values=True):
            if key == name:
                return value
        return None

    @property
    def origin(self) -> str:
        parts = urlsplit(self.current_url)
        return f"{parts.scheme}://{parts.netloc}"

    @property
    def path_and_query(self) -> str:
        parts = urlsplit(self.current_url)
        path = parts.path or "/"
        return f"{path}?{parts.query}" if parts.query else path


def strip_query_params(url: str, names: tuple[str, ...]) -> str:
    """Return *url* without the named query parameters."""
    parts = urlsplit(url)
    kept = [
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if k not in names
    ]
    return urlunsplit(parts._replace(query=urlencode(kept)))


class MemoryNavigator(Navigator):
    """Navigator that only records what happened.

    Args:
        current_url: The starting location.
    """

    def __init__(self, current_url: str) -> None:
        self._current_url = current_url
        self.assigned: list[str] = []

    @property
    def current_url(self) -> str:
        return self._current_url

    def assign(self, url: str) -> None:
        self.assigned.append(url)

    def replace(self, url: str) -> None:
        self._current_url = url

    def load(self, url: str) -> None:
        """Simulate arriving at *url* (e.g. the provider redirecting back)."""
        self._current_url = url


class BrowserNavigator(MemoryNavigator):
    """Navigator that opens full navigations in the user's web browser.

    The browser is launched from a daemon thread so a slow browser start
    never blocks the caller.
    """

    def assign(self, url: str) -> None:
        super().assign(url)
        logger.debug("Opening browser for navigation")
        threading.Thread(target=webbrowser.open, args=(url,), daemon=True).start()
