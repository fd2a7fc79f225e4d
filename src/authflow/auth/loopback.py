"""Loopback HTTP receiver for the provider's redirect back to the app.

A desktop or CLI host has no page for the provider to redirect to, so
:class:`CallbackServer` plays that role: it listens on the configured
application URL and captures the full callback URL (with its ``code`` and
``state`` or ``error`` query parameters). The captured URL is then handed
to a fresh :class:`~authflow.auth.machine.AuthStateMachine` as its current
location, mirroring a page load at the callback route.
"""

from __future__ import annotations

import html
import logging
import time
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Optional
from urllib.parse import parse_qs, urlsplit

from authflow.exceptions import CallbackError, InvalidUsageError

logger = logging.getLogger(__name__)

_LOOPBACK_HOSTS = ("127.0.0.1", "localhost")

_PAGE = "<html><body><h2>{}</h2><p>{}</p></body></html>"


class CallbackServer:
    """Capture one redirect to *redirect_uri* on a local HTTP server.

    The socket is bound on construction, so the server is ready before the
    browser is sent to the provider. Requests for any other path are
    answered with 404 and ignored.

    Args:
        redirect_uri: ``http://127.0.0.1:<port>/...`` or
            ``http://localhost:<port>/...``.
        timeout: Seconds to wait for the callback in :meth:`wait`.

    Raises:
        InvalidUsageError: If *redirect_uri* is not a loopback http URL
            with an explicit port.

    Example::

        with CallbackServer("http://127.0.0.1:8765/callback") as server:
            machine.sign_in()
            callback_url = server.wait()
    """

    def __init__(self, redirect_uri: str, timeout: float = 120.0) -> None:
        parts = urlsplit(redirect_uri)
        if parts.scheme != "http" or parts.hostname not in _LOOPBACK_HOSTS or not parts.port:
            raise InvalidUsageError(
                f"Callback URL must be http://127.0.0.1:<port> or "
                f"http://localhost:<port>, got {redirect_uri!r}"
            )
        self._origin = f"{parts.scheme}://{parts.netloc}"
        self._path = parts.path or "/"
        self._timeout = timeout
        self._received: Optional[str] = None
        try:
            self._server = HTTPServer((parts.hostname, parts.port), self._handler_class())
        except OSError as exc:
            raise InvalidUsageError(
                f"Cannot listen on {self._origin}: {exc}"
            ) from exc

    @property
    def origin(self) -> str:
        return self._origin

    def _handler_class(self) -> type[BaseHTTPRequestHandler]:
        receiver = self

        class CallbackHandler(BaseHTTPRequestHandler):
            def do_GET(self) -> None:
                parsed = urlsplit(self.path)
                if parsed.path != receiver._path:
                    self.send_error(404)
                    return

                receiver._received = f"{receiver._origin}{self.path}"
                params = parse_qs(parsed.query)
                if "error" in params:
                    detail = params.get("error_description", params["error"])[0]
                    body = _PAGE.format("Sign-in failed", html.escape(detail))
                else:
                    body = _PAGE.format(
                        "Sign-in received",
                        "You can close this window and return to the terminal.",
                    )

                self.send_response(200)
                self.send_header("Content-Type", "text/html; charset=utf-8")
                self.end_headers()
                self.wfile.write(body.encode("utf-8"))

            def log_message(self, format: str, *args: Any) -> None:
                logger.debug("callback server: " + format, *args)

        return CallbackHandler

    def wait(self) -> str:
        """Block until the callback arrives and return its full URL.

        Raises:
            CallbackError: If nothing arrives within the timeout.
        """
        deadline = time.monotonic() + self._timeout
        while self._received is None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise CallbackError(
                    f"No callback received within {self._timeout:g} seconds"
                )
            self._server.timeout = remaining
            self._server.handle_request()
        return self._received

    def close(self) -> None:
        self._server.server_close()

    def __enter__(self) -> CallbackServer:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
