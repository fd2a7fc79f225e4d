"""OAuth 2.1 Authorization Code + PKCE flow for public clients.

This package holds the protocol core. Leaves first:

- :mod:`~authflow.auth.pkce` -- verifier, challenge, state and nonce generation.
- :mod:`~authflow.auth.endpoints` -- provider endpoint and authorization URL construction.
- :mod:`~authflow.auth.storage` -- namespaced persistence with lazy expiry.
- :mod:`~authflow.auth.token_client` -- code exchange, refresh and revocation over HTTP.
- :mod:`~authflow.auth.id_token` -- unverified identity-claim extraction.
- :mod:`~authflow.auth.navigation` -- the host's location and history.
- :class:`AuthStateMachine` -- orchestrates all of the above.

Typical usage::

    from authflow.auth import AuthStateMachine, MemoryNavigator

    machine = AuthStateMachine(config, MemoryNavigator("http://127.0.0.1:8765/"))
    state = await machine.start()
    token = await machine.get_access_token()
"""

from authflow.auth.loopback import CallbackServer
from authflow.auth.machine import AuthStateMachine
from authflow.auth.navigation import BrowserNavigator, MemoryNavigator, Navigator
from authflow.auth.storage import AuthStorage, FileBackend, MemoryBackend, StorageBackend
from authflow.auth.token_client import TokenClient

__all__ = [
    "AuthStateMachine",
    "AuthStorage",
    "BrowserNavigator",
    "CallbackServer",
    "FileBackend",
    "MemoryBackend",
    "MemoryNavigator",
    "Navigator",
    "StorageBackend",
    "TokenClient",
]
