"""authflow -- OAuth 2.1 Authorization Code + PKCE client for public apps.

This package signs a user in against an OAuth2/OIDC identity provider
(Keycloak URL conventions) without a client secret. It generates the PKCE
secrets, builds the authorization URL, validates the redirect callback,
exchanges the code for tokens, persists them with expiry, refreshes them
transparently, and revokes them on sign-out.

Typical usage::

    from authflow.auth import AuthStateMachine, MemoryNavigator
    from authflow.models import AuthConfig

    config = AuthConfig(auth_server_url="https://idp.example/realms/demo",
                        client_id="app1", app_url="http://127.0.0.1:8765")
    machine = AuthStateMachine(config, navigator=MemoryNavigator(...))
    await machine.start()

Modules:
    app: Typer application factory and CLI entry point.
    models: Pydantic models shared across the entire package.
    config: XDG-aware configuration loading and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"
