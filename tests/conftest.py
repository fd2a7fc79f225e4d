"""Shared test fixtures for authflow.

Provides isolated config environments, output state management, a fake
clock, and a scripted mock of the provider's token and revocation
endpoints. These fixtures are automatically discovered by pytest.
"""

from __future__ import annotations

import base64
import json
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import parse_qs

import httpx
import pytest

from authflow.auth.storage import AuthStorage, MemoryBackend
from authflow.auth.token_client import TokenClient
from authflow.models import AuthConfig, RequestConfig
from authflow.output import OutputFormat, OutputManager, reset_output, set_output

AUTH_URL = "https://idp.example/realms/demo"
TOKEN_URL = f"{AUTH_URL}/protocol/openid-connect/token"
REVOKE_URL = f"{AUTH_URL}/protocol/openid-connect/revoke"
APP_URL = "http://127.0.0.1:8765"


def make_id_token(claims: dict[str, Any]) -> str:
    """Build an unsigned JWT-shaped token carrying *claims*."""

    def _segment(data: dict[str, Any]) -> str:
        raw = json.dumps(data).encode("utf-8")
        return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")

    return f"{_segment({'alg': 'none', 'typ': 'JWT'})}.{_segment(claims)}.sig"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time; CliRunner swaps those streams per invocation.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration and storage to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME below tmp_path, forces the XDG
    layout, clears all AUTHFLOW_* environment variables and changes the
    working directory to tmp_path.
    """
    monkeypatch.setattr("authflow.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    for var in [
        "AUTHFLOW_AUTH_URL",
        "AUTHFLOW_CLIENT_ID",
        "AUTHFLOW_APP_URL",
        "AUTHFLOW_BASE_PATH",
    ]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def quiet_output() -> OutputManager:
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# Auth fixtures
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider:
    """Scripted token/revocation endpoints behind :class:`httpx.MockTransport`.

    ``token_responses`` is consumed in order, one entry per token call. An
    entry is either an :class:`httpx.Response` or an exception to raise.
    Every request is recorded in ``calls`` with its decoded form body.
    """

    def __init__(self) -> None:
        self.token_responses: list[Any] = []
        self.revoke_error: Optional[Exception] = None
        self.calls: list[tuple[str, dict[str, str]]] = []
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        form = {k: v[0] for k, v in parse_qs(request.content.decode("utf-8")).items()}
        url = str(request.url)
        self.calls.append((url, form))
        if url == REVOKE_URL:
            if self.revoke_error is not None:
                raise self.revoke_error
            return httpx.Response(200)
        if url == TOKEN_URL and self.token_responses:
            result = self.token_responses.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return httpx.Response(404, text="unexpected request")

    def grant(self, access_token: str = "at-1", expires_in: int = 300, **extra: Any) -> None:
        body = {"access_token": access_token, "token_type": "Bearer", "expires_in": expires_in}
        body.update(extra)
        self.token_responses.append(httpx.Response(200, json=body))

    def fail(self, status: int = 400, body: str = '{"error":"invalid_grant"}') -> None:
        self.token_responses.append(httpx.Response(status, text=body))

    def grant_types(self) -> list[str]:
        return [form.get("grant_type", "") for url, form in self.calls if url == TOKEN_URL]

    def revoked(self) -> list[str]:
        return [form["token_type_hint"] for url, form in self.calls if url == REVOKE_URL]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def auth_config() -> AuthConfig:
    return AuthConfig(
        auth_server_url=AUTH_URL,
        client_id="app1",
        app_url=APP_URL,
        base_path="/simple-app",
        request=RequestConfig(timeout=5),
    )


@pytest.fixture
def storage(clock: FakeClock, auth_config: AuthConfig) -> AuthStorage:
    return AuthStorage(MemoryBackend(), base_path=auth_config.base_path, clock=clock)


@pytest.fixture
def token_client(provider: FakeProvider, auth_config: AuthConfig) -> Callable[..., TokenClient]:
    from authflow.auth.endpoints import build_endpoints

    def _make(**request: Any) -> TokenClient:
        return TokenClient(
            build_endpoints(auth_config.auth_server_url),
            auth_config.client_id,
            RequestConfig(**{"timeout": 5, **request}),
            transport=provider.transport,
        )

    return _make


@pytest.fixture
def id_token() -> Callable[[dict[str, Any]], str]:
    """Factory for unsigned ID tokens (see :func:`make_id_token`)."""
    return make_id_token
