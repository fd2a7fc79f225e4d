"""Tests for the location abstraction."""

from __future__ import annotations

import threading

import pytest

from authflow.auth.navigation import BrowserNavigator, MemoryNavigator, strip_query_params


class TestMemoryNavigator:
    def test_location_parts(self) -> None:
        nav = MemoryNavigator("http://127.0.0.1:8765/simple-app/reports?page=2&q=a+b")
        assert nav.origin == "http://127.0.0.1:8765"
        assert nav.path_and_query == "/simple-app/reports?page=2&q=a+b"
        assert nav.query_param("q") == "a b"
        assert nav.query_param("missing") is None

    def test_bare_origin_has_root_path(self) -> None:
        assert MemoryNavigator("http://localhost:8000").path_and_query == "/"

    def test_blank_param_is_present(self) -> None:
        assert MemoryNavigator("http://x/cb?code=").query_param("code") == ""

    def test_assign_records_and_replace_rewrites(self) -> None:
        nav = MemoryNavigator("http://x/a?code=1")
        nav.assign("https://idp/auth")
        nav.replace("http://x/a")
        assert nav.assigned == ["https://idp/auth"]
        assert nav.current_url == "http://x/a"


class TestStripQueryParams:
    def test_keeps_other_params(self) -> None:
        url = "http://x/cb?code=c&state=s&session_state=abc&iss=https%3A%2F%2Fidp"
        assert strip_query_params(url, ("code", "state")) == (
            "http://x/cb?session_state=abc&iss=https%3A%2F%2Fidp"
        )

    def test_removes_question_mark_when_empty(self) -> None:
        assert strip_query_params("http://x/cb?code=c&state=s", ("code", "state")) == "http://x/cb"


class TestBrowserNavigator:
    def test_opens_browser(self, monkeypatch: pytest.MonkeyPatch) -> None:
        opened: list[str] = []
        done = threading.Event()

        def fake_open(url: str) -> bool:
            opened.append(url)
            done.set()
            return True

        monkeypatch.setattr("authflow.auth.navigation.webbrowser.open", fake_open)
        nav = BrowserNavigator("http://127.0.0.1:8765/")
        nav.assign("https://idp.example/auth?x=1")

        assert done.wait(5)
        assert opened == ["https://idp.example/auth?x=1"]
        assert nav.assigned == ["https://idp.example/auth?x=1"]
