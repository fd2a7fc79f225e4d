"""Tests for namespaced auth storage and its backends."""

from __future__ import annotations

import json
import logging
import os
import stat
from pathlib import Path

import pytest

from authflow.auth.pkce import build_pkce_data
from authflow.auth.storage import AuthStorage, FileBackend, MemoryBackend, storage_prefix
from authflow.models import AuthUser, StoredTokens


def _tokens(expires_at: float, refresh_token: str | None = "rt-1") -> StoredTokens:
    return StoredTokens(
        access_token="at-1",
        refresh_token=refresh_token,
        id_token=None,
        expires_at=expires_at,
    )


class TestStoragePrefix:
    @pytest.mark.parametrize(
        "base_path, expected",
        [
            ("/", "app"),
            ("", "app"),
            ("/simple-app", "simple-app"),
            ("/simple-app/", "simple-app"),
            ("/a/b/", "a_b"),
        ],
    )
    def test_prefix(self, base_path: str, expected: str) -> None:
        assert storage_prefix(base_path) == expected

    def test_keys_are_namespaced(self) -> None:
        backend = MemoryBackend()
        AuthStorage(backend, "/one").set_return_url("/x")
        AuthStorage(backend, "/two").set_return_url("/y")
        assert backend.keys() == ["one_auth_return_url", "two_auth_return_url"]
        assert AuthStorage(backend, "/one").get_return_url() == "/x"


class TestTokens:
    def test_round_trip(self, storage: AuthStorage, clock) -> None:
        tokens = _tokens(clock() + 300)
        storage.set_tokens(tokens)
        assert storage.get_tokens() == tokens

    def test_expired_tokens_evicted_on_read(self, storage: AuthStorage, clock) -> None:
        storage.set_tokens(_tokens(clock() + 300))
        clock.advance(300)
        assert storage.get_tokens() is None
        clock.advance(-300)
        # evicted, not merely hidden
        assert storage.get_tokens() is None

    def test_stored_as_json(self, clock) -> None:
        backend = MemoryBackend()
        AuthStorage(backend, "/simple-app", clock=clock).set_tokens(_tokens(clock() + 1))
        data = json.loads(backend.get_item("simple-app_auth_tokens") or "")
        assert data["access_token"] == "at-1"
        assert data["expires_at"] == clock() + 1

    def test_clear_is_idempotent(self, storage: AuthStorage) -> None:
        storage.clear_tokens()
        storage.clear_tokens()
        assert storage.get_tokens() is None


class TestPKCE:
    def test_round_trip_within_window(self, storage: AuthStorage, clock) -> None:
        pkce = build_pkce_data("http://x/cb", now=clock())
        storage.set_pkce(pkce)
        clock.advance(600)
        assert storage.get_pkce() == pkce

    def test_evicted_after_window(self, storage: AuthStorage, clock) -> None:
        storage.set_pkce(build_pkce_data("http://x/cb", now=clock()))
        clock.advance(601)
        assert storage.get_pkce() is None
        clock.advance(-601)
        assert storage.get_pkce() is None


class TestUserAndReturnUrl:
    def test_user_round_trip(self, storage: AuthStorage) -> None:
        user = AuthUser(sub="u1", email="a@b.com")
        storage.set_user(user)
        assert storage.get_user() == user
        storage.clear_user()
        assert storage.get_user() is None

    def test_return_url_round_trip(self, storage: AuthStorage) -> None:
        storage.set_return_url("/simple-app/reports?page=2")
        assert storage.get_return_url() == "/simple-app/reports?page=2"

    def test_clear_all(self, storage: AuthStorage, clock) -> None:
        storage.set_tokens(_tokens(clock() + 300))
        storage.set_pkce(build_pkce_data("http://x/cb", now=clock()))
        storage.set_user(AuthUser(sub="u1"))
        storage.set_return_url("/")
        storage.clear_all()
        assert storage.get_tokens() is None
        assert storage.get_pkce() is None
        assert storage.get_user() is None
        assert storage.get_return_url() is None


class TestCorruptRecords:
    @pytest.mark.parametrize(
        "name, getter",
        [
            ("auth_tokens", "get_tokens"),
            ("auth_pkce", "get_pkce"),
            ("auth_user", "get_user"),
            ("auth_return_url", "get_return_url"),
        ],
    )
    def test_unreadable_record_is_absent_and_evicted(
        self, name: str, getter: str, caplog: pytest.LogCaptureFixture
    ) -> None:
        backend = MemoryBackend()
        storage = AuthStorage(backend, "/")
        backend.set_item(f"app_{name}", "{not json")

        with caplog.at_level(logging.WARNING, logger="authflow.auth.storage"):
            assert getattr(storage, getter)() is None
            assert getattr(storage, getter)() is None

        assert backend.get_item(f"app_{name}") is None
        assert len(caplog.records) == 1

    @pytest.mark.parametrize(
        "name, getter",
        [
            ("auth_tokens", "get_tokens"),
            ("auth_pkce", "get_pkce"),
            ("auth_user", "get_user"),
            ("auth_return_url", "get_return_url"),
        ],
    )
    def test_undecodable_file_is_absent_and_evicted(
        self, name: str, getter: str, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        path = tmp_path / f"simple-app_{name}.json"
        path.write_bytes(b"\xff\xfe{bad")
        storage = AuthStorage(FileBackend(tmp_path), "/simple-app")

        with caplog.at_level(logging.WARNING, logger="authflow.auth.storage"):
            assert getattr(storage, getter)() is None
            assert getattr(storage, getter)() is None

        assert not path.exists()
        assert len(caplog.records) == 1

    def test_wrong_shape_is_absent(self) -> None:
        backend = MemoryBackend()
        backend.set_item("app_auth_tokens", json.dumps({"access_token": "x"}))
        assert AuthStorage(backend).get_tokens() is None


class TestFileBackend:
    def test_round_trip(self, tmp_path: Path) -> None:
        backend = FileBackend(tmp_path / "storage")
        assert backend.get_item("k") is None
        backend.set_item("k", '{"a": 1}')
        assert backend.get_item("k") == '{"a": 1}'
        backend.remove_item("k")
        backend.remove_item("k")
        assert backend.get_item("k") is None

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
    def test_files_are_private(self, tmp_path: Path) -> None:
        backend = FileBackend(tmp_path)
        backend.set_item("app_auth_tokens", "{}")
        mode = stat.S_IMODE((tmp_path / "app_auth_tokens.json").stat().st_mode)
        assert mode == 0o600

    @pytest.mark.parametrize("key", ["../escape", "a/b", ""])
    def test_rejects_unsafe_keys(self, tmp_path: Path, key: str) -> None:
        with pytest.raises(ValueError):
            FileBackend(tmp_path).set_item(key, "x")

    def test_backs_auth_storage(self, tmp_path: Path, clock) -> None:
        storage = AuthStorage(FileBackend(tmp_path), "/simple-app", clock=clock)
        storage.set_tokens(_tokens(clock() + 300))
        reopened = AuthStorage(FileBackend(tmp_path), "/simple-app", clock=clock)
        assert reopened.get_tokens() is not None
        assert (tmp_path / "simple-app_auth_tokens.json").is_file()
