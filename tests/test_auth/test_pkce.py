"""Tests for PKCE secret generation."""

from __future__ import annotations

import base64
import hashlib
import re

from authflow.auth.pkce import (
    build_pkce_data,
    generate_code_challenge,
    generate_code_verifier,
    generate_nonce,
    generate_state,
)

_URLSAFE = re.compile(r"^[A-Za-z0-9_-]+$")


class TestCodeChallenge:
    def test_matches_s256_of_verifier(self) -> None:
        verifier = generate_code_verifier()
        expected = (
            base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest())
            .rstrip(b"=")
            .decode()
        )
        assert generate_code_challenge(verifier) == expected

    def test_no_padding_and_urlsafe_alphabet(self) -> None:
        for _ in range(200):
            challenge = generate_code_challenge(generate_code_verifier())
            assert "=" not in challenge
            assert _URLSAFE.match(challenge)
            assert len(challenge) == 43

    def test_rfc7636_appendix_b(self) -> None:
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert generate_code_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


class TestRandomValues:
    def test_fixed_lengths(self) -> None:
        assert len(generate_code_verifier()) == 64
        assert len(generate_state()) == 32
        assert len(generate_nonce()) == 32

    def test_urlsafe_alphabet(self) -> None:
        for value in (generate_code_verifier(), generate_state(), generate_nonce()):
            assert _URLSAFE.match(value)

    def test_no_collisions(self) -> None:
        verifiers = {generate_code_verifier() for _ in range(10_000)}
        states = {generate_state() for _ in range(10_000)}
        nonces = {generate_nonce() for _ in range(10_000)}
        assert len(verifiers) == len(states) == len(nonces) == 10_000


class TestBuildPKCEData:
    def test_record_is_consistent(self) -> None:
        pkce = build_pkce_data("http://127.0.0.1:8765/callback", now=123.0)
        assert pkce.redirect_uri == "http://127.0.0.1:8765/callback"
        assert pkce.timestamp == 123.0
        assert pkce.code_challenge == generate_code_challenge(pkce.code_verifier)
        assert pkce.state != pkce.nonce

    def test_fresh_secrets_each_time(self) -> None:
        a = build_pkce_data("http://x/cb")
        b = build_pkce_data("http://x/cb")
        assert a.code_verifier != b.code_verifier
        assert a.state != b.state
