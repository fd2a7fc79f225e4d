"""PKCE (:rfc:`7636`) secret generation.

One sign-in attempt is described by a single :class:`~authflow.models.PKCEData`
record built by :func:`build_pkce_data`: the code verifier and its S256
challenge, a CSRF ``state`` value, an ID-token ``nonce``, the redirect URI
the code will be delivered to, and the creation time.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
import time
from typing import Optional

from authflow.constants import (
    PKCE_NONCE_LENGTH,
    PKCE_STATE_LENGTH,
    PKCE_VERIFIER_LENGTH,
)
from authflow.models import PKCEData


def _random_string(length: int) -> str:
    """Return *length* characters from the URL-safe alphabet using :mod:`secrets`."""
    # token_urlsafe(n) yields ~1.3n characters, so slicing keeps full entropy per char
    return secrets.token_urlsafe(length)[:length]


def generate_code_verifier() -> str:
    """Generate a PKCE code verifier (43-128 unreserved characters per RFC 7636)."""
    return _random_string(PKCE_VERIFIER_LENGTH)


def generate_code_challenge(verifier: str) -> str:
    """Return ``base64url(SHA-256(verifier))`` without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_state() -> str:
    """Generate the opaque ``state`` value echoed back on the callback (CSRF)."""
    return _random_string(PKCE_STATE_LENGTH)


def generate_nonce() -> str:
    """Generate the ``nonce`` bound into the ID token (replay protection)."""
    return _random_string(PKCE_NONCE_LENGTH)


def build_pkce_data(redirect_uri: str, now: Optional[float] = None) -> PKCEData:
    """Assemble the secrets for one sign-in attempt.

    Args:
        redirect_uri: Callback URL the authorization code will be sent to.
            The same value must accompany the code exchange.
        now: Creation time in epoch seconds. Defaults to ``time.time()``.

    Returns:
        A fresh :class:`~authflow.models.PKCEData` record.
    """
    code_verifier = generate_code_verifier()
    return PKCEData(
        code_verifier=code_verifier,
        code_challenge=generate_code_challenge(code_verifier),
        state=generate_state(),
        nonce=generate_nonce(),
        redirect_uri=redirect_uri,
        timestamp=time.time() if now is None else now,
    )
