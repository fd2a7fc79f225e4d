"""Unverified identity-claim extraction from an OIDC ID token.

The signature is NOT checked. Claims returned here are display hints only
and must never be used as authorization input.
"""

from __future__ import annotations

import base64
import binascii
import json

from pydantic import ValidationError

from authflow.exceptions import TokenError
from authflow.models import AuthUser


def _b64url_decode(segment: str) -> bytes:
    padding = "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(segment + padding)


def decode_id_token(id_token: str) -> AuthUser:
    """Decode the payload segment of a JWT into an :class:`~authflow.models.AuthUser`.

    Only ``sub``, ``email``, ``email_verified``, ``name``,
    ``preferred_username``, ``given_name`` and ``family_name`` are kept.

    Raises:
        TokenError: If the token does not have three segments, or the
            payload is not base64url-encoded JSON carrying a ``sub`` claim.
    """
    parts = id_token.split(".")
    if len(parts) != 3:
        raise TokenError("Invalid ID token format")
    try:
        payload = json.loads(_b64url_decode(parts[1]))
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise TokenError("Invalid ID token payload") from exc
    if not isinstance(payload, dict):
        raise TokenError("Invalid ID token payload")
    try:
        return AuthUser.model_validate(payload)
    except ValidationError as exc:
        raise TokenError("ID token payload is missing required claims") from exc
