"""Centralised JWT helpers for access tokens.

The marketplace API signs HS256 tokens with the shared secret and an ``exp``
claim. Issuer/audience are validated only when configured, so tokens minted
by the existing auth controller (``{"id": ..., "exp": ...}``) stay valid.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

import jwt
from jwt import InvalidTokenError

from learnhub.settings import settings


def encode_access(payload: dict[str, object], *, ttl_seconds: int = 3600) -> str:
    """Encode an access token; used by tests and internal tooling."""
    now = int(time.time())
    body: Dict[str, Any] = {"iat": now, "exp": now + ttl_seconds}
    if settings.jwt_issuer:
        body["iss"] = settings.jwt_issuer
    if settings.jwt_audience:
        body["aud"] = settings.jwt_audience
    body.update(payload)
    return jwt.encode(body, settings.secret_key, algorithm="HS256")


def decode_access(token: str) -> dict[str, object]:
    """Decode and validate an access token.

    Raises jwt.InvalidTokenError subclasses on failure.
    """
    options: Dict[str, Any] = {"require": ["exp"]}
    kwargs: Dict[str, Any] = {}
    if settings.jwt_issuer:
        kwargs["issuer"] = settings.jwt_issuer
    if settings.jwt_audience:
        kwargs["audience"] = settings.jwt_audience
    else:
        options["verify_aud"] = False
    payload = jwt.decode(
        token,
        settings.secret_key,
        algorithms=["HS256"],
        leeway=5,
        options=options,
        **kwargs,
    )
    if not subject_of(payload):
        raise InvalidTokenError("missing_claim:sub")
    return payload  # type: ignore[return-value]


def subject_of(payload: dict) -> Optional[str]:
    """Return the user id carried by a token (``sub``, or the legacy ``id`` claim)."""
    raw = payload.get("sub") or payload.get("id")
    if raw is None:
        return None
    value = str(raw).strip()
    return value or None
