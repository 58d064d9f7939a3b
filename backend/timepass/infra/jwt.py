"""HS256 access tokens carrying the chat identity (id, handle, name, avatar)."""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

import jwt
from jwt import InvalidTokenError

from timepass.settings import settings

ISSUER = "timepass-api"
AUDIENCE = "timepass-web"
ALGORITHM = "HS256"
ACCESS_TTL_SECONDS = 15 * 60

_REQUIRED_CLAIMS = ["exp", "iat", "iss", "aud", "sub"]
_PROFILE_CLAIMS = ("handle", "name", "avatar_url")


def issue_access_token(
    user_id: str,
    *,
    handle: Optional[str] = None,
    name: Optional[str] = None,
    avatar_url: Optional[str] = None,
    ttl_seconds: int = ACCESS_TTL_SECONDS,
) -> str:
    now = int(time.time())
    claims: Dict[str, Any] = {
        "sub": str(user_id),
        "iss": ISSUER,
        "aud": AUDIENCE,
        "iat": now,
        "exp": now + ttl_seconds,
    }
    profile = {"handle": handle, "name": name, "avatar_url": avatar_url}
    claims.update({key: value for key, value in profile.items() if value})
    return jwt.encode(claims, settings.secret_key, algorithm=ALGORITHM)


def decode_access(token: str) -> Dict[str, Any]:
    """Validate signature, issuer, audience and expiry; raises InvalidTokenError.

    Only ``sub`` and the profile claims are returned.
    """
    claims = jwt.decode(
        token,
        settings.secret_key,
        algorithms=[ALGORITHM],
        audience=AUDIENCE,
        issuer=ISSUER,
        leeway=5,
        options={"require": _REQUIRED_CLAIMS},
    )
    subject = str(claims.get("sub") or "").strip()
    if not subject:
        raise InvalidTokenError("missing_claim:sub")
    identity = {"sub": subject}
    identity.update({key: claims[key] for key in _PROFILE_CLAIMS if claims.get(key)})
    return identity
