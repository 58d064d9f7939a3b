"""Authentication helpers for FastAPI endpoints and socket handshakes.

- Bearer JWTs (HS256, settings.secret_key) are the only accepted credential
  outside development.
- In development, X-User-* headers stand in for a token so local tools and
  tests can act as any user.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import InvalidTokenError

from timepass.infra import jwt as jwt_helper
from timepass.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	handle: Optional[str] = None
	display_name: Optional[str] = None
	avatar_url: Optional[str] = None


_bearer_scheme = HTTPBearer(auto_error=False)


def _optional_str(value: Any) -> Optional[str]:
	if value is None:
		return None
	text = str(value).strip()
	return text or None


def verify_access_jwt(token: str) -> AuthenticatedUser:
	"""Decode and validate an access JWT and return an AuthenticatedUser."""
	try:
		claims = jwt_helper.decode_access(token)
	except InvalidTokenError:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
	return AuthenticatedUser(
		id=claims["sub"],
		handle=_optional_str(claims.get("handle")),
		display_name=_optional_str(claims.get("name")),
		avatar_url=_optional_str(claims.get("avatar_url")),
	)


def user_from_headers(headers: Mapping[str, Any]) -> Optional[AuthenticatedUser]:
	"""Development-only identity from X-User-* headers (any case)."""
	if not settings.is_dev():
		return None
	lowered = {str(key).lower(): value for key, value in headers.items()}
	user_id = _optional_str(lowered.get("x-user-id"))
	if not user_id:
		return None
	return AuthenticatedUser(
		id=user_id,
		handle=_optional_str(lowered.get("x-user-handle")),
		display_name=_optional_str(lowered.get("x-user-name")),
		avatar_url=_optional_str(lowered.get("x-user-avatar")),
	)


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_handle: Optional[str] = Header(default=None, alias="X-User-Handle"),
	x_user_name: Optional[str] = Header(default=None, alias="X-User-Name"),
	x_user_avatar: Optional[str] = Header(default=None, alias="X-User-Avatar"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated user.

	In development we allow simple headers. In all other environments, headers are
	ignored and a valid Bearer JWT is required.
	"""
	if credentials and credentials.scheme.lower() == "bearer":
		return verify_access_jwt(credentials.credentials)

	user = user_from_headers(
		{
			"x-user-id": x_user_id,
			"x-user-handle": x_user_handle,
			"x-user-name": x_user_name,
			"x-user-avatar": x_user_avatar,
		}
	)
	if user is not None:
		return user

	raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")
