"""Authentication dependencies for FastAPI endpoints."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import jwt
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from swipeapi.infra import tokens
from swipeapi.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	prefs: Dict[str, Any] = field(default_factory=dict)
	roles: Tuple[str, ...] = ()
	token: Optional[str] = None

	def has_role(self, role: str) -> bool:
		return role in self.roles


_bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized() -> HTTPException:
	return HTTPException(
		status_code=status.HTTP_401_UNAUTHORIZED,
		detail="invalid_token",
		headers={"WWW-Authenticate": "Bearer"},
	)


def verify_access_jwt(token: str) -> AuthenticatedUser:
	"""Decode and validate an access JWT and return an AuthenticatedUser."""
	try:
		claims = tokens.decode_access_token(token)
	except jwt.InvalidTokenError:
		raise _unauthorized() from None
	return AuthenticatedUser(id=claims.subject, prefs=claims.prefs, roles=claims.roles, token=token)


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated user.

	In development a bare X-User-Id header is accepted. In all other environments
	a valid Bearer JWT is required.
	"""
	if credentials and credentials.scheme.lower() == "bearer":
		return verify_access_jwt(credentials.credentials)
	if settings.is_dev() and x_user_id and x_user_id.strip():
		return AuthenticatedUser(id=x_user_id.strip())
	raise _unauthorized()
