"""Access tokens: HS256 JWTs issued by the auth service.

Besides the subject, a token may carry the account's ``roles`` and its discovery
``prefs`` so the explore endpoints can filter without an account lookup.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

import jwt

from swipeapi.settings import settings

ISSUER = "swipe-auth"
AUDIENCE = "swipe-app"
ALGORITHM = "HS256"
LEEWAY_SECONDS = 5
DEFAULT_TTL_SECONDS = 3600


@dataclass(frozen=True, slots=True)
class AccessClaims:
	subject: str
	prefs: Dict[str, Any] = field(default_factory=dict)
	roles: Tuple[str, ...] = ()


def _roles(claim: Any) -> Tuple[str, ...]:
	if isinstance(claim, str):
		claim = claim.split(",")
	if isinstance(claim, (list, tuple)):
		return tuple(str(role).strip() for role in claim if str(role).strip())
	return ()


def issue_access_token(
	subject: str,
	*,
	prefs: Optional[Mapping[str, Any]] = None,
	roles: Iterable[str] = (),
	ttl_seconds: int = DEFAULT_TTL_SECONDS,
	extra: Optional[Mapping[str, Any]] = None,
) -> str:
	now = int(time.time())
	body: Dict[str, Any] = {"iss": ISSUER, "aud": AUDIENCE, "iat": now, "exp": now + ttl_seconds, "sub": subject}
	if prefs:
		body["prefs"] = dict(prefs)
	role_list = [str(role) for role in roles]
	if role_list:
		body["roles"] = role_list
	if extra:
		body.update(extra)
	return jwt.encode(body, settings.secret_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> AccessClaims:
	"""Validate signature, expiry, issuer and audience.

	Raises ``jwt.InvalidTokenError`` subclasses on failure.
	"""
	payload = jwt.decode(
		token,
		settings.secret_key,
		algorithms=[ALGORITHM],
		audience=AUDIENCE,
		issuer=ISSUER,
		leeway=LEEWAY_SECONDS,
		options={"require": ["exp", "iat", "iss", "aud", "sub"]},
	)
	subject = str(payload.get("sub") or "").strip()
	if not subject:
		raise jwt.InvalidTokenError("missing_claim:sub")
	prefs = payload.get("prefs")
	return AccessClaims(
		subject=subject,
		prefs=dict(prefs) if isinstance(prefs, dict) else {},
		roles=_roles(payload.get("roles")),
	)
