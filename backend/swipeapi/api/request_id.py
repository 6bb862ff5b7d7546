"""Request ids: bound by middleware, read back by handlers and error responses."""

from __future__ import annotations

import re
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from swipeapi.obs import logging as obs_logging

REQUEST_ID_ATTR = "request_id"
REQUEST_ID_HEADER = "X-Request-Id"

_VALID_ID = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")


def new_request_id() -> str:
	return uuid.uuid4().hex[:12]


def accept_request_id(candidate: str | None) -> str:
	"""Reuse a caller-supplied id only when it is short and header-safe."""
	if candidate and _VALID_ID.match(candidate.strip()):
		return candidate.strip()
	return new_request_id()


def get_request_id(request: Request | None = None, default: str = "unknown") -> str:
	"""Return the id bound to this request, else the logging context id, else a default."""
	if request is not None:
		rid = getattr(request.state, REQUEST_ID_ATTR, None)
		if rid:
			return str(rid)
	return obs_logging.current_request_id() or default


class RequestIdMiddleware(BaseHTTPMiddleware):
	async def dispatch(self, request: Request, call_next):  # type: ignore[override]
		rid = accept_request_id(request.headers.get(REQUEST_ID_HEADER))
		setattr(request.state, REQUEST_ID_ATTR, rid)
		response = await call_next(request)
		response.headers.setdefault(REQUEST_ID_HEADER, rid)
		return response
