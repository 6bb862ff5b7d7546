"""JSON logging for the swipe API.

Records carry the request context bound by the HTTP middleware. ``extra`` fields
are sanitised before they reach the sink: credentials and location data are
redacted, long strings and collections are cut short.
"""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from swipeapi.settings import settings

_LOGGER_NAME = "swipeapi"

_CONTEXT: ContextVar[Mapping[str, str]] = ContextVar("swipeapi_log_context", default={})

# context key -> emitted field name
_CONTEXT_FIELDS = {"request_id": "request_id", "route": "route", "user_id": "user_id", "client_ip": "ip"}

_REDACTED = "[redacted]"
_SENSITIVE_SUBSTRINGS = ("token", "secret", "authorization", "password", "email", "geohash", "latitude", "longitude")
# Whole "_"-separated parts, so "latency_ms" survives while "lat" does not.
_SENSITIVE_PARTS = frozenset({"geo", "lat", "lon", "lng"})

_RESERVED_ATTRS = frozenset(
	logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys() | {"message", "taskName"}
)

_MAX_STRING_LENGTH = 256
_MAX_COLLECTION_ITEMS = 10


def bind_context(**fields: Optional[str]) -> Token:
	"""Layer request fields over the current context; pass the token to :func:`reset_context`."""
	unknown = set(fields) - set(_CONTEXT_FIELDS)
	if unknown:
		raise TypeError(f"unknown log context fields: {sorted(unknown)}")
	merged = dict(_CONTEXT.get())
	merged.update({key: str(value) for key, value in fields.items() if value})
	return _CONTEXT.set(merged)


def reset_context(token: Token) -> None:
	_CONTEXT.reset(token)


def current_request_id() -> Optional[str]:
	return _CONTEXT.get().get("request_id")


def is_sensitive(key: str) -> bool:
	lowered = key.lower()
	if any(word in lowered for word in _SENSITIVE_SUBSTRINGS):
		return True
	return not _SENSITIVE_PARTS.isdisjoint(lowered.replace("-", "_").split("_"))


def sanitize(key: str, value: Any) -> Any:
	if is_sensitive(key):
		return _REDACTED
	if value is None or isinstance(value, (bool, int, float)):
		return value
	if isinstance(value, str):
		return value if len(value) <= _MAX_STRING_LENGTH else value[:_MAX_STRING_LENGTH] + "…"
	if isinstance(value, Mapping):
		items = list(value.items())
		cleaned = {str(k): sanitize(str(k), v) for k, v in items[:_MAX_COLLECTION_ITEMS]}
		if len(items) > _MAX_COLLECTION_ITEMS:
			cleaned["…"] = f"+{len(items) - _MAX_COLLECTION_ITEMS} keys"
		return cleaned
	if isinstance(value, (list, tuple, set, frozenset)):
		items = list(value)
		cleaned_items = [sanitize("", item) for item in items[:_MAX_COLLECTION_ITEMS]]
		if len(items) > _MAX_COLLECTION_ITEMS:
			cleaned_items.append(f"+{len(items) - _MAX_COLLECTION_ITEMS} more")
		return cleaned_items
	return str(value)


class JSONLogFormatter(logging.Formatter):
	"""One JSON object per record: envelope, bound context, then sanitised extras."""

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (match logging api)
		payload: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"msg": record.getMessage(),
			"logger": record.name,
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		for key, value in _CONTEXT.get().items():
			payload[_CONTEXT_FIELDS[key]] = value
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		payload.update(
			(key, sanitize(key, value))
			for key, value in record.__dict__.items()
			if key not in _RESERVED_ATTRS and not key.startswith("_")
		)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Keep a random share of INFO records; every other level passes."""

	def __init__(self, rate: Optional[float] = None) -> None:
		super().__init__()
		self._rate = rate

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO:
			return True
		rate = settings.obs_log_sampling_rate_info if self._rate is None else self._rate
		return rate >= 1.0 or random.random() < max(0.0, rate)


def configure_logging() -> logging.Logger:
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root = logging.getLogger()
	root.handlers[:] = [handler]
	root.setLevel(settings.obs_log_level)
	return logging.getLogger(_LOGGER_NAME)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _LOGGER_NAME)
