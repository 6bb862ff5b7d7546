"""Per-actor fixed-window rate limiting on Redis."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Dict, Optional

from swipeapi.infra.redis import redis_client


@dataclass(frozen=True, slots=True)
class RateWindow:
	allowed: bool
	limit: int
	remaining: int
	reset_in: int

	def headers(self) -> Dict[str, str]:
		values = {
			"X-RateLimit-Limit": str(self.limit),
			"X-RateLimit-Remaining": str(self.remaining),
			"X-RateLimit-Reset": str(self.reset_in),
		}
		if not self.allowed:
			values["Retry-After"] = str(self.reset_in)
		return values


class RateLimitExceeded(Exception):
	"""Raised by :func:`enforce` when the actor's window is used up."""

	reason = "rate_limited"

	def __init__(self, kind: str, window: RateWindow) -> None:
		super().__init__(f"{kind} rate limit exceeded")
		self.kind = kind
		self.window = window


async def hit(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	now: Optional[float] = None,
) -> RateWindow:
	"""Count one operation for ``actor_id`` and report the state of its current window."""
	window = max(1, int(window_seconds))
	now = time.time() if now is None else now
	slot = int(now // window)
	reset_in = max(1, window - int(now % window))
	if limit <= 0:
		return RateWindow(allowed=False, limit=0, remaining=0, reset_in=reset_in)
	key = f"rl:{kind}:{actor_id}:{slot}:{window}"
	async with redis_client.pipeline(transaction=True) as pipe:
		pipe.incr(key)
		pipe.expire(key, window)
		count, _ = await pipe.execute()
	used = int(count)
	return RateWindow(allowed=used <= limit, limit=limit, remaining=max(0, limit - used), reset_in=reset_in)


async def allow(kind: str, actor_id: str, *, limit: int, window_seconds: int = 60, now: Optional[float] = None) -> bool:
	return (await hit(kind, actor_id, limit=limit, window_seconds=window_seconds, now=now)).allowed


async def enforce(kind: str, actor_id: str, *, limit: int, window_seconds: int = 60) -> RateWindow:
	window = await hit(kind, actor_id, limit=limit, window_seconds=window_seconds)
	if not window.allowed:
		raise RateLimitExceeded(kind, window)
	return window
