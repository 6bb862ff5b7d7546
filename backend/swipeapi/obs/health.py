"""Liveness and readiness probes.

Readiness pings Redis (rate limiting) and Postgres (document store) concurrently;
each probe is bounded by its own timeout and reports latency in milliseconds.
"""

from __future__ import annotations

import asyncio
import logging
from time import perf_counter
from typing import Any, Awaitable, Callable, Dict, Tuple

from swipeapi.infra import postgres
from swipeapi.infra.redis import redis_client
from swipeapi.obs import metrics
from swipeapi.settings import settings

LOGGER = logging.getLogger(__name__)

REDIS_TIMEOUT_SECONDS = 0.2
POSTGRES_TIMEOUT_SECONDS = 0.3


async def _ping_postgres() -> None:
	pool = await postgres.get_pool()
	async with pool.acquire() as conn:
		await conn.execute("SELECT 1")


async def _probe(
	name: str,
	ping: Callable[[], Awaitable[Any]],
	mark: Callable[..., None],
	timeout: float,
) -> Dict[str, Any]:
	start = perf_counter()
	try:
		await asyncio.wait_for(ping(), timeout=timeout)
	except Exception as exc:  # pragma: no cover - depends on runtime
		mark(False)
		LOGGER.warning("%s readiness probe failed", name, exc_info=True)
		return {"ok": False, "error": type(exc).__name__}
	latency = perf_counter() - start
	mark(True, latency_seconds=latency)
	return {"ok": True, "latency_ms": round(latency * 1000, 2)}


async def liveness() -> Dict[str, Any]:
	return {"status": "ok", "service": settings.service_name}


async def readiness() -> Tuple[int, Dict[str, Any]]:
	redis_state, postgres_state = await asyncio.gather(
		_probe("redis", redis_client.ping, metrics.mark_redis, REDIS_TIMEOUT_SECONDS),
		_probe("postgres", _ping_postgres, metrics.mark_postgres, POSTGRES_TIMEOUT_SECONDS),
	)
	ready = redis_state["ok"] and postgres_state["ok"]
	payload = {
		"status": "ok" if ready else "degraded",
		"service": settings.service_name,
		"commit": settings.git_commit,
		"redis": redis_state,
		"postgres": postgres_state,
	}
	return (200 if ready else 503), payload
