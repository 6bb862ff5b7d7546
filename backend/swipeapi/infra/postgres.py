"""Shared asyncpg pool.

Connections decode json/jsonb columns into Python objects so documents come back
ready for pydantic validation.
"""

from __future__ import annotations

import json
from typing import Optional

import asyncpg

from swipeapi.settings import settings

_pool: Optional[asyncpg.pool.Pool] = None


async def _init_connection(conn: asyncpg.Connection) -> None:
	for type_name in ("json", "jsonb"):
		await conn.set_type_codec(type_name, encoder=json.dumps, decoder=json.loads, schema="pg_catalog")


def _pool_options() -> dict:
	return {
		"dsn": settings.postgres_url,
		"min_size": settings.postgres_min_pool_size,
		"max_size": max(settings.postgres_min_pool_size, settings.postgres_max_pool_size),
		"command_timeout": settings.postgres_command_timeout,
		"ssl": "require" if settings.postgres_ssl else "disable",
		"init": _init_connection,
	}


async def init_pool() -> asyncpg.pool.Pool:
	global _pool
	if _pool is None:
		_pool = await asyncpg.create_pool(**_pool_options())
	return _pool


def set_pool(pool: Optional[asyncpg.pool.Pool]) -> None:
	"""Install a pool created elsewhere (tests, scripts)."""
	global _pool
	_pool = pool


async def get_pool() -> asyncpg.pool.Pool:
	return _pool if _pool is not None else await init_pool()


async def close_pool() -> None:
	global _pool
	pool, _pool = _pool, None
	if pool is not None:
		await pool.close()
