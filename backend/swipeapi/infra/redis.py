"""Shared Redis client.

Modules import the ``redis_client`` proxy; the concrete client behind it is created
on first use and can be replaced (fakeredis in tests) without re-importing.
"""

from __future__ import annotations

from typing import Optional

import redis.asyncio as redis

from swipeapi.settings import settings


class RedisProxy:
	def __init__(self, client: Optional[redis.Redis] = None) -> None:
		self._client = client

	@property
	def client(self) -> redis.Redis:
		if self._client is None:
			self._client = redis.from_url(settings.redis_url, decode_responses=True)
		return self._client

	def set_client(self, client: Optional[redis.Redis]) -> None:
		self._client = client

	async def close(self) -> None:
		client, self._client = self._client, None
		if client is not None:
			await client.aclose()

	def __getattr__(self, item):
		return getattr(self.client, item)


redis_client = RedisProxy()


def set_redis_client(client: Optional[redis.Redis]) -> None:
	redis_client.set_client(client)
