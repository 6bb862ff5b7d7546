"""ASGI entrypoint: ``uvicorn swipeapi.main:app``."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from swipeapi.api import explore, ops
from swipeapi.api.errors import install_error_handlers
from swipeapi.api.request_id import RequestIdMiddleware
from swipeapi.infra import postgres
from swipeapi.infra.redis import redis_client
from swipeapi.obs import init as obs_init
from swipeapi.settings import settings

DEV_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


@asynccontextmanager
async def lifespan(app: FastAPI):
	await postgres.init_pool()
	try:
		yield
	finally:
		await postgres.close_pool()
		await redis_client.close()


def cors_origins() -> List[str]:
	"""Configured origins; credentials are allowed, so a wildcard falls back to the dev origins."""
	origins = [origin for origin in settings.cors_allow_origins if origin]
	if not origins or "*" in origins:
		return list(DEV_ORIGINS) if settings.is_dev() else []
	return origins


def create_app() -> FastAPI:
	application = FastAPI(title="Swipe API", lifespan=lifespan)
	install_error_handlers(application)
	application.add_middleware(
		CORSMiddleware,
		allow_origins=cors_origins(),
		allow_credentials=True,
		allow_methods=["GET"],
		allow_headers=["Authorization", "Content-Type", "X-Request-Id", "X-User-Id"],
		expose_headers=["X-Request-Id", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset", "Retry-After"],
	)
	obs_init(application)
	# Outermost, so the id is bound before instrumentation runs.
	application.add_middleware(RequestIdMiddleware)
	application.include_router(explore.router)
	application.include_router(ops.router)
	return application


app = create_app()
