"""Logging and request instrumentation for the swipe API."""

from __future__ import annotations

from fastapi import FastAPI

from swipeapi.obs import logging as obs_logging
from swipeapi.obs.middleware import ObservabilityMiddleware
from swipeapi.settings import settings


def init(app: FastAPI) -> bool:
	"""Configure JSON logging and attach the instrumentation middleware once per app."""
	if not settings.obs_enabled or getattr(app.state, "obs_installed", False):
		return False
	obs_logging.configure_logging()
	app.add_middleware(ObservabilityMiddleware)
	app.state.obs_installed = True
	return True


__all__ = ["init"]
