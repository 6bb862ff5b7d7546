"""HTTP instrumentation: request metrics, access logs and log context binding."""

from __future__ import annotations

import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from swipeapi.obs import logging as obs_logging
from swipeapi.obs import metrics

ACCESS_LOGGER = "swipeapi.http"


def route_template(request: Request) -> str:
	"""Label requests by their route pattern so path ids don't explode metric cardinality."""
	route = request.scope.get("route")
	path = getattr(route, "path", None)
	return path or request.url.path


class ObservabilityMiddleware(BaseHTTPMiddleware):
	def __init__(self, app) -> None:
		super().__init__(app)
		self._logger = obs_logging.get_logger(ACCESS_LOGGER)

	async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
		client = request.client
		context = obs_logging.bind_context(
			request_id=getattr(request.state, "request_id", None),
			route=request.url.path,
			user_id=request.headers.get("X-User-Id"),
			client_ip=client.host if client else None,
		)
		started = time.perf_counter()
		status_code = 500
		try:
			response = await call_next(request)
			status_code = response.status_code
			return response
		except Exception:
			self._logger.exception("http_request_error", extra={"method": request.method})
			raise
		finally:
			elapsed = time.perf_counter() - started
			template = route_template(request)
			metrics.observe_request(template, request.method, status_code, elapsed)
			self._logger.info(
				"http_request",
				extra={
					"status": status_code,
					"method": request.method,
					"route": template,
					"latency_ms": round(elapsed * 1000, 3),
				},
			)
			obs_logging.reset_context(context)
