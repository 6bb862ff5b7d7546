"""JSON error envelopes.

Every failure leaves the API as ``{"success": false, "code", "detail", "request_id"}``
so clients can branch on ``detail`` and quote ``request_id`` in bug reports.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from swipeapi.api.request_id import get_request_id
from swipeapi.domain.discovery import exceptions as discovery_exc
from swipeapi.infra.documents import DocumentStoreError

logger = logging.getLogger("swipeapi.api.errors")


def error_response(
	request: Request,
	status_code: int,
	detail: Any,
	*,
	headers: Optional[Mapping[str, str]] = None,
	**extra: Any,
) -> JSONResponse:
	payload = {"success": False, "code": status_code, "detail": detail, **extra, "request_id": get_request_id(request)}
	return JSONResponse(status_code=status_code, content=payload, headers=dict(headers) if headers else None)


def discovery_status(exc: discovery_exc.DiscoveryError) -> int:
	if isinstance(exc, discovery_exc.RequesterProfileNotFound):
		return status.HTTP_404_NOT_FOUND
	if isinstance(exc, discovery_exc.DiscoveryPhaseError):
		return status.HTTP_502_BAD_GATEWAY
	return status.HTTP_400_BAD_REQUEST


def install_error_handlers(app: FastAPI) -> None:
	@app.exception_handler(StarletteHTTPException)
	async def _http_error(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
		return error_response(request, exc.status_code, exc.detail, headers=getattr(exc, "headers", None))

	@app.exception_handler(RequestValidationError)
	async def _validation_error(request: Request, exc: RequestValidationError):  # type: ignore[override]
		return error_response(
			request,
			422,
			"validation_error",
			errors=jsonable_encoder(exc.errors()),
		)

	@app.exception_handler(discovery_exc.DiscoveryError)
	async def _discovery_error(request: Request, exc: discovery_exc.DiscoveryError):  # type: ignore[override]
		return error_response(request, discovery_status(exc), exc.reason)

	@app.exception_handler(DocumentStoreError)
	async def _store_error(request: Request, exc: DocumentStoreError):  # type: ignore[override]
		logger.error("document store error outside discovery pipeline: %s", exc)
		return error_response(request, status.HTTP_502_BAD_GATEWAY, "store_error")
