"""Probes and the Prometheus scrape endpoint."""

from __future__ import annotations

import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from swipeapi.obs import health
from swipeapi.settings import settings

router = APIRouter(tags=["ops"])


def _presented_token(x_admin_token: Optional[str], authorization: Optional[str]) -> str:
	if x_admin_token:
		return x_admin_token
	scheme, _, credentials = (authorization or "").partition(" ")
	return credentials.strip() if scheme.lower() == "bearer" else ""


async def require_metrics_access(
	x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
	authorization: Optional[str] = Header(default=None),
) -> None:
	"""Scrapes are open only when OBS_METRICS_PUBLIC is set; otherwise the admin token is required."""
	if settings.obs_metrics_public:
		return
	expected = settings.obs_admin_token
	if not expected:
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="admin_token_not_configured")
	if not secrets.compare_digest(_presented_token(x_admin_token, authorization), expected):
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="forbidden")


@router.get("/health/live")
async def health_live() -> dict:
	return await health.liveness()


@router.get("/health/ready")
async def health_ready() -> JSONResponse:
	status_code, payload = await health.readiness()
	return JSONResponse(payload, status_code=status_code)


@router.get("/metrics", dependencies=[Depends(require_metrics_access)])
async def prometheus_metrics() -> Response:
	return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
