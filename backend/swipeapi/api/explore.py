"""Explore (swipe feed) endpoints."""

from __future__ import annotations

import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from swipeapi.api.request_id import get_request_id
from swipeapi.domain.discovery.models import DiscoveryConfig, ExclusionOptions, PageRequest
from swipeapi.domain.discovery.schemas import ExploreCardsData, ExploreCardsResponse
from swipeapi.domain.discovery.service import DiscoveryService
from swipeapi.infra import postgres
from swipeapi.infra.auth import AuthenticatedUser, get_current_user
from swipeapi.infra.document_store import PostgresDocumentStore
from swipeapi.infra.documents import DocumentStore
from swipeapi.infra.rate_limit import RateLimitExceeded, enforce
from swipeapi.obs import metrics as obs_metrics
from swipeapi.settings import settings

router = APIRouter(prefix="/explore", tags=["explore"])

ADMIN_ROLE = "admin"


async def get_document_store() -> DocumentStore:
	return PostgresDocumentStore(await postgres.get_pool())


def get_discovery_service(store: DocumentStore = Depends(get_document_store)) -> DiscoveryService:
	return DiscoveryService(store, DiscoveryConfig.from_settings(settings))


def _exclusion_options(
	auth_user: AuthenticatedUser,
	include_matches: Optional[bool],
	include_recent_likes: Optional[bool],
	include_recent_dislikes: Optional[bool],
	include_blocks: Optional[bool],
	include_dialogs: Optional[bool],
	dislikes_lookback_days: Optional[int],
) -> ExclusionOptions:
	overrides = {
		"include_matches": include_matches,
		"include_recent_likes": include_recent_likes,
		"include_recent_dislikes": include_recent_dislikes,
		"include_blocks": include_blocks,
		"include_dialogs": include_dialogs,
		"dislikes_lookback_days": dislikes_lookback_days,
	}
	provided = {key: value for key, value in overrides.items() if value is not None}
	if provided and not auth_user.has_role(ADMIN_ROLE):
		raise HTTPException(status.HTTP_403_FORBIDDEN, detail="exclusion_overrides_forbidden")
	return ExclusionOptions(**provided)


@router.get("/cards", response_model=ExploreCardsResponse)
async def explore_cards(
	request: Request,
	response: Response,
	limit: Optional[int] = Query(default=None),
	offset: int = Query(default=0),
	include_matches: Optional[bool] = Query(default=None, alias="includeMatches"),
	include_recent_likes: Optional[bool] = Query(default=None, alias="includeRecentLikes"),
	include_recent_dislikes: Optional[bool] = Query(default=None, alias="includeRecentDislikes"),
	include_blocks: Optional[bool] = Query(default=None, alias="includeBlocks"),
	include_dialogs: Optional[bool] = Query(default=None, alias="includeDialogs"),
	dislikes_lookback_days: Optional[int] = Query(default=None, alias="dislikesLookbackDays"),
	auth_user: AuthenticatedUser = Depends(get_current_user),
	service: DiscoveryService = Depends(get_discovery_service),
) -> ExploreCardsResponse:
	started = time.perf_counter()
	try:
		window = await enforce("explore", auth_user.id, limit=settings.explore_rate_limit_per_minute)
	except RateLimitExceeded as exc:
		obs_metrics.inc_rate_limited(exc.kind)
		raise HTTPException(status.HTTP_429_TOO_MANY_REQUESTS, detail=exc.reason, headers=exc.window.headers()) from None
	response.headers.update(window.headers())

	options = _exclusion_options(
		auth_user,
		include_matches,
		include_recent_likes,
		include_recent_dislikes,
		include_blocks,
		include_dialogs,
		dislikes_lookback_days,
	)
	page = PageRequest(limit=settings.discovery_default_limit if limit is None else limit, offset=offset)
	result = await service.get_swipe_cards(auth_user, page, options)

	data = ExploreCardsData.model_validate(
		{**dict(result), "count": len(result.cards), "has_more": len(result.cards) == page.limit}
	)
	return ExploreCardsResponse(
		data=data,
		request_id=get_request_id(request),
		duration=int((time.perf_counter() - started) * 1000),
	)
