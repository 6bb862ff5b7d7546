"""Swipe feed orchestration.

Requester profile and exclusions are fetched concurrently, then candidates are
planned and fetched, then enriched. Any collaborator failure aborts the request
with the phase that failed; no partial card list is returned.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Dict, Optional, TypeVar

from pydantic import ValidationError

from swipeapi.domain.discovery import exceptions
from swipeapi.domain.discovery.enrichment import EnrichmentPipeline
from swipeapi.domain.discovery.exclusions import ExclusionAggregator
from swipeapi.domain.discovery.models import (
	LOCATION_SCOPES,
	MAX_AGE,
	MAX_DISLIKES_LOOKBACK_DAYS,
	MIN_AGE,
	DiscoveryConfig,
	ExclusionOptions,
	PageRequest,
)
from swipeapi.domain.discovery.planner import CandidateQueryPlanner
from swipeapi.domain.discovery.schemas import (
	DiscoveryPreferences,
	ExclusionsSummary,
	PerformanceSummary,
	SwipeCardsResult,
)
from swipeapi.infra.auth import AuthenticatedUser
from swipeapi.infra.documents import Document, DocumentNotFound, DocumentStore
from swipeapi.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _elapsed_ms(start: float) -> float:
	return round((time.perf_counter() - start) * 1000, 2)


class DiscoveryService:
	def __init__(
		self,
		store: DocumentStore,
		config: DiscoveryConfig,
		*,
		aggregator: Optional[ExclusionAggregator] = None,
		planner: Optional[CandidateQueryPlanner] = None,
		enrichment: Optional[EnrichmentPipeline] = None,
	) -> None:
		self._store = store
		self._config = config
		self._aggregator = aggregator or ExclusionAggregator(store, config)
		self._planner = planner or CandidateQueryPlanner(store, config)
		self._enrichment = enrichment or EnrichmentPipeline(store, config)

	def resolve_preferences(self, requester: AuthenticatedUser) -> DiscoveryPreferences:
		try:
			preferences = DiscoveryPreferences.model_validate(requester.prefs or {})
		except ValidationError as exc:
			raise exceptions.InvalidDiscoveryRequest("invalid_preferences") from exc
		if not MIN_AGE <= preferences.show_me_min_age <= preferences.show_me_max_age <= MAX_AGE:
			raise exceptions.InvalidDiscoveryRequest("invalid_age_range")
		if preferences.location_scope not in LOCATION_SCOPES:
			raise exceptions.InvalidDiscoveryRequest("invalid_location_scope")
		return preferences

	def validate_request(self, page: PageRequest, options: ExclusionOptions) -> None:
		if page.limit < 1 or page.limit > self._config.max_limit:
			raise exceptions.InvalidDiscoveryRequest("invalid_limit")
		if page.offset < 0:
			raise exceptions.InvalidDiscoveryRequest("invalid_offset")
		lookback = options.dislikes_lookback_days
		if lookback is not None and not 1 <= lookback <= MAX_DISLIKES_LOOKBACK_DAYS:
			raise exceptions.InvalidDiscoveryRequest("invalid_lookback")

	async def get_swipe_cards(
		self,
		requester: AuthenticatedUser,
		page: PageRequest,
		options: Optional[ExclusionOptions] = None,
	) -> SwipeCardsResult:
		options = options or ExclusionOptions()
		preferences = self.resolve_preferences(requester)
		self.validate_request(page, options)
		started = time.perf_counter()
		timings: Dict[str, float] = {}
		log_extra = {"requester_id": requester.id, "limit": page.limit, "offset": page.offset}

		# Wait for both before surfacing a failure; profile errors take precedence.
		profile, exclusion = await asyncio.gather(
			self._phase(exceptions.PROFILE_FETCH, self._fetch_requester_profile(requester.id), timings, log_extra),
			self._phase(exceptions.EXCLUSION_FETCH, self._aggregator.aggregate(requester.id, options), timings, log_extra),
			return_exceptions=True,
		)
		for outcome in (profile, exclusion):
			if isinstance(outcome, BaseException):
				raise outcome

		requester_geohash = profile.get("geohash") if isinstance(profile.get("geohash"), str) else None
		obs_metrics.observe_discovery_exclusions(exclusion.total)

		candidates = await self._phase(
			exceptions.CANDIDATE_FETCH,
			self._planner.plan_and_fetch(requester.id, exclusion.excluded_ids, preferences, page, requester_geohash),
			timings,
			log_extra,
		)
		obs_metrics.inc_discovery_request(candidates.strategy.value)

		cards = await self._phase(
			exceptions.ENRICHMENT,
			self._enrichment.enrich(candidates.documents, requester_geohash, requester_id=requester.id),
			timings,
			log_extra,
		)

		result = SwipeCardsResult(
			cards=cards,
			total=candidates.total,
			filtered_total=len(cards),
			exclusions_summary=ExclusionsSummary(
				per_category_counts=exclusion.per_category_counts,
				total_excluded=exclusion.total,
				used_memory_filtering=candidates.used_memory_filtering,
				strategy=candidates.strategy.value,
				country_filter_in_memory=candidates.country_filter_in_memory,
				duplicate_dialogs=exclusion.duplicate_dialogs,
			),
			performance=PerformanceSummary(
				exclusion_fetch_ms=timings.get(exceptions.EXCLUSION_FETCH, 0.0),
				candidate_fetch_ms=timings.get(exceptions.CANDIDATE_FETCH, 0.0),
				enrichment_ms=timings.get(exceptions.ENRICHMENT, 0.0),
				total_ms=_elapsed_ms(started),
				queries_executed=exclusion.queries_executed,
			),
		)
		logger.info(
			"swipe cards served strategy=%s excluded=%s cards=%s total=%s",
			candidates.strategy.value,
			exclusion.total,
			len(cards),
			candidates.total,
			extra={**log_extra, "timings_ms": timings},
		)
		return result

	async def _fetch_requester_profile(self, requester_id: str) -> Document:
		try:
			return await self._store.get_document(self._config.collections.profiles, requester_id)
		except DocumentNotFound as exc:
			raise exceptions.RequesterProfileNotFound() from exc

	async def _phase(
		self,
		phase: str,
		awaitable: Awaitable[T],
		timings: Dict[str, float],
		log_extra: Dict[str, Any],
	) -> T:
		start = time.perf_counter()
		try:
			return await awaitable
		except exceptions.DiscoveryError:
			raise
		except Exception as exc:
			obs_metrics.inc_discovery_failure(phase)
			logger.exception("discovery phase failed phase=%s", phase, extra=log_extra)
			raise exceptions.DiscoveryPhaseError(phase, exc) from exc
		finally:
			timings[phase] = _elapsed_ms(start)
			obs_metrics.observe_discovery_phase(phase, time.perf_counter() - start)
