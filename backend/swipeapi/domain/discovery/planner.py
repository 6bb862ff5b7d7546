"""Candidate query planning under the store's predicate ceiling.

Excluded ids are pushed to the store as one ``notEqual`` each while they fit in
``query_limit``. Past that the planner drops them from the query, over-fetches
``limit * fetch_multiplier`` profiles and removes excluded ids locally.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Callable, FrozenSet, List, Optional, Sequence, Tuple

from swipeapi.domain.discovery import geo
from swipeapi.domain.discovery.models import CandidatePage, DiscoveryConfig, PageRequest, QueryStrategy
from swipeapi.domain.discovery.schemas import DiscoveryPreferences
from swipeapi.infra.documents import Document, DocumentStore, Query

logger = logging.getLogger(__name__)


def _today_utc() -> date:
	return datetime.now(timezone.utc).date()


def years_before(day: date, years: int) -> date:
	try:
		return day.replace(year=day.year - years)
	except ValueError:
		# Feb 29 in a non-leap target year
		return day.replace(year=day.year - years, day=28)


def age_predicates(min_age: int, max_age: int, today: date) -> List[Query]:
	"""Birth-date window for an inclusive [min_age, max_age] range as of ``today``."""
	latest_birth = years_before(today, min_age)
	earliest_birth = years_before(today, max_age + 1)
	return [
		Query.less_than_equal("birth_date", latest_birth),
		Query.greater_than_equal("birth_date", earliest_birth),
	]


def gender_predicate(preferences: DiscoveryPreferences) -> Optional[Query]:
	genders = preferences.enabled_genders()
	# Nothing selected means everyone is shown.
	if not genders:
		return None
	return Query.equal("gender", genders)


class CandidateQueryPlanner:
	def __init__(
		self,
		store: DocumentStore,
		config: DiscoveryConfig,
		*,
		today: Callable[[], date] = _today_utc,
	) -> None:
		self._store = store
		self._config = config
		self._today = today

	def choose_strategy(self, excluded_count: int) -> QueryStrategy:
		if excluded_count > self._config.query_limit and self._config.memory_filtering_enabled:
			return QueryStrategy.MEMORY
		return QueryStrategy.QUERY_SIDE

	def country_predicates(self, blocked_countries: Sequence[str]) -> Tuple[List[Query], bool]:
		"""Return store-side country predicates and whether countries must be filtered in memory."""
		if len(blocked_countries) > self._config.country_query_limit:
			return [], True
		return [Query.not_equal("country_code", code) for code in blocked_countries], False

	def location_predicate(
		self,
		preferences: DiscoveryPreferences,
		requester_geohash: Optional[str],
		*,
		requester_id: str,
	) -> Optional[Query]:
		scope = preferences.location_scope
		if scope == "worldwide":
			return None
		if not requester_geohash:
			logger.warning(
				"location scope %s requested without a requester geohash, skipping geo filter",
				scope,
				extra={"requester_id": requester_id},
			)
			return None
		precision = self._config.geohash_precision.country if scope == "country" else self._config.geohash_precision.city
		return Query.starts_with("geohash", geo.geohash_prefix(requester_geohash, precision))

	def preference_predicates(
		self,
		preferences: DiscoveryPreferences,
		requester_geohash: Optional[str],
		*,
		requester_id: str,
	) -> Tuple[List[Query], bool, bool]:
		"""Predicates shared by both strategies, plus (country_in_memory, geo_applied)."""
		queries = age_predicates(preferences.show_me_min_age, preferences.show_me_max_age, self._today())
		gender = gender_predicate(preferences)
		if gender is not None:
			queries.append(gender)
		countries, country_in_memory = self.country_predicates(preferences.show_me_blocked_countries)
		queries.extend(countries)
		location = self.location_predicate(preferences, requester_geohash, requester_id=requester_id)
		if location is not None:
			queries.append(location)
		return queries, country_in_memory, location is not None

	def _query_side_exclusions(self, requester_id: str, excluded_ids: FrozenSet[str]) -> List[Query]:
		ordered = [requester_id] + sorted(uid for uid in excluded_ids if uid != requester_id)
		if len(ordered) > self._config.query_limit:
			logger.warning(
				"memory filtering disabled, truncating exclusions from %s to %s",
				len(ordered),
				self._config.query_limit,
				extra={"requester_id": requester_id},
			)
			ordered = ordered[: self._config.query_limit]
		return [Query.not_equal("id", uid) for uid in ordered]

	async def plan_and_fetch(
		self,
		requester_id: str,
		excluded_ids: FrozenSet[str],
		preferences: DiscoveryPreferences,
		page: PageRequest,
		requester_geohash: Optional[str] = None,
	) -> CandidatePage:
		strategy = self.choose_strategy(len(excluded_ids))
		filters, country_in_memory, geo_applied = self.preference_predicates(
			preferences, requester_geohash, requester_id=requester_id
		)

		queries: List[Query] = []
		if strategy is QueryStrategy.QUERY_SIDE:
			queries.extend(self._query_side_exclusions(requester_id, excluded_ids))
		queries.extend(filters)

		over_fetch = strategy is QueryStrategy.MEMORY or country_in_memory
		fetch_limit = page.limit * self._config.fetch_multiplier if over_fetch else page.limit
		queries.append(Query.limit(fetch_limit))
		queries.append(Query.offset(page.offset))

		logger.info(
			"candidate query strategy=%s excluded=%s predicates=%s fetch_limit=%s",
			strategy.value,
			len(excluded_ids),
			len(queries),
			fetch_limit,
			extra={"requester_id": requester_id},
		)
		result = await self._store.list_documents(self._config.collections.profiles, queries)

		blocked = set(preferences.show_me_blocked_countries) if country_in_memory else set()
		documents = [doc for doc in result.documents if self._keep(doc, excluded_ids, blocked)]
		return CandidatePage(
			documents=documents[: page.limit],
			total=result.total,
			strategy=strategy,
			fetch_limit=fetch_limit,
			query_count=len(queries),
			country_filter_in_memory=country_in_memory,
			geo_filter_applied=geo_applied,
		)

	@staticmethod
	def _keep(document: Document, excluded_ids: FrozenSet[str], blocked_countries: set) -> bool:
		if document.get("id") in excluded_ids:
			return False
		if blocked_countries and document.get("country_code") in blocked_countries:
			return False
		return True
