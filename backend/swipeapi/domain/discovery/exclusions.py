"""Exclusion aggregation: every profile the requester must not be shown again.

Each relationship category is fetched by its own projected query; all queries run
concurrently and are reduced to tagged exclusions, then folded into one id set.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from swipeapi.domain.discovery.models import (
	BlockExclusion,
	DialogExclusion,
	DiscoveryConfig,
	DislikeExclusion,
	Exclusion,
	ExclusionCategory,
	ExclusionOptions,
	ExclusionResult,
	LikeExclusion,
	MatchExclusion,
)
from swipeapi.infra.documents import Document, DocumentStore, Query

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
	return datetime.now(timezone.utc)


@dataclass(slots=True)
class CategoryFetch:
	category: ExclusionCategory
	exclusions: List[Exclusion] = field(default_factory=list)
	total: int = 0
	fetched: int = 0


def fold_exclusions(requester_id: str, exclusions: Iterable[Exclusion]) -> FrozenSet[str]:
	"""Reduce tagged exclusions to the set of user ids hidden from the requester."""
	excluded = {requester_id}
	for item in exclusions:
		if isinstance(item, (MatchExclusion, BlockExclusion)):
			excluded.add(item.other_id)
		elif isinstance(item, LikeExclusion):
			excluded.add(item.liked_id)
		elif isinstance(item, DislikeExclusion):
			excluded.add(item.disliked_id)
		elif isinstance(item, DialogExclusion):
			excluded.update(item.occupant_ids)
	excluded.discard("")
	return frozenset(excluded)


def canonical_dialogs(dialogs: Sequence[DialogExclusion]) -> Tuple[List[DialogExclusion], Dict[str, List[str]]]:
	"""Keep one dialog per occupant set, the one with the lowest id.

	Returns the canonical dialogs and, for every kept dialog that had duplicates,
	the ids of the dropped ones.
	"""
	by_occupants: Dict[FrozenSet[str], List[DialogExclusion]] = {}
	for dialog in dialogs:
		by_occupants.setdefault(frozenset(dialog.occupant_ids), []).append(dialog)
	kept: List[DialogExclusion] = []
	duplicates: Dict[str, List[str]] = {}
	for group in by_occupants.values():
		ordered = sorted(group, key=lambda d: d.dialog_id)
		kept.append(ordered[0])
		if len(ordered) > 1:
			duplicates[ordered[0].dialog_id] = [d.dialog_id for d in ordered[1:]]
	return kept, duplicates


def _other_party(document: Document, requester_id: str, first: str, second: str) -> Optional[str]:
	a = document.get(first)
	b = document.get(second)
	if a == requester_id and b:
		return str(b)
	if b == requester_id and a:
		return str(a)
	return None


class ExclusionAggregator:
	"""Collects matches, likes, dislikes, blocks and dialogs for one requester."""

	def __init__(
		self,
		store: DocumentStore,
		config: DiscoveryConfig,
		*,
		clock: Callable[[], datetime] = _utcnow,
	) -> None:
		self._store = store
		self._config = config
		self._clock = clock
		self._fetchers: Dict[ExclusionCategory, Callable[..., Awaitable[CategoryFetch]]] = {
			ExclusionCategory.MATCHES: self._fetch_matches,
			ExclusionCategory.RECENT_LIKES: self._fetch_likes,
			ExclusionCategory.RECENT_DISLIKES: self._fetch_dislikes,
			ExclusionCategory.BLOCKS: self._fetch_blocks,
			ExclusionCategory.DIALOGS: self._fetch_dialogs,
		}

	async def aggregate(self, requester_id: str, options: Optional[ExclusionOptions] = None) -> ExclusionResult:
		options = options or ExclusionOptions()
		categories = options.enabled()
		now = self._clock()
		lookback_days = options.dislikes_lookback_days
		if lookback_days is None:
			lookback_days = self._config.dislikes_lookback_days

		outcomes = await asyncio.gather(
			*(self._fetchers[category](requester_id, now=now, lookback_days=lookback_days) for category in categories),
			return_exceptions=True,
		)
		# Every fetch has settled; any single failure fails the whole aggregation.
		for category, outcome in zip(categories, outcomes):
			if isinstance(outcome, BaseException):
				logger.error(
					"exclusion fetch failed category=%s",
					category.value,
					extra={"requester_id": requester_id, "category": category.value},
				)
				raise outcome

		fetches: List[CategoryFetch] = list(outcomes)  # type: ignore[arg-type]
		exclusions: List[Exclusion] = []
		per_category: Dict[str, int] = {}
		duplicate_count = 0
		for fetch in fetches:
			per_category[fetch.category.value] = fetch.total
			if fetch.total > fetch.fetched:
				logger.warning(
					"exclusion category truncated category=%s fetched=%s total=%s",
					fetch.category.value,
					fetch.fetched,
					fetch.total,
					extra={"requester_id": requester_id},
				)
			items = fetch.exclusions
			if fetch.category is ExclusionCategory.DIALOGS:
				kept, duplicates = canonical_dialogs([item for item in items if isinstance(item, DialogExclusion)])
				for kept_id, dropped in duplicates.items():
					duplicate_count += len(dropped)
					logger.warning(
						"duplicate dialogs between the same occupants kept=%s dropped=%s",
						kept_id,
						dropped,
						extra={"requester_id": requester_id},
					)
				items = list(kept)
			exclusions.extend(items)

		excluded = fold_exclusions(requester_id, exclusions)
		if len(excluded) > self._config.high_exclusions_threshold:
			logger.warning(
				"high exclusion count=%s threshold=%s",
				len(excluded),
				self._config.high_exclusions_threshold,
				extra={"requester_id": requester_id},
			)
		return ExclusionResult(
			excluded_ids=excluded,
			per_category_counts=per_category,
			queries_executed=[category.value for category in categories],
			duplicate_dialogs=duplicate_count,
		)

	async def _list(self, collection: str, queries: List[Query]) -> Tuple[List[Document], int]:
		queries.append(Query.limit(self._config.exclusion_query_limit))
		page = await self._store.list_documents(collection, queries)
		return page.documents, page.total

	async def _fetch_matches(self, requester_id: str, **_: Any) -> CategoryFetch:
		documents, total = await self._list(
			self._config.collections.matches,
			[
				Query.or_([Query.equal("user_first", requester_id), Query.equal("user_second", requester_id)]),
				Query.select(["id", "user_first", "user_second"]),
			],
		)
		exclusions: List[Exclusion] = []
		for doc in documents:
			other = _other_party(doc, requester_id, "user_first", "user_second")
			if other:
				exclusions.append(MatchExclusion(other_id=other))
		return CategoryFetch(ExclusionCategory.MATCHES, exclusions, total, len(documents))

	async def _fetch_likes(self, requester_id: str, *, now: datetime, **_: Any) -> CategoryFetch:
		documents, total = await self._list(
			self._config.collections.likes,
			[
				Query.equal("liker_id", requester_id),
				Query.or_([Query.greater_than("expire_date", now), Query.is_null("expire_date")]),
				Query.select(["id", "liked_id"]),
			],
		)
		exclusions: List[Exclusion] = [LikeExclusion(liked_id=str(doc["liked_id"])) for doc in documents if doc.get("liked_id")]
		return CategoryFetch(ExclusionCategory.RECENT_LIKES, exclusions, total, len(documents))

	async def _fetch_dislikes(self, requester_id: str, *, now: datetime, lookback_days: int, **_: Any) -> CategoryFetch:
		since = now - timedelta(days=lookback_days)
		documents, total = await self._list(
			self._config.collections.dislikes,
			[
				Query.equal("disliker_id", requester_id),
				Query.greater_than_equal("created_at", since),
				Query.select(["id", "disliked_id"]),
			],
		)
		exclusions: List[Exclusion] = [
			DislikeExclusion(disliked_id=str(doc["disliked_id"])) for doc in documents if doc.get("disliked_id")
		]
		return CategoryFetch(ExclusionCategory.RECENT_DISLIKES, exclusions, total, len(documents))

	async def _fetch_blocks(self, requester_id: str, **_: Any) -> CategoryFetch:
		# Blocks hide both parties from each other in discovery.
		documents, total = await self._list(
			self._config.collections.blocks,
			[
				Query.or_([Query.equal("blocker_id", requester_id), Query.equal("blocked_id", requester_id)]),
				Query.select(["id", "blocker_id", "blocked_id"]),
			],
		)
		exclusions: List[Exclusion] = []
		for doc in documents:
			other = _other_party(doc, requester_id, "blocker_id", "blocked_id")
			if other:
				exclusions.append(BlockExclusion(other_id=other))
		return CategoryFetch(ExclusionCategory.BLOCKS, exclusions, total, len(documents))

	async def _fetch_dialogs(self, requester_id: str, **_: Any) -> CategoryFetch:
		documents, total = await self._list(
			self._config.collections.dialogs,
			[
				Query.contains("occupant_ids", requester_id),
				Query.select(["id", "occupant_ids"]),
				Query.order_asc("id"),
			],
		)
		exclusions: List[Exclusion] = []
		for doc in documents:
			occupants = tuple(str(uid) for uid in (doc.get("occupant_ids") or []) if uid and uid != requester_id)
			exclusions.append(DialogExclusion(dialog_id=str(doc.get("id") or ""), occupant_ids=occupants))
		return CategoryFetch(ExclusionCategory.DIALOGS, exclusions, total, len(documents))
