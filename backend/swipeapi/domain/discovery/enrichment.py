"""Batch enrichment of raw candidate profiles into candidate cards."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from swipeapi.domain.discovery import geo
from swipeapi.domain.discovery.models import DiscoveryConfig
from swipeapi.domain.discovery.schemas import CandidateCard
from swipeapi.infra.documents import Document, DocumentStore, Query
from swipeapi.infra.photos import build_photo_urls

logger = logging.getLogger(__name__)


def group_by_user(documents: Iterable[Document]) -> Dict[str, List[Document]]:
	grouped: Dict[str, List[Document]] = defaultdict(list)
	for doc in documents:
		owner = doc.get("user_id")
		if owner:
			grouped[str(owner)].append(doc)
	return grouped


class EnrichmentPipeline:
	"""Attaches media, preferences, photo URLs and distance to candidate profiles.

	Always two store round trips per batch, whatever the batch size.
	"""

	def __init__(
		self,
		store: DocumentStore,
		config: DiscoveryConfig,
		*,
		photo_urls: Callable[[Iterable[str]], List[str]] = build_photo_urls,
	) -> None:
		self._store = store
		self._config = config
		self._photo_urls = photo_urls

	async def enrich(
		self,
		candidates: Sequence[Document],
		requester_geohash: Optional[str],
		*,
		requester_id: Optional[str] = None,
	) -> List[CandidateCard]:
		if not candidates:
			return []

		ids = [str(doc["id"]) for doc in candidates]
		media_page, prefs_page = await asyncio.gather(
			self._store.list_documents(
				self._config.collections.profile_media,
				[
					Query.equal("user_id", ids),
					Query.equal("is_active", True),
					Query.order_asc("display_order"),
					Query.limit(self._config.enrichment_query_limit),
				],
			),
			self._store.list_documents(
				self._config.collections.profile_preferences,
				[
					Query.equal("user_id", ids),
					Query.limit(self._config.enrichment_query_limit),
				],
			),
		)
		media_by_user = group_by_user(media_page.documents)
		prefs_by_user = group_by_user(prefs_page.documents)

		cards: List[CandidateCard] = []
		for doc in candidates:
			candidate_id = str(doc["id"])
			preferences = prefs_by_user.get(candidate_id)
			cards.append(
				self._card(
					doc,
					candidate_id=candidate_id,
					media=media_by_user.get(candidate_id, []),
					preferences=preferences[0] if preferences else None,
					requester_geohash=requester_geohash,
					requester_id=requester_id,
				)
			)
		return cards

	def _card(
		self,
		doc: Document,
		*,
		candidate_id: str,
		media: List[Document],
		preferences: Optional[Document],
		requester_geohash: Optional[str],
		requester_id: Optional[str],
	) -> CandidateCard:
		photo_keys = [str(key) for key in (doc.get("photos") or [])]
		payload: Dict[str, Any] = dict(doc)
		payload.update(
			id=candidate_id,
			photos=photo_keys,
			photos_with_url=self._photo_urls(photo_keys),
			media=media,
			preferences=preferences,
			distance_km=geo.distance_km(
				requester_geohash,
				doc.get("geohash"),
				log_extra={"requester_id": requester_id, "candidate_id": candidate_id},
			),
		)
		return self._validate_card(payload, candidate_id)

	def _validate_card(self, payload: Dict[str, Any], candidate_id: str) -> CandidateCard:
		"""Build the card; fields of the wrong type fall back to their defaults with a warning."""
		payload = {
			(key if key in CandidateCard.model_fields else to_camel(key)): value for key, value in payload.items()
		}
		try:
			return CandidateCard.model_validate(payload)
		except ValidationError as exc:
			bad_fields = sorted({str(error["loc"][0]) for error in exc.errors() if error["loc"]})
		logger.warning(
			"candidate profile has malformed fields",
			extra={"candidate_id": candidate_id, "fields": bad_fields},
		)
		for key in bad_fields:
			for name, info in CandidateCard.model_fields.items():
				if key in (name, info.alias):
					payload.pop(name, None)
			payload.pop(key, None)
		return CandidateCard.model_validate(payload)
