"""Domain models used by the discovery engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, List, Literal, Optional, Tuple, Union

if TYPE_CHECKING:  # pragma: no cover - type hints only
	from swipeapi.settings import Settings

LocationScope = Literal["worldwide", "country", "city"]
LOCATION_SCOPES: Tuple[str, ...] = ("worldwide", "country", "city")

MIN_AGE = 18
MAX_AGE = 120
MAX_DISLIKES_LOOKBACK_DAYS = 3650


class ExclusionCategory(str, Enum):
	MATCHES = "matches"
	RECENT_LIKES = "recentLikes"
	RECENT_DISLIKES = "recentDislikes"
	BLOCKS = "blocks"
	DIALOGS = "dialogs"


class QueryStrategy(str, Enum):
	# One notEqual predicate per excluded id
	QUERY_SIDE = "query_side"
	# Over-fetch with preference predicates only, drop excluded ids locally
	MEMORY = "memory"


@dataclass(frozen=True, slots=True)
class GeohashPrecision:
	country: int = 3
	city: int = 5


@dataclass(frozen=True, slots=True)
class Collections:
	profiles: str = "profiles"
	matches: str = "matches"
	likes: str = "likes"
	dislikes: str = "dislikes"
	blocks: str = "blocks"
	dialogs: str = "dialogs"
	profile_media: str = "profile_media"
	profile_preferences: str = "profile_preferences"


@dataclass(frozen=True, slots=True)
class DiscoveryConfig:
	"""Thresholds and sizes for one discovery engine instance."""

	query_limit: int = 80
	fetch_multiplier: int = 3
	exclusion_query_limit: int = 5000
	country_query_limit: int = 10
	geohash_precision: GeohashPrecision = field(default_factory=GeohashPrecision)
	dislikes_lookback_days: int = 90
	high_exclusions_threshold: int = 100
	memory_filtering_enabled: bool = True
	enrichment_query_limit: int = 5000
	default_limit: int = 10
	max_limit: int = 50
	collections: Collections = field(default_factory=Collections)

	@classmethod
	def from_settings(cls, settings: Settings) -> "DiscoveryConfig":
		return cls(
			query_limit=settings.discovery_query_limit,
			fetch_multiplier=settings.discovery_fetch_multiplier,
			exclusion_query_limit=settings.discovery_exclusion_query_limit,
			country_query_limit=settings.discovery_country_query_limit,
			geohash_precision=GeohashPrecision(
				country=settings.discovery_geohash_precision_country,
				city=settings.discovery_geohash_precision_city,
			),
			dislikes_lookback_days=settings.discovery_dislikes_lookback_days,
			high_exclusions_threshold=settings.discovery_high_exclusions_threshold,
			memory_filtering_enabled=settings.discovery_memory_filtering_enabled,
			enrichment_query_limit=settings.discovery_enrichment_query_limit,
			default_limit=settings.discovery_default_limit,
			max_limit=settings.discovery_max_limit,
			collections=Collections(
				profiles=settings.collection_profiles,
				matches=settings.collection_matches,
				likes=settings.collection_likes,
				dislikes=settings.collection_dislikes,
				blocks=settings.collection_blocks,
				dialogs=settings.collection_dialogs,
				profile_media=settings.collection_profile_media,
				profile_preferences=settings.collection_profile_preferences,
			),
		)


@dataclass(slots=True)
class ExclusionOptions:
	"""Which relationship categories hide a profile from the requester's feed."""

	include_matches: bool = True
	include_recent_likes: bool = True
	include_recent_dislikes: bool = True
	include_blocks: bool = True
	include_dialogs: bool = True
	dislikes_lookback_days: Optional[int] = None

	def enabled(self) -> List[ExclusionCategory]:
		flags = (
			(ExclusionCategory.MATCHES, self.include_matches),
			(ExclusionCategory.RECENT_LIKES, self.include_recent_likes),
			(ExclusionCategory.RECENT_DISLIKES, self.include_recent_dislikes),
			(ExclusionCategory.BLOCKS, self.include_blocks),
			(ExclusionCategory.DIALOGS, self.include_dialogs),
		)
		return [category for category, on in flags if on]


@dataclass(frozen=True, slots=True)
class MatchExclusion:
	other_id: str


@dataclass(frozen=True, slots=True)
class LikeExclusion:
	liked_id: str


@dataclass(frozen=True, slots=True)
class DislikeExclusion:
	disliked_id: str


@dataclass(frozen=True, slots=True)
class BlockExclusion:
	other_id: str


@dataclass(frozen=True, slots=True)
class DialogExclusion:
	dialog_id: str
	occupant_ids: Tuple[str, ...]


Exclusion = Union[MatchExclusion, LikeExclusion, DislikeExclusion, BlockExclusion, DialogExclusion]


@dataclass(slots=True)
class ExclusionResult:
	excluded_ids: FrozenSet[str]
	per_category_counts: Dict[str, int] = field(default_factory=dict)
	queries_executed: List[str] = field(default_factory=list)
	duplicate_dialogs: int = 0

	@property
	def total(self) -> int:
		return len(self.excluded_ids)


@dataclass(slots=True)
class PageRequest:
	limit: int = 10
	offset: int = 0


@dataclass(slots=True)
class CandidatePage:
	"""Raw profile documents returned by the candidate query."""

	documents: List[Dict[str, Any]]
	# Store-reported match count; pre-filter pool size under the memory strategy
	total: int
	strategy: QueryStrategy
	fetch_limit: int
	query_count: int
	country_filter_in_memory: bool = False
	geo_filter_applied: bool = False

	@property
	def used_memory_filtering(self) -> bool:
		return self.strategy is QueryStrategy.MEMORY or self.country_filter_in_memory
