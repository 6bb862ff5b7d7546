"""Schemas for the swipe feed: requester preferences in, candidate cards out."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

GENDER_WOMAN = "woman"
GENDER_MAN = "man"
GENDER_NON_BINARY = "nonBinary"


class _CamelModel(BaseModel):
	model_config = {"alias_generator": to_camel, "populate_by_name": True}


class DiscoveryPreferences(_CamelModel):
	"""Account-level discovery preferences, read from the ``prefs`` claim."""

	show_me_min_age: int = 18
	show_me_max_age: int = 99
	show_me_gender_woman: bool = True
	show_me_gender_man: bool = True
	show_me_gender_non_binary: bool = True
	show_me_blocked_countries: List[str] = Field(default_factory=list)
	location_scope: str = "worldwide"

	model_config = {"alias_generator": to_camel, "populate_by_name": True, "extra": "ignore"}

	@field_validator("show_me_blocked_countries", mode="before")
	@classmethod
	def _normalise_countries(cls, value: Any) -> Any:
		if value is None:
			return []
		if isinstance(value, str):
			value = [value]
		if isinstance(value, (list, tuple, set)):
			seen: List[str] = []
			for item in value:
				code = str(item).strip().upper()
				if code and code not in seen:
					seen.append(code)
			return seen
		return value

	def enabled_genders(self) -> List[str]:
		flags = (
			(GENDER_WOMAN, self.show_me_gender_woman),
			(GENDER_MAN, self.show_me_gender_man),
			(GENDER_NON_BINARY, self.show_me_gender_non_binary),
		)
		return [gender for gender, on in flags if on]


class CandidateCard(_CamelModel):
	"""A discoverable profile with media, preferences and distance attached.

	Profile attributes beyond the named ones are passed through under camelCase keys.
	Nested ``media`` and ``preferences`` documents keep their stored keys.
	"""

	id: str
	gender: Optional[str] = None
	birth_date: Optional[date] = None
	country_code: Optional[str] = None
	geohash: Optional[str] = None
	photos: List[str] = Field(default_factory=list)
	photos_with_url: List[str] = Field(default_factory=list)
	media: List[Dict[str, Any]] = Field(default_factory=list)
	preferences: Optional[Dict[str, Any]] = None
	distance_km: Optional[int] = None

	model_config = {"alias_generator": to_camel, "populate_by_name": True, "extra": "allow"}


class ExclusionsSummary(_CamelModel):
	per_category_counts: Dict[str, int] = Field(default_factory=dict)
	total_excluded: int = 0
	used_memory_filtering: bool = False
	strategy: str = "query_side"
	country_filter_in_memory: bool = False
	duplicate_dialogs: int = 0


class PerformanceSummary(_CamelModel):
	exclusion_fetch_ms: float = 0.0
	candidate_fetch_ms: float = 0.0
	enrichment_ms: float = 0.0
	total_ms: float = 0.0
	queries_executed: List[str] = Field(default_factory=list)


class SwipeCardsResult(_CamelModel):
	cards: List[CandidateCard] = Field(default_factory=list)
	# Store-reported; the pre-filter pool size when memory filtering ran
	total: int = 0
	filtered_total: int = 0
	exclusions_summary: ExclusionsSummary = Field(default_factory=ExclusionsSummary)
	performance: PerformanceSummary = Field(default_factory=PerformanceSummary)


class ExploreCardsData(SwipeCardsResult):
	count: int = 0
	has_more: bool = False


class ExploreCardsResponse(_CamelModel):
	success: bool = True
	code: int = 200
	message: str = "Cards retrieved successfully"
	data: ExploreCardsData
	request_id: str
	duration: int
