import pytest
from prometheus_client import REGISTRY

from swipeapi.domain.discovery import exceptions
from swipeapi.domain.discovery.models import DiscoveryConfig, ExclusionOptions, PageRequest
from swipeapi.domain.discovery.service import DiscoveryService
from swipeapi.infra.auth import AuthenticatedUser
from swipeapi.infra.documents import LIMIT, DocumentStoreError, QueryRejected

ME = "me"


def _service(store, **config) -> DiscoveryService:
	return DiscoveryService(store, DiscoveryConfig(**config))


def _requester(**prefs) -> AuthenticatedUser:
	return AuthenticatedUser(id=ME, prefs=prefs, token="jwt")


def _seed_small_world(store, profile_factory, profiles_factory) -> None:
	store.add("profiles", profile_factory(ME, geohash="sxk9ddq"))
	store.add("profiles", profile_factory("matched"), profile_factory("liked"), profile_factory("blocker"), profile_factory("chatter"))
	store.add("profiles", *profiles_factory("c", 15))
	store.add("matches", {"id": "m1", "user_first": "matched", "user_second": ME})
	store.add("likes", {"id": "l1", "liker_id": ME, "liked_id": "liked", "expire_date": None})
	store.add("blocks", {"id": "b1", "blocker_id": "blocker", "blocked_id": ME})
	store.add("dialogs", {"id": "d1", "occupant_ids": [ME, "chatter"]})


def _sample(name: str, labels: dict) -> float:
	return REGISTRY.get_sample_value(name, labels) or 0.0


@pytest.mark.asyncio
async def test_small_exclusion_set_uses_query_side_strategy(store, profile_factory, profiles_factory):
	_seed_small_world(store, profile_factory, profiles_factory)
	before = _sample("swipeapi_discovery_requests_total", {"strategy": "query_side"})

	result = await _service(store).get_swipe_cards(_requester(), PageRequest(limit=10))

	summary = result.exclusions_summary
	assert summary.total_excluded == 5
	assert summary.strategy == "query_side"
	assert summary.used_memory_filtering is False
	assert len(result.cards) == 10
	assert result.filtered_total == 10
	assert result.total == 15
	ids = {card.id for card in result.cards}
	assert not ids & {ME, "matched", "liked", "blocker", "chatter"}
	assert all(card.distance_km is not None for card in result.cards)
	assert _sample("swipeapi_discovery_requests_total", {"strategy": "query_side"}) == before + 1


@pytest.mark.asyncio
async def test_large_exclusion_set_uses_memory_strategy(store, profile_factory, profiles_factory):
	store.add("profiles", profile_factory(ME))
	store.add(
		"likes",
		*({"id": f"l{idx}", "liker_id": ME, "liked_id": f"x{idx:03d}", "expire_date": None} for idx in range(149)),
	)
	store.add("profiles", *profiles_factory("x", 10))
	store.add("profiles", *profiles_factory("c", 40))

	result = await _service(store).get_swipe_cards(_requester(), PageRequest(limit=10))

	(candidate_queries,) = store.list_calls("profiles")
	assert next(q.values[0] for q in candidate_queries if q.method == LIMIT) == 30
	assert result.exclusions_summary.total_excluded == 150
	assert result.exclusions_summary.strategy == "memory"
	assert result.exclusions_summary.used_memory_filtering is True
	assert len(result.cards) <= 10
	assert not {card.id for card in result.cards} & ({ME} | {f"x{idx:03d}" for idx in range(149)})


@pytest.mark.asyncio
async def test_response_reports_diagnostics(store, profile_factory, profiles_factory):
	_seed_small_world(store, profile_factory, profiles_factory)
	store.add("dialogs", {"id": "d0", "occupant_ids": ["chatter", ME]})

	result = await _service(store).get_swipe_cards(
		_requester(), PageRequest(limit=5), ExclusionOptions(include_recent_dislikes=False)
	)

	assert result.exclusions_summary.per_category_counts == {"matches": 1, "recentLikes": 1, "blocks": 1, "dialogs": 2}
	assert result.exclusions_summary.duplicate_dialogs == 1
	assert result.performance.queries_executed == ["matches", "recentLikes", "blocks", "dialogs"]
	assert result.performance.total_ms >= result.performance.candidate_fetch_ms >= 0
	dumped = result.model_dump(by_alias=True)
	assert set(dumped) == {"cards", "total", "filteredTotal", "exclusionsSummary", "performance"}
	assert "usedMemoryFiltering" in dumped["exclusionsSummary"]


@pytest.mark.asyncio
async def test_preferences_come_from_requester_prefs(store, profile_factory):
	store.add("profiles", profile_factory(ME), profile_factory("w", gender="woman"), profile_factory("m", gender="man"))

	result = await _service(store).get_swipe_cards(_requester(showMeGenderWoman=False), PageRequest(limit=10))

	assert [card.id for card in result.cards] == ["m"]


@pytest.mark.asyncio
async def test_malformed_candidate_does_not_fail_the_feed(store, profile_factory):
	store.add("profiles", profile_factory(ME, geohash="sxk9ddq"), profile_factory("bad", geohash=12345), profile_factory("good"))

	result = await _service(store).get_swipe_cards(_requester(), PageRequest(limit=10))

	cards = {card.id: card for card in result.cards}
	assert set(cards) == {"bad", "good"}
	assert cards["bad"].geohash is None
	assert cards["bad"].distance_km is None
	assert cards["good"].distance_km is not None


@pytest.mark.asyncio
async def test_missing_requester_profile(store):
	with pytest.raises(exceptions.RequesterProfileNotFound):
		await _service(store).get_swipe_cards(_requester(), PageRequest(limit=10))


@pytest.mark.asyncio
async def test_exclusion_failure_is_wrapped_with_phase(store, profile_factory):
	store.add("profiles", profile_factory(ME))
	store.fail_on("dialogs", DocumentStoreError("dialogs down"))

	with pytest.raises(exceptions.DiscoveryPhaseError) as excinfo:
		await _service(store).get_swipe_cards(_requester(), PageRequest(limit=10))

	assert excinfo.value.phase == exceptions.EXCLUSION_FETCH
	assert excinfo.value.reason == "exclusion_fetch_failed"
	assert isinstance(excinfo.value.__cause__, DocumentStoreError)
	assert not store.list_calls("profile_media")


@pytest.mark.asyncio
async def test_candidate_fetch_failure_is_wrapped(store, profile_factory, monkeypatch):
	store.add("profiles", profile_factory(ME))
	original = store.list_documents

	async def _reject_profiles(collection, queries):
		if collection == "profiles":
			raise QueryRejected("too many queries")
		return await original(collection, queries)

	monkeypatch.setattr(store, "list_documents", _reject_profiles)

	with pytest.raises(exceptions.DiscoveryPhaseError) as excinfo:
		await _service(store).get_swipe_cards(_requester(), PageRequest(limit=10))
	assert excinfo.value.phase == exceptions.CANDIDATE_FETCH


@pytest.mark.asyncio
async def test_enrichment_failure_is_wrapped(store, profile_factory):
	store.add("profiles", profile_factory(ME), profile_factory("c1"))
	store.fail_on("profile_media", DocumentStoreError("media down"))

	with pytest.raises(exceptions.DiscoveryPhaseError) as excinfo:
		await _service(store).get_swipe_cards(_requester(), PageRequest(limit=10))
	assert excinfo.value.phase == exceptions.ENRICHMENT


@pytest.mark.asyncio
@pytest.mark.parametrize(
	"page,prefs,reason",
	[
		(PageRequest(limit=0), {}, "invalid_limit"),
		(PageRequest(limit=51), {}, "invalid_limit"),
		(PageRequest(limit=10, offset=-1), {}, "invalid_offset"),
		(PageRequest(limit=10), {"showMeMinAge": 40, "showMeMaxAge": 30}, "invalid_age_range"),
		(PageRequest(limit=10), {"showMeMaxAge": 5000}, "invalid_age_range"),
		(PageRequest(limit=10), {"showMeMinAge": 12}, "invalid_age_range"),
		(PageRequest(limit=10), {"locationScope": "galaxy"}, "invalid_location_scope"),
		(PageRequest(limit=10), {"showMeMinAge": "old"}, "invalid_preferences"),
	],
)
async def test_invalid_input_is_rejected_before_any_store_call(store, page, prefs, reason):
	with pytest.raises(exceptions.InvalidDiscoveryRequest) as excinfo:
		await _service(store).get_swipe_cards(_requester(**prefs), page)
	assert excinfo.value.reason == reason
	assert store.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("days", [0, 10**9])
async def test_invalid_lookback_override(store, days):
	with pytest.raises(exceptions.InvalidDiscoveryRequest) as excinfo:
		await _service(store).get_swipe_cards(
			_requester(), PageRequest(limit=10), ExclusionOptions(dislikes_lookback_days=days)
		)
	assert excinfo.value.reason == "invalid_lookback"
	assert store.calls == []
