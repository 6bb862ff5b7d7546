import pytest

from swipeapi.infra.tokens import issue_access_token
from swipeapi.infra.documents import DocumentStoreError
from swipeapi.settings import settings


def _seed(store, profile_factory, profiles_factory, requester="me"):
	store.add("profiles", profile_factory(requester, geohash="sxk9ddq"), profile_factory("matched", gender="man"))
	store.add("profiles", *profiles_factory("c", 8))
	store.add("matches", {"id": "m1", "user_first": requester, "user_second": "matched"})


def _bearer(user_id: str, **claims) -> dict:
	token = issue_access_token(user_id, **claims)
	return {"Authorization": f"Bearer {token}"}


@pytest.mark.asyncio
async def test_explore_cards_envelope(api_client, store, profile_factory, profiles_factory):
	_seed(store, profile_factory, profiles_factory)

	resp = await api_client.get(
		"/explore/cards",
		params={"limit": 5},
		headers={"X-User-Id": "me", "X-Request-Id": "req-explore-1"},
	)

	assert resp.status_code == 200
	body = resp.json()
	assert body["success"] is True
	assert body["code"] == 200
	assert body["message"] == "Cards retrieved successfully"
	assert body["requestId"] == "req-explore-1"
	assert isinstance(body["duration"], int)
	data = body["data"]
	assert data["count"] == 5
	assert data["hasMore"] is True
	assert data["total"] == 8
	assert data["filteredTotal"] == 5
	assert data["exclusionsSummary"]["totalExcluded"] == 2
	assert data["exclusionsSummary"]["usedMemoryFiltering"] is False
	assert set(data["performance"]) >= {"exclusionFetchMs", "candidateFetchMs", "enrichmentMs", "totalMs", "queriesExecuted"}
	card = data["cards"][0]
	assert card["id"].startswith("c")
	assert card["birthDate"] == "1995-06-15"
	assert card["photosWithUrl"][0].endswith(f"/{card['id']}/1.jpg")
	assert card["media"] == []
	assert card["preferences"] is None
	assert isinstance(card["distanceKm"], int)


@pytest.mark.asyncio
async def test_explore_cards_default_page(api_client, store, profile_factory, profiles_factory):
	_seed(store, profile_factory, profiles_factory)

	resp = await api_client.get("/explore/cards", headers={"X-User-Id": "me"})

	data = resp.json()["data"]
	assert data["count"] == 8
	assert data["hasMore"] is False


@pytest.mark.asyncio
async def test_bearer_token_preferences_filter_cards(api_client, store, profile_factory, profiles_factory):
	_seed(store, profile_factory, profiles_factory)
	store.add("profiles", profile_factory("other-man", gender="man"))

	resp = await api_client.get(
		"/explore/cards",
		headers=_bearer("me", prefs={"showMeGenderWoman": False, "showMeGenderNonBinary": False}),
	)

	assert resp.status_code == 200
	assert [card["id"] for card in resp.json()["data"]["cards"]] == ["other-man"]


@pytest.mark.asyncio
async def test_requires_authentication(api_client):
	resp = await api_client.get("/explore/cards")
	assert resp.status_code == 401
	body = resp.json()
	assert body["success"] is False
	assert body["detail"] == "invalid_token"


@pytest.mark.asyncio
async def test_header_auth_is_rejected_outside_dev(api_client, monkeypatch):
	monkeypatch.setattr(settings, "environment", "production")
	resp = await api_client.get("/explore/cards", headers={"X-User-Id": "me"})
	assert resp.status_code == 401


@pytest.mark.asyncio
@pytest.mark.parametrize("params,detail", [({"limit": 0}, "invalid_limit"), ({"offset": -5}, "invalid_offset")])
async def test_invalid_paging(api_client, store, params, detail):
	resp = await api_client.get("/explore/cards", params=params, headers={"X-User-Id": "me"})
	assert resp.status_code == 400
	assert resp.json()["detail"] == detail
	assert store.calls == []


@pytest.mark.asyncio
async def test_non_numeric_limit_is_a_validation_error(api_client):
	resp = await api_client.get("/explore/cards", params={"limit": "ten"}, headers={"X-User-Id": "me"})
	assert resp.status_code == 422
	assert resp.json()["detail"] == "validation_error"


@pytest.mark.asyncio
async def test_missing_requester_profile_is_404(api_client):
	resp = await api_client.get("/explore/cards", headers={"X-User-Id": "ghost"})
	assert resp.status_code == 404
	assert resp.json()["detail"] == "profile_not_found"


@pytest.mark.asyncio
async def test_store_failure_is_502_with_phase(api_client, store, profile_factory, profiles_factory):
	_seed(store, profile_factory, profiles_factory)
	store.fail_on("likes", DocumentStoreError("likes offline"))

	resp = await api_client.get("/explore/cards", headers={"X-User-Id": "me"})

	assert resp.status_code == 502
	assert resp.json()["detail"] == "exclusion_fetch_failed"


@pytest.mark.asyncio
async def test_rate_limited(api_client, store, profile_factory, profiles_factory, monkeypatch):
	_seed(store, profile_factory, profiles_factory)
	monkeypatch.setattr(settings, "explore_rate_limit_per_minute", 1)

	first = await api_client.get("/explore/cards", headers={"X-User-Id": "me"})
	second = await api_client.get("/explore/cards", headers={"X-User-Id": "me"})

	assert first.status_code == 200
	assert second.status_code == 429
	assert second.json()["detail"] == "rate_limited"


@pytest.mark.asyncio
async def test_exclusion_overrides_require_admin(api_client, store, profile_factory, profiles_factory):
	_seed(store, profile_factory, profiles_factory)

	denied = await api_client.get("/explore/cards", params={"includeMatches": "false"}, headers={"X-User-Id": "me"})
	assert denied.status_code == 403
	assert denied.json()["detail"] == "exclusion_overrides_forbidden"

	allowed = await api_client.get(
		"/explore/cards",
		params={"includeMatches": "false"},
		headers=_bearer("me", roles=["admin"]),
	)
	assert allowed.status_code == 200
	data = allowed.json()["data"]
	assert "matched" in {card["id"] for card in data["cards"]}
	assert "matches" not in data["performance"]["queriesExecuted"]


@pytest.mark.asyncio
async def test_rate_limit_headers(api_client, store, profile_factory, profiles_factory, monkeypatch):
	_seed(store, profile_factory, profiles_factory)
	monkeypatch.setattr(settings, "explore_rate_limit_per_minute", 2)

	first = await api_client.get("/explore/cards", headers={"X-User-Id": "me"})
	await api_client.get("/explore/cards", headers={"X-User-Id": "me"})
	blocked = await api_client.get("/explore/cards", headers={"X-User-Id": "me"})

	assert first.headers["X-RateLimit-Limit"] == "2"
	assert first.headers["X-RateLimit-Remaining"] == "1"
	assert "Retry-After" not in first.headers
	assert blocked.status_code == 429
	assert blocked.headers["X-RateLimit-Remaining"] == "0"
	assert int(blocked.headers["Retry-After"]) >= 1


@pytest.mark.asyncio
async def test_unsafe_request_id_is_replaced(api_client, store, profile_factory, profiles_factory):
	_seed(store, profile_factory, profiles_factory)

	resp = await api_client.get("/explore/cards", headers={"X-User-Id": "me", "X-Request-Id": "bad id <script>"})

	rid = resp.headers["X-Request-Id"]
	assert rid != "bad id <script>"
	assert resp.json()["requestId"] == rid
