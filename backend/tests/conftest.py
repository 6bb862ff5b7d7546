import os
import sys
from collections import defaultdict
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, List, Sequence, Tuple

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

os.environ.setdefault("SECRET_KEY", "test-secret-key-with-enough-entropy-for-hs256")
os.environ.setdefault("ENV", "dev")

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from swipeapi.api import explore
from swipeapi.infra import postgres
from swipeapi.infra.documents import (
	AND,
	CONTAINS,
	EQUAL,
	GREATER_THAN,
	GREATER_THAN_EQUAL,
	IS_NULL,
	LESS_THAN,
	LESS_THAN_EQUAL,
	LIMIT,
	NOT_EQUAL,
	OFFSET,
	OR,
	ORDER_ASC,
	ORDER_DESC,
	SELECT,
	STARTS_WITH,
	Document,
	DocumentList,
	DocumentNotFound,
	Query,
	check_query_budget,
)
from swipeapi.main import app
from swipeapi.settings import settings


def _compare(method: str, actual: Any, expected: Any) -> bool:
	if actual is None:
		return False
	if method == LESS_THAN:
		return actual < expected
	if method == LESS_THAN_EQUAL:
		return actual <= expected
	if method == GREATER_THAN:
		return actual > expected
	return actual >= expected


def matches(document: Document, query: Query) -> bool:
	if query.method == AND:
		return all(matches(document, nested) for nested in query.queries)
	if query.method == OR:
		return any(matches(document, nested) for nested in query.queries)
	value = document.get(query.attribute or "")
	if query.method == EQUAL:
		return value in query.values
	if query.method == NOT_EQUAL:
		return value != query.values[0]
	if query.method in {LESS_THAN, LESS_THAN_EQUAL, GREATER_THAN, GREATER_THAN_EQUAL}:
		return _compare(query.method, value, query.values[0])
	if query.method == IS_NULL:
		return value is None
	if query.method == STARTS_WITH:
		return isinstance(value, str) and value.startswith(str(query.values[0]))
	if query.method == CONTAINS:
		return query.values[0] in (value or [])
	raise AssertionError(f"unsupported query method {query.method}")


class FakeDocumentStore:
	"""In-memory document store that evaluates the query DSL like the real backend."""

	def __init__(self) -> None:
		self.collections: Dict[str, List[Document]] = defaultdict(list)
		self.calls: List[Tuple[str, str, Tuple[Query, ...]]] = []
		self.failures: Dict[str, Exception] = {}

	def add(self, collection: str, *documents: Document) -> None:
		self.collections[collection].extend(dict(doc) for doc in documents)

	def fail_on(self, collection: str, exc: Exception) -> None:
		self.failures[collection] = exc

	def list_calls(self, collection: str) -> List[Tuple[Query, ...]]:
		return [queries for kind, name, queries in self.calls if kind == "list" and name == collection]

	async def get_document(self, collection: str, document_id: str) -> Document:
		self.calls.append(("get", collection, ()))
		if collection in self.failures:
			raise self.failures[collection]
		for doc in self.collections[collection]:
			if doc.get("id") == document_id:
				return dict(doc)
		raise DocumentNotFound(collection, document_id)

	async def list_documents(self, collection: str, queries: Sequence[Query]) -> DocumentList:
		queries = tuple(queries)
		self.calls.append(("list", collection, queries))
		check_query_budget(queries)
		if collection in self.failures:
			raise self.failures[collection]
		docs = [doc for doc in self.collections[collection] if all(matches(doc, q) for q in queries if q.is_filter)]
		limit, offset, columns = 25, 0, None
		for query in queries:
			if query.method == ORDER_ASC:
				docs.sort(key=lambda d, attr=query.attribute: d.get(attr))
			elif query.method == ORDER_DESC:
				docs.sort(key=lambda d, attr=query.attribute: d.get(attr), reverse=True)
			elif query.method == LIMIT:
				limit = query.values[0]
			elif query.method == OFFSET:
				offset = query.values[0]
			elif query.method == SELECT:
				columns = query.values
		page = docs[offset : offset + limit]
		if columns is not None:
			page = [{key: doc.get(key) for key in columns} for doc in page]
		else:
			page = [dict(doc) for doc in page]
		return DocumentList(documents=page, total=len(docs))


def make_profile(user_id: str, **overrides: Any) -> Document:
	doc: Document = {
		"id": user_id,
		"birth_date": date(1995, 6, 15),
		"gender": "woman",
		"country_code": "TR",
		"geohash": "sxk9",
		"photos": [f"{user_id}/1.jpg"],
	}
	doc.update(overrides)
	return doc


def make_profiles(prefix: str, count: int, **overrides: Any) -> List[Document]:
	return [make_profile(f"{prefix}{idx:03d}", **overrides) for idx in range(count)]


@pytest.fixture
def store() -> FakeDocumentStore:
	return FakeDocumentStore()


@pytest.fixture
def profile_factory() -> Callable[..., Document]:
	return make_profile


@pytest.fixture
def profiles_factory() -> Callable[..., List[Document]]:
	return make_profiles


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from swipeapi.infra.redis import redis_client, set_redis_client
	original = redis_client._client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""API tests authenticate via X-User-Id, which is only accepted in dev mode."""
	original_env = settings.environment
	settings.environment = "dev"
	try:
		yield
	finally:
		settings.environment = original_env


@pytest_asyncio.fixture
async def api_client(store):
	app.dependency_overrides[explore.get_document_store] = lambda: store
	transport = ASGITransport(app=app)
	try:
		async with AsyncClient(transport=transport, base_url="http://testserver") as client:
			yield client
	finally:
		app.dependency_overrides.pop(explore.get_document_store, None)
