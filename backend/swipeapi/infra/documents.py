"""Document store contract: query predicates, result pages and errors.

Discovery code talks to the store only through :class:`DocumentStore`. Queries are
plain immutable values so they can be inspected in tests and compiled by any
backend. A single ``list_documents`` call accepts at most
:data:`MAX_QUERIES_PER_CALL` queries, counted at the top level.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

MAX_QUERIES_PER_CALL = 100

Document = Dict[str, Any]

EQUAL = "equal"
NOT_EQUAL = "notEqual"
LESS_THAN = "lessThan"
LESS_THAN_EQUAL = "lessThanEqual"
GREATER_THAN = "greaterThan"
GREATER_THAN_EQUAL = "greaterThanEqual"
IS_NULL = "isNull"
STARTS_WITH = "startsWith"
CONTAINS = "contains"
AND = "and"
OR = "or"
SELECT = "select"
LIMIT = "limit"
OFFSET = "offset"
ORDER_ASC = "orderAsc"
ORDER_DESC = "orderDesc"

COMPARISONS = frozenset({LESS_THAN, LESS_THAN_EQUAL, GREATER_THAN, GREATER_THAN_EQUAL})
LOGICAL = frozenset({AND, OR})


def _as_tuple(value: Any) -> Tuple[Any, ...]:
	if isinstance(value, (list, tuple, set, frozenset)):
		return tuple(value)
	return (value,)


@dataclass(frozen=True, slots=True)
class Query:
	"""One predicate or modifier passed to :meth:`DocumentStore.list_documents`."""

	method: str
	attribute: Optional[str] = None
	values: Tuple[Any, ...] = ()
	queries: Tuple["Query", ...] = ()

	@classmethod
	def equal(cls, attribute: str, value: Any) -> "Query":
		"""Match when the attribute equals the value, or any of the values when a list is given."""
		return cls(EQUAL, attribute, _as_tuple(value))

	@classmethod
	def not_equal(cls, attribute: str, value: Any) -> "Query":
		return cls(NOT_EQUAL, attribute, (value,))

	@classmethod
	def less_than(cls, attribute: str, value: Any) -> "Query":
		return cls(LESS_THAN, attribute, (value,))

	@classmethod
	def less_than_equal(cls, attribute: str, value: Any) -> "Query":
		return cls(LESS_THAN_EQUAL, attribute, (value,))

	@classmethod
	def greater_than(cls, attribute: str, value: Any) -> "Query":
		return cls(GREATER_THAN, attribute, (value,))

	@classmethod
	def greater_than_equal(cls, attribute: str, value: Any) -> "Query":
		return cls(GREATER_THAN_EQUAL, attribute, (value,))

	@classmethod
	def is_null(cls, attribute: str) -> "Query":
		return cls(IS_NULL, attribute)

	@classmethod
	def starts_with(cls, attribute: str, prefix: str) -> "Query":
		return cls(STARTS_WITH, attribute, (prefix,))

	@classmethod
	def contains(cls, attribute: str, value: Any) -> "Query":
		"""Match when an array attribute holds the value."""
		return cls(CONTAINS, attribute, (value,))

	@classmethod
	def and_(cls, queries: Iterable["Query"]) -> "Query":
		return cls(AND, queries=tuple(queries))

	@classmethod
	def or_(cls, queries: Iterable["Query"]) -> "Query":
		return cls(OR, queries=tuple(queries))

	@classmethod
	def select(cls, attributes: Iterable[str]) -> "Query":
		return cls(SELECT, values=tuple(attributes))

	@classmethod
	def limit(cls, count: int) -> "Query":
		return cls(LIMIT, values=(int(count),))

	@classmethod
	def offset(cls, count: int) -> "Query":
		return cls(OFFSET, values=(int(count),))

	@classmethod
	def order_asc(cls, attribute: str) -> "Query":
		return cls(ORDER_ASC, attribute)

	@classmethod
	def order_desc(cls, attribute: str) -> "Query":
		return cls(ORDER_DESC, attribute)

	@property
	def is_filter(self) -> bool:
		return self.method not in {SELECT, LIMIT, OFFSET, ORDER_ASC, ORDER_DESC}


@dataclass(slots=True)
class DocumentList:
	documents: List[Document] = field(default_factory=list)
	total: int = 0


class DocumentStoreError(Exception):
	"""Base class for document store failures."""

	reason: str = "store_error"

	def __init__(self, message: str | None = None) -> None:
		super().__init__(message or self.reason)


class DocumentNotFound(DocumentStoreError):
	reason = "not_found"

	def __init__(self, collection: str, document_id: str) -> None:
		super().__init__(f"document {document_id} not found in {collection}")
		self.collection = collection
		self.document_id = document_id


class QueryRejected(DocumentStoreError):
	reason = "query_rejected"


class DocumentStore(Protocol):
	async def get_document(self, collection: str, document_id: str) -> Document:
		"""Return one document or raise :class:`DocumentNotFound`."""
		...

	async def list_documents(self, collection: str, queries: Sequence[Query]) -> DocumentList:
		"""Return the page selected by ``queries`` and the total number of matches."""
		...


def check_query_budget(queries: Sequence[Query]) -> None:
	if len(queries) > MAX_QUERIES_PER_CALL:
		raise QueryRejected(f"too many queries: {len(queries)} > {MAX_QUERIES_PER_CALL}")
