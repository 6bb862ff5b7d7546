"""Postgres-backed document store.

Each collection is a table whose columns are the document attributes. Queries
are compiled to a parameterised WHERE clause; identifiers are validated and
quoted, values always travel as bind parameters.
"""

from __future__ import annotations

import logging
import re
from typing import Any, List, Sequence, Tuple

import asyncpg

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
	DocumentStoreError,
	Query,
	QueryRejected,
	check_query_budget,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 25

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")

_OPERATORS = {
	LESS_THAN: "<",
	LESS_THAN_EQUAL: "<=",
	GREATER_THAN: ">",
	GREATER_THAN_EQUAL: ">=",
}

_REJECTED_ERRORS: Tuple[type[BaseException], ...] = (
	asyncpg.PostgresSyntaxError,
	asyncpg.UndefinedColumnError,
	asyncpg.UndefinedTableError,
	asyncpg.DataError,
)


def quote_identifier(name: str) -> str:
	if not name or not _IDENTIFIER.match(name):
		raise QueryRejected(f"invalid identifier: {name!r}")
	return f'"{name}"'


def _like_prefix(prefix: str) -> str:
	escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
	return f"{escaped}%"


class QueryCompiler:
	"""Collects bind parameters while rendering queries to SQL fragments."""

	def __init__(self) -> None:
		self.params: List[Any] = []

	def bind(self, value: Any) -> str:
		self.params.append(value)
		return f"${len(self.params)}"

	def compile(self, query: Query) -> str:
		if query.method == AND or query.method == OR:
			if not query.queries:
				return "TRUE" if query.method == AND else "FALSE"
			joiner = " AND " if query.method == AND else " OR "
			return "(" + joiner.join(self.compile(nested) for nested in query.queries) + ")"

		column = quote_identifier(query.attribute or "")
		if query.method == EQUAL:
			if not query.values:
				return "FALSE"
			if len(query.values) == 1:
				return f"{column} = {self.bind(query.values[0])}"
			return f"{column} = ANY({self.bind(list(query.values))})"
		if query.method == NOT_EQUAL:
			return f"{column} IS DISTINCT FROM {self.bind(query.values[0])}"
		if query.method in _OPERATORS:
			return f"{column} {_OPERATORS[query.method]} {self.bind(query.values[0])}"
		if query.method == IS_NULL:
			return f"{column} IS NULL"
		if query.method == STARTS_WITH:
			return f"{column} LIKE {self.bind(_like_prefix(str(query.values[0])))}"
		if query.method == CONTAINS:
			return f"{self.bind(query.values[0])} = ANY({column})"
		raise QueryRejected(f"unsupported query method: {query.method}")


def compile_list_statement(table: str, queries: Sequence[Query]) -> Tuple[str, List[Any], str, List[Any]]:
	"""Return (page_sql, page_params, count_sql, count_params) for a list call."""
	table_sql = quote_identifier(table)
	compiler = QueryCompiler()
	filters: List[str] = []
	columns = "*"
	order: List[str] = []
	limit = DEFAULT_PAGE_SIZE
	offset = 0
	for query in queries:
		if query.is_filter:
			filters.append(compiler.compile(query))
		elif query.method == SELECT:
			columns = ", ".join(quote_identifier(str(name)) for name in query.values)
		elif query.method == LIMIT:
			limit = max(0, int(query.values[0]))
		elif query.method == OFFSET:
			offset = max(0, int(query.values[0]))
		elif query.method == ORDER_ASC:
			order.append(f"{quote_identifier(query.attribute or '')} ASC")
		elif query.method == ORDER_DESC:
			order.append(f"{quote_identifier(query.attribute or '')} DESC")

	where = " AND ".join(filters) if filters else "TRUE"
	count_params = list(compiler.params)
	count_sql = f"SELECT count(*) FROM {table_sql} WHERE {where}"
	order_sql = f" ORDER BY {', '.join(order)}" if order else ""
	limit_param = compiler.bind(limit)
	offset_param = compiler.bind(offset)
	page_sql = f"SELECT {columns} FROM {table_sql} WHERE {where}{order_sql} LIMIT {limit_param} OFFSET {offset_param}"
	return page_sql, compiler.params, count_sql, count_params


class PostgresDocumentStore:
	"""`DocumentStore` implementation on top of an asyncpg pool."""

	def __init__(self, pool: asyncpg.pool.Pool) -> None:
		self._pool = pool

	async def get_document(self, collection: str, document_id: str) -> Document:
		sql = f"SELECT * FROM {quote_identifier(collection)} WHERE \"id\" = $1"
		try:
			row = await self._pool.fetchrow(sql, document_id)
		except _REJECTED_ERRORS as exc:
			raise QueryRejected(f"{collection}: {exc}") from exc
		except (asyncpg.PostgresError, OSError) as exc:
			raise DocumentStoreError(f"{collection}: {exc}") from exc
		if row is None:
			raise DocumentNotFound(collection, document_id)
		return dict(row)

	async def list_documents(self, collection: str, queries: Sequence[Query]) -> DocumentList:
		check_query_budget(queries)
		page_sql, page_params, count_sql, count_params = compile_list_statement(collection, queries)
		try:
			async with self._pool.acquire() as conn:
				rows = await conn.fetch(page_sql, *page_params)
				total = await conn.fetchval(count_sql, *count_params)
		except _REJECTED_ERRORS as exc:
			raise QueryRejected(f"{collection}: {exc}") from exc
		except (asyncpg.PostgresError, OSError) as exc:
			raise DocumentStoreError(f"{collection}: {exc}") from exc
		if logger.isEnabledFor(logging.DEBUG):
			logger.debug("list_documents collection=%s queries=%s rows=%s total=%s", collection, len(queries), len(rows), total)
		return DocumentList(documents=[dict(row) for row in rows], total=int(total or 0))
