"""SQL predicate builder shared by the timeline list endpoints.

A :class:`ListFilter` collects conditions once; the same predicate then feeds
the page query (relevance or structural ordering) and the count query.
"""

from dataclasses import dataclass, field
from typing import Any, Sequence

SCORE_COLUMN = "search_score"


@dataclass(frozen=True)
class ListSource:
    """A table or view listed by an endpoint, with its search and default ordering."""

    relation: str
    order_by: str
    search_columns: tuple[tuple[str, int], ...] = ()


@dataclass
class ListFilter:
    conditions: list[str] = field(default_factory=list)
    params: list[Any] = field(default_factory=list)

    def equals(self, column: str, value: Any) -> "ListFilter":
        if value is not None:
            self.conditions.append(f"{column} = ?")
            self.params.append(getattr(value, "value", value))
        return self

    def contains(self, column: str, value: str | None) -> "ListFilter":
        if value:
            self.conditions.append(f"instr(lower(COALESCE({column}, '')), lower(?)) > 0")
            self.params.append(value)
        return self

    def at_least(self, column: str, value: float | None) -> "ListFilter":
        if value is not None:
            self.conditions.append(f"{column} >= ?")
            self.params.append(value)
        return self

    def at_most(self, column: str, value: float | None) -> "ListFilter":
        if value is not None:
            self.conditions.append(f"{column} <= ?")
            self.params.append(value)
        return self

    def where_clause(self) -> str:
        if not self.conditions:
            return ""
        return f" WHERE {' AND '.join(self.conditions)}"


def search_terms(q: str | None) -> list[str]:
    if not q:
        return []
    return [term for term in q.split() if term]


def _relevance(columns: Sequence[tuple[str, int]], terms: list[str]) -> tuple[str, list[Any]]:
    parts: list[str] = []
    params: list[Any] = []
    for term in terms:
        for column, weight in columns:
            parts.append(
                f"CASE WHEN instr(lower(COALESCE({column}, '')), lower(?)) > 0 THEN {weight} ELSE 0 END"
            )
            params.append(term)
    return " + ".join(parts), params


def _base_query(
    source: ListSource,
    list_filter: ListFilter,
    q: str | None,
) -> tuple[str, list[Any], bool]:
    terms = search_terms(q) if source.search_columns else []
    if terms:
        score_sql, score_params = _relevance(source.search_columns, terms)
        inner = (
            f"SELECT *, ({score_sql}) AS {SCORE_COLUMN} FROM {source.relation}"
            f"{list_filter.where_clause()}"
        )
        return (
            f"SELECT * FROM ({inner}) WHERE {SCORE_COLUMN} > 0",
            score_params + list_filter.params,
            True,
        )
    return (
        f"SELECT * FROM {source.relation}{list_filter.where_clause()}",
        list(list_filter.params),
        False,
    )


def build_page_query(
    source: ListSource,
    list_filter: ListFilter,
    q: str | None,
    limit: int,
    offset: int,
) -> tuple[str, list[Any]]:
    """
    Build the paged SELECT for a list endpoint.

    With search terms, rows must match at least one term and are ordered by
    relevance before the structural order.

    :return: SQL text and its positional parameters
    :rtype: tuple[str, list[Any]]
    """
    query, params, searching = _base_query(source, list_filter, q)
    order_by = f"{SCORE_COLUMN} DESC, {source.order_by}" if searching else source.order_by
    return f"{query} ORDER BY {order_by} LIMIT ? OFFSET ?", params + [limit, offset]


def build_count_query(
    source: ListSource,
    list_filter: ListFilter,
    q: str | None,
) -> tuple[str, list[Any]]:
    query, params, _ = _base_query(source, list_filter, q)
    return f"SELECT COUNT(*) AS total FROM ({query})", params
