"""
assoc_portal.backend.query

Fluent table query builder.

Responsibilities:
- Accumulate a backend-neutral `QuerySpec` (action, filters, ordering, cardinality).
- Hand the spec to the backend's executor when awaited via `execute()`.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

Action = Literal["select", "insert", "update", "delete"]
Operator = Literal["eq", "neq", "in"]
Cardinality = Literal["many", "single", "maybe_single"]


@dataclass(frozen=True, slots=True)
class Filter:
    column: str
    op: Operator
    value: Any


@dataclass(frozen=True, slots=True)
class Order:
    column: str
    ascending: bool = True


@dataclass(slots=True)
class QuerySpec:
    table: str
    action: Action = "select"
    columns: tuple[str, ...] = ("*",)
    filters: list[Filter] = field(default_factory=list)
    orders: list[Order] = field(default_factory=list)
    limit: int | None = None
    cardinality: Cardinality = "many"
    # insert: rows to write; update: a single patch in values[0]
    values: list[dict[str, Any]] = field(default_factory=list)


Executor = Callable[[QuerySpec], Awaitable[Any]]


class TableQuery:
    """
    Mirrors the hosted service's builder:

        await client.table("profiles").select("*").eq("id", uid).single().execute()

    `execute()` returns a list of row dicts, or one row (or None) after
    `single()` / `maybe_single()`. `single()` raises `NotFoundError` on no match.
    """

    def __init__(self, table: str, *, executor: Executor) -> None:
        self._spec = QuerySpec(table=table)
        self._executor = executor

    @property
    def spec(self) -> QuerySpec:
        return self._spec

    def select(self, columns: str = "*") -> TableQuery:
        self._spec.action = "select"
        self._spec.columns = tuple(c.strip() for c in columns.split(",") if c.strip()) or ("*",)
        return self

    def insert(self, rows: Mapping[str, Any] | Sequence[Mapping[str, Any]]) -> TableQuery:
        self._spec.action = "insert"
        if isinstance(rows, Mapping):
            rows = [rows]
        self._spec.values = [dict(r) for r in rows]
        return self

    def update(self, patch: Mapping[str, Any]) -> TableQuery:
        self._spec.action = "update"
        self._spec.values = [dict(patch)]
        return self

    def delete(self) -> TableQuery:
        self._spec.action = "delete"
        return self

    def eq(self, column: str, value: Any) -> TableQuery:
        self._spec.filters.append(Filter(column, "eq", value))
        return self

    def neq(self, column: str, value: Any) -> TableQuery:
        self._spec.filters.append(Filter(column, "neq", value))
        return self

    def in_(self, column: str, values: Sequence[Any]) -> TableQuery:
        self._spec.filters.append(Filter(column, "in", tuple(values)))
        return self

    def order(self, column: str, *, ascending: bool = True) -> TableQuery:
        self._spec.orders.append(Order(column, ascending))
        return self

    def limit(self, count: int) -> TableQuery:
        self._spec.limit = count
        return self

    def single(self) -> TableQuery:
        self._spec.cardinality = "single"
        return self

    def maybe_single(self) -> TableQuery:
        self._spec.cardinality = "maybe_single"
        return self

    async def execute(self) -> Any:
        return await self._executor(self._spec)


def parse_filter(expr: str) -> Filter:
    """
    Parse a change-feed filter of the form `column=eq.value`.
    """

    column, sep, rest = expr.partition("=")
    op, dot, value = rest.partition(".")
    if not sep or not dot or not column or op not in ("eq", "neq"):
        raise ValueError(f"unsupported filter expression: {expr!r}")
    return Filter(column.strip(), op, value)  # type: ignore[arg-type]


def matches(row: Mapping[str, Any], filters: Sequence[Filter]) -> bool:
    for f in filters:
        actual = row.get(f.column)
        # Change-feed filters carry text values; compare on the string form.
        if f.op == "eq" and str(actual) != str(f.value):
            return False
        if f.op == "neq" and str(actual) == str(f.value):
            return False
        if f.op == "in" and actual not in f.value:
            return False
    return True
