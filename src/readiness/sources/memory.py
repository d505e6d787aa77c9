"""In-memory record source and report sink.

Used for tests, offline runs and as the query engine behind the JSON
file source.
"""

from __future__ import annotations

import copy
import uuid
from typing import Any, Literal

import pydantic as pdt

import readiness.errors as errors
import readiness.sources.base as base


def _matches(row: base.Row, row_filter: base.RowFilter) -> bool:
    for field, expected in row_filter.items():
        value = row.get(field)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


def _sort_key(field: str):
    def key(row: base.Row) -> tuple[bool, Any]:
        value = row.get(field)
        return (value is None, value if value is not None else 0)

    return key


def query_rows(
    tables: dict[str, list[base.Row]],
    relations: dict[str, base.Relation],
    entity_set: str,
    *,
    select: list[str] | None = None,
    filter: base.RowFilter | None = None,
    expand: list[str] | None = None,
    order_by: str | None = None,
    top: int | None = None,
) -> list[base.Row]:
    """Evaluate a read against in-memory tables.

    Order of application: filter, order_by, top, expand, select. Expanded
    navigation names are always kept by ``select``.
    """
    if entity_set not in tables:
        raise errors.EntityNotFoundError(entity_set)

    rows = [dict(row) for row in tables[entity_set]]
    if filter:
        rows = [row for row in rows if _matches(row, filter)]

    if order_by:
        parts = order_by.split()
        descending = len(parts) > 1 and parts[1].lower() == "desc"
        rows.sort(key=_sort_key(parts[0]), reverse=descending)

    if top is not None:
        rows = rows[:top]

    for name in expand or []:
        relation = relations.get(name)
        if relation is None:
            raise errors.SourceError(
                context=f"Reading entity set '{entity_set}'",
                cause=f"Unknown navigation '{name}'",
                fix=f"Declare a relation named '{name}' on the record source",
            )
        targets = tables.get(relation.entity_set, [])
        for row in rows:
            local = row.get(relation.local_field)
            row[name] = [dict(t) for t in targets if t.get(relation.foreign_field) == local]

    if select:
        keep = set(select) | set(expand or [])
        rows = [{k: v for k, v in row.items() if k in keep} for row in rows]
    return rows


class InMemoryRecordSource(base.BaseRecordSource):
    """Record source backed by a dict of entity set -> rows.

    Example:
        source = InMemoryRecordSource(
            tables={"Z_I_Materials": [{"Material": "M1", "BaseUnit": "KG"}]},
        )
        rows = await source.read("Z_I_Materials", select=["BaseUnit"])
    """

    kind: Literal["memory"] = "memory"
    tables: dict[str, list[dict[str, Any]]] = pdt.Field(default_factory=dict)
    relations: dict[str, base.Relation] = pdt.Field(default_factory=dict)

    async def read(
        self,
        entity_set: str,
        *,
        select: list[str] | None = None,
        filter: base.RowFilter | None = None,
        expand: list[str] | None = None,
        order_by: str | None = None,
        top: int | None = None,
    ) -> list[base.Row]:
        return query_rows(
            self.tables,
            self.relations,
            entity_set,
            select=select,
            filter=filter,
            expand=expand,
            order_by=order_by,
            top=top,
        )


class InMemoryReportSink(base.BaseReportSink):
    """Report sink that keeps payloads in a dict keyed by report id."""

    kind: Literal["memory"] = "memory"
    reports: dict[str, dict[str, Any]] = pdt.Field(default_factory=dict)

    async def create(self, payload: dict[str, Any]) -> str:
        report_id = uuid.uuid4().hex
        self.reports[report_id] = copy.deepcopy(payload)
        return report_id
