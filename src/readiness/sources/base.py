"""Record source and report sink abstractions.

A record source returns rows (plain dicts) for a named entity set. A
report sink accepts a finished report payload and returns its id.

Implementations must be frozen Pydantic models (config-as-code) so they
can be declared in readiness.yaml under ``source:`` and ``sink:``.
"""

from __future__ import annotations

import abc
import asyncio
from typing import Any

import pydantic as pdt

import readiness.errors as errors

Row = dict[str, Any]

# Field -> required value. A list value matches any of its members.
RowFilter = dict[str, Any]


class Relation(pdt.BaseModel, strict=True, frozen=True, extra="forbid"):
    """Navigation used by ``expand``: rows of ``entity_set`` whose
    ``foreign_field`` equals the local row's ``local_field``."""

    entity_set: str
    local_field: str
    foreign_field: str


class BaseRecordSource(abc.ABC, pdt.BaseModel, strict=True, frozen=True, extra="forbid"):
    """Abstract base class for record sources.

    ``read`` must raise ``EntityNotFoundError`` when the entity set does
    not exist, and another ``SourceError`` for any other failure.
    """

    kind: str

    @abc.abstractmethod
    async def read(
        self,
        entity_set: str,
        *,
        select: list[str] | None = None,
        filter: RowFilter | None = None,
        expand: list[str] | None = None,
        order_by: str | None = None,
        top: int | None = None,
    ) -> list[Row]:
        """Read rows of an entity set.

        Args:
            entity_set: Name of the entity set (e.g. "Z_I_Materials").
            select: Fields to keep on each row. None keeps all fields.
            filter: Equality filter; list values mean "any of".
            expand: Navigation names to resolve into nested row lists.
            order_by: Field name, optionally followed by " desc".
            top: Maximum number of rows to return.
        """
        ...


async def read_with_timeout(
    source: BaseRecordSource,
    entity_set: str,
    timeout: float | None = None,
    **options: Any,
) -> list[Row]:
    """Call ``source.read`` bounded by ``timeout`` seconds.

    Raises:
        SourceTimeoutError: If the read does not finish in time. The
            pending read is cancelled.
    """
    if timeout is None:
        return await source.read(entity_set, **options)
    try:
        return await asyncio.wait_for(source.read(entity_set, **options), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise errors.SourceTimeoutError(entity_set, timeout) from e


class BaseReportSink(abc.ABC, pdt.BaseModel, strict=True, frozen=True, extra="forbid"):
    """Abstract base class for report sinks."""

    kind: str

    @abc.abstractmethod
    async def create(self, payload: dict[str, Any]) -> str:
        """Store a report payload and return the new report id."""
        ...
