"""JSON file record source and report sink.

The source reads a snapshot file shaped as ``{entity_set: [row, ...]}``.
The sink writes one ``<report_id>.json`` file per report into a directory.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from pathlib import Path
from typing import Any, Literal

import pydantic as pdt

import readiness.errors as errors
import readiness.sources.base as base
import readiness.sources.memory as memory


class JsonFileRecordSource(base.BaseRecordSource):
    """Record source backed by a JSON snapshot file.

    Example:
        source = JsonFileRecordSource(path="data/snapshot.json")
    """

    kind: Literal["json_file"] = "json_file"
    path: str
    relations: dict[str, base.Relation] = pdt.Field(default_factory=dict)

    def _load_tables(self) -> dict[str, list[base.Row]]:
        path = Path(self.path)
        try:
            with path.open(encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise errors.SourceError(
                context=f"Opening record snapshot '{self.path}'",
                cause="Snapshot file not found",
                fix="Check source.path in readiness.yaml",
            ) from e
        except json.JSONDecodeError as e:
            raise errors.SourceError(
                context=f"Parsing record snapshot '{self.path}'",
                cause=f"Invalid JSON: {e}",
                fix="The snapshot must be a JSON object mapping entity set names to row lists",
            ) from e

        if not isinstance(data, dict):
            raise errors.SourceError(
                context=f"Parsing record snapshot '{self.path}'",
                cause=f"Expected a JSON object, got {type(data).__name__}",
                fix="The snapshot must be a JSON object mapping entity set names to row lists",
            )
        for entity_set, rows in data.items():
            if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
                raise errors.SourceError(
                    context=f"Parsing record snapshot '{self.path}'",
                    cause=f"Entity set '{entity_set}' is not a list of row objects",
                    fix="Each entity set must map to a JSON array of objects",
                )
        return data

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
        tables = await asyncio.to_thread(self._load_tables)
        return memory.query_rows(
            tables,
            self.relations,
            entity_set,
            select=select,
            filter=filter,
            expand=expand,
            order_by=order_by,
            top=top,
        )


class JsonFileReportSink(base.BaseReportSink):
    """Writes each report payload to ``<directory>/<report_id>.json``."""

    kind: Literal["json_file"] = "json_file"
    directory: str

    def _write(self, report_id: str, payload: dict[str, Any]) -> None:
        directory = Path(self.directory)
        directory.mkdir(parents=True, exist_ok=True)
        target = directory / f"{report_id}.json"
        target.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")

    async def create(self, payload: dict[str, Any]) -> str:
        report_id = uuid.uuid4().hex
        await asyncio.to_thread(self._write, report_id, payload)
        return report_id
