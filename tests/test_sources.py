"""Tests for record sources and report sinks."""

from __future__ import annotations

import asyncio
import json

import pydantic as pdt
import pytest

import readiness.errors as errors
import readiness.sources as sources

ORDERS = {
    "Orders": [
        {"Order": "O1", "Material": "M1", "Qty": 5},
        {"Order": "O2", "Material": "M2", "Qty": 1},
        {"Order": "O3", "Material": "M1", "Qty": 9},
    ],
    "Materials": [
        {"Material": "M1", "Unit": "KG"},
        {"Material": "M2", "Unit": "EA"},
    ],
}

TO_MATERIAL = sources.Relation(entity_set="Materials", local_field="Material", foreign_field="Material")


class TestInMemoryRecordSource:
    @pytest.mark.asyncio
    async def test_read_all(self) -> None:
        source = sources.InMemoryRecordSource(tables=ORDERS)

        rows = await source.read("Orders")

        assert len(rows) == 3

    @pytest.mark.asyncio
    async def test_unknown_entity_set(self) -> None:
        source = sources.InMemoryRecordSource(tables=ORDERS)

        with pytest.raises(errors.EntityNotFoundError) as exc_info:
            await source.read("Nope")

        assert exc_info.value.entity_set == "Nope"

    @pytest.mark.asyncio
    async def test_select_filter_order_top(self) -> None:
        source = sources.InMemoryRecordSource(tables=ORDERS)

        rows = await source.read(
            "Orders",
            select=["Order"],
            filter={"Material": "M1"},
            order_by="Qty desc",
            top=1,
        )

        assert rows == [{"Order": "O3"}]

    @pytest.mark.asyncio
    async def test_list_filter_means_any_of(self) -> None:
        source = sources.InMemoryRecordSource(tables=ORDERS)

        rows = await source.read("Orders", filter={"Order": ["O1", "O2"]}, order_by="Order")

        assert [r["Order"] for r in rows] == ["O1", "O2"]

    @pytest.mark.asyncio
    async def test_expand_kept_by_select(self) -> None:
        source = sources.InMemoryRecordSource(tables=ORDERS, relations={"to_Material": TO_MATERIAL})

        rows = await source.read("Orders", select=["Order"], expand=["to_Material"], top=1)

        assert rows == [{"Order": "O1", "to_Material": [{"Material": "M1", "Unit": "KG"}]}]

    @pytest.mark.asyncio
    async def test_unknown_navigation(self) -> None:
        source = sources.InMemoryRecordSource(tables=ORDERS)

        with pytest.raises(errors.SourceError, match="to_Nothing"):
            await source.read("Orders", expand=["to_Nothing"])

    @pytest.mark.asyncio
    async def test_rows_are_copies(self) -> None:
        source = sources.InMemoryRecordSource(tables=ORDERS)

        rows = await source.read("Orders")
        rows[0]["Qty"] = 0

        assert source.tables["Orders"][0]["Qty"] == 5


class TestReadWithTimeout:
    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        class SlowSource(sources.InMemoryRecordSource):
            async def read(self, entity_set, **options):
                await asyncio.sleep(1)
                return []

        with pytest.raises(errors.SourceTimeoutError) as exc_info:
            await sources.read_with_timeout(SlowSource(), "Orders", 0.01)

        assert exc_info.value.timeout == 0.01

    @pytest.mark.asyncio
    async def test_passes_options(self) -> None:
        source = sources.InMemoryRecordSource(tables=ORDERS)

        rows = await sources.read_with_timeout(source, "Orders", 5, top=2)

        assert len(rows) == 2


class TestJsonFileRecordSource:
    @pytest.mark.asyncio
    async def test_reads_snapshot(self, tmp_path) -> None:
        path = tmp_path / "snapshot.json"
        path.write_text(json.dumps(ORDERS))
        source = sources.JsonFileRecordSource(path=str(path))

        rows = await source.read("Materials", filter={"Unit": "EA"})

        assert rows == [{"Material": "M2", "Unit": "EA"}]

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path) -> None:
        source = sources.JsonFileRecordSource(path=str(tmp_path / "missing.json"))

        with pytest.raises(errors.SourceError, match="not found"):
            await source.read("Materials")

    @pytest.mark.asyncio
    async def test_invalid_json(self, tmp_path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        with pytest.raises(errors.SourceError, match="Invalid JSON"):
            await sources.JsonFileRecordSource(path=str(path)).read("Materials")

    @pytest.mark.asyncio
    async def test_non_object_root(self, tmp_path) -> None:
        path = tmp_path / "list.json"
        path.write_text("[]")

        with pytest.raises(errors.SourceError, match="Expected a JSON object"):
            await sources.JsonFileRecordSource(path=str(path)).read("Materials")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("table", ["oops", [1, 2], {"Material": "M1"}])
    async def test_entity_set_not_row_list(self, tmp_path, table) -> None:
        path = tmp_path / "snapshot.json"
        path.write_text(json.dumps({"Materials": table}))

        with pytest.raises(errors.SourceError, match="not a list of row objects"):
            await sources.JsonFileRecordSource(path=str(path)).read("Materials")


class TestReportSinks:
    @pytest.mark.asyncio
    async def test_memory_sink_stores_copy(self) -> None:
        sink = sources.InMemoryReportSink()
        payload = {"results": [1]}

        report_id = await sink.create(payload)
        payload["results"].append(2)

        assert sink.reports[report_id] == {"results": [1]}

    @pytest.mark.asyncio
    async def test_memory_sink_unique_ids(self) -> None:
        sink = sources.InMemoryReportSink()

        assert await sink.create({}) != await sink.create({})

    @pytest.mark.asyncio
    async def test_json_sink_writes_file(self, tmp_path) -> None:
        sink = sources.JsonFileReportSink(directory=str(tmp_path / "reports"))

        report_id = await sink.create({"regulation_ref": "EUDR"})

        written = json.loads((tmp_path / "reports" / f"{report_id}.json").read_text())
        assert written == {"regulation_ref": "EUDR"}


class TestDiscriminatedUnions:
    def test_source_kind(self) -> None:
        adapter = pdt.TypeAdapter(sources.SourceKind)

        source = adapter.validate_python({"kind": "json_file", "path": "data.json"})

        assert isinstance(source, sources.JsonFileRecordSource)

    def test_sink_kind(self) -> None:
        adapter = pdt.TypeAdapter(sources.SinkKind)

        assert isinstance(adapter.validate_python({"kind": "memory"}), sources.InMemoryReportSink)

    def test_unknown_kind(self) -> None:
        with pytest.raises(pdt.ValidationError):
            pdt.TypeAdapter(sources.SourceKind).validate_python({"kind": "odata"})
