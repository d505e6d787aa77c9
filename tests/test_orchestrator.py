"""Tests for the compliance orchestrator: rules, BOM evaluation, report."""

from __future__ import annotations

import datetime as dt
import json

import pytest

import readiness.activity as activity_mod
import readiness.errors as errors
import readiness.orchestrator as orchestrator
import readiness.report as report
import readiness.settings as settings
import readiness.sources as sources
from readiness.field_types import FieldCategory
from readiness.models import FieldDef, Rule

NOW = dt.datetime(2024, 6, 15, 12, 0, tzinfo=dt.timezone.utc)

Avail = report.AvailabilityCategory
Quality = report.DataQuality

UNIT_RULE = Rule(entity_set_name="Z_I_Materials", field_name="BaseUnitOfMeasure", category="MASTER_DATA")
DIVISION_RULE = Rule(entity_set_name="Z_I_Materials", field_name="Division", category="MASTER_DATA")
MISSING_SET_RULE = Rule(entity_set_name="Z_I_Nope", field_name="Anything")
UNVALIDATED_RULE = Rule(entity_set_name="Z_I_Materials", field_name="Material")


def _build(processor, source, sink=None) -> orchestrator.ComplianceOrchestrator:
    return orchestrator.ComplianceOrchestrator(
        processor=processor,
        source=source,
        sink=sink or sources.InMemoryReportSink(),
        classifier=activity_mod.ActivityClassifier(clock=lambda: NOW),
        clock=lambda: NOW,
    )


class FailingSource(sources.InMemoryRecordSource):
    """Raises a transport error for one entity set."""

    failing: str = ""

    async def read(self, entity_set, **options):
        if entity_set == self.failing:
            raise errors.SourceError(context="Reading", cause="connection reset", fix="retry")
        return await super().read(entity_set, **options)


class BrokenSink(sources.InMemoryReportSink):
    async def create(self, payload):
        raise RuntimeError("sink offline")


@pytest.fixture
def runner(processor, memory_source, memory_sink) -> orchestrator.ComplianceOrchestrator:
    return _build(processor, memory_source, memory_sink)


class TestPreload:
    @pytest.mark.asyncio
    async def test_all_stages_succeed(self, runner) -> None:
        whitelists, activity = await runner.preload()

        assert whitelists.status == orchestrator.StageStatus.SUCCESS
        assert activity.status == orchestrator.StageStatus.SUCCESS
        assert activity.value["M1"].status == activity_mod.ActivityStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_activity_failure_degrades(self, processor) -> None:
        runner = _build(processor, sources.InMemoryRecordSource(tables={"Z_I_Materials": []}))

        _, activity = await runner.preload()

        assert activity.status == orchestrator.StageStatus.FAILED
        assert activity.value == {}
        assert activity.errors == ("Entity or data not found",)

    @pytest.mark.asyncio
    async def test_partial_whitelist_failure(self, runner) -> None:
        async def broken():
            raise RuntimeError("down")

        runner.processor.cache.register_loader("T006", broken)

        whitelists, _ = await runner.preload()

        assert whitelists.status == orchestrator.StageStatus.DEGRADED
        assert whitelists.errors[0].startswith("T006: ")


class TestEvaluateRule:
    @pytest.mark.asyncio
    async def test_partial_and_invalid(self, runner, material_tables) -> None:
        rows = material_tables["Z_I_Materials"]

        line = await runner.evaluate_rule(UNIT_RULE, rows, {})

        assert line.avail_cat == Avail.PARTIAL
        assert line.data_quality == Quality.LOW
        assert line.validation_status == report.ValidationStatus.INVALID
        assert line.gap_desc == "Missing values detected; Invalid values: Invalid unit code: 'XYZ'"
        assert line.recommendation == "Maintain missing values; Correct invalid values"
        assert line.validation_errors == ("Invalid unit code: 'XYZ'",)

    @pytest.mark.asyncio
    async def test_all_valid(self, runner, material_tables) -> None:
        line = await runner.evaluate_rule(DIVISION_RULE, material_tables["Z_I_Materials"], {})

        assert line.avail_cat == Avail.AVAILABLE
        assert line.data_quality == Quality.HIGH
        assert line.validation_status == report.ValidationStatus.VALID
        assert line.gap_desc == ""

    @pytest.mark.asyncio
    async def test_distinct_error_messages(self, runner) -> None:
        rows = [{"BaseUnitOfMeasure": "XYZ"}, {"BaseUnitOfMeasure": "XYZ"}]

        line = await runner.evaluate_rule(UNIT_RULE, rows, {})

        assert line.validation_errors == ("Invalid unit code: 'XYZ'",)
        assert line.avail_cat == Avail.AVAILABLE
        assert not line.is_fulfilled

    @pytest.mark.asyncio
    async def test_warning_gives_medium_quality(self, runner) -> None:
        runner.processor.register_field_def(
            FieldDef(key="ZREGION", category=FieldCategory.DOMAIN, whitelist_source="ZREGION")
        )
        rule = Rule(entity_set_name="Z_I_Materials", field_name="ZREGION")

        line = await runner.evaluate_rule(rule, [{"ZREGION": "north"}], {})

        assert line.validation_status == report.ValidationStatus.WARNING
        assert line.data_quality == Quality.MEDIUM

    @pytest.mark.asyncio
    async def test_no_rows_is_missing(self, runner) -> None:
        line = await runner.evaluate_rule(DIVISION_RULE, [], {})

        assert line.avail_cat == Avail.MISSING
        assert line.gap_desc == report.GAP_MISSING_VALUES

    @pytest.mark.asyncio
    async def test_field_without_definition_not_validated(self, runner) -> None:
        line = await runner.evaluate_rule(UNVALIDATED_RULE, [{"Material": "M1"}], {})

        assert line.validation_status == report.ValidationStatus.NOT_VALIDATED
        assert line.data_quality == Quality.HIGH

    @pytest.mark.asyncio
    async def test_activity_attached(self, runner) -> None:
        activity = {"M1": activity_mod.ActivityRecord(activity_mod.ActivityStatus.ACTIVE, "2024-05-01", 2)}

        line = await runner.evaluate_rule(DIVISION_RULE, [{"Material": "M1", "Division": "01"}], activity)

        assert line.activity_status == "ACTIVE"
        assert line.last_transaction_date == "2024-05-01"
        assert line.transaction_count == 2


class TestCheckRule:
    @pytest.mark.asyncio
    async def test_entity_set_not_found(self, runner) -> None:
        line = await runner.check_rule(MISSING_SET_RULE, {})

        assert line.avail_cat == Avail.MISSING
        assert line.data_quality == Quality.UNKNOWN
        assert line.gap_desc == report.GAP_NOT_FOUND
        assert line.recommendation == report.RECOMMEND_CHECK_SOURCE

    @pytest.mark.asyncio
    async def test_read_error_drops_rule(self, processor, material_tables) -> None:
        source = FailingSource(tables=material_tables, failing="Z_I_Materials")
        runner = _build(processor, source)

        assert await runner.check_rule(DIVISION_RULE, {}) is None


class TestBom:
    def test_allocate_first_seen_order(self, runner) -> None:
        edges = [
            {"BomNumber": "B1", "ParentMaterial": "P1", "ComponentMaterial": "C1"},
            {"BomNumber": "B2", "ParentMaterial": "P2", "ComponentMaterial": "C2"},
            {"BomNumber": "B1", "ParentMaterial": "P1", "ComponentMaterial": "C3"},
        ]

        slots = runner.allocate_bom_nodes(edges)

        assert [(s.bom_number, s.node_id) for s in slots] == [("B1", 1), ("B2", 3)]
        assert [node_id for node_id, _ in slots[0].children] == [2, 5]
        assert [node_id for node_id, _ in slots[1].children] == [4]

    def test_fold_children_downgrades_parent(self) -> None:
        parent = report.BomNode(node_id=1, parent_node_id=None, parent_matnr="P1")
        children = [
            report.BomNode(node_id=2, parent_node_id=1, parent_matnr="C1"),
            report.BomNode(node_id=3, parent_node_id=1, parent_matnr="C2", data_quality=Quality.MEDIUM),
        ]

        folded = orchestrator.ComplianceOrchestrator.fold_children(parent, children)

        assert folded.avail_cat == Avail.MISSING
        assert folded.data_quality == Quality.HIGH
        assert folded.gap_desc == report.GAP_CHILDREN
        assert folded.recommendation == report.RECOMMEND_MATERIAL

    def test_fold_children_gap_not_duplicated(self) -> None:
        parent = report.BomNode(
            node_id=1,
            parent_node_id=None,
            parent_matnr="P1",
            gap_desc=report.GAP_CHILDREN,
            recommendation="Keep me",
        )
        child = report.BomNode(node_id=2, parent_node_id=1, parent_matnr="C1", avail_cat=Avail.MISSING)

        folded = orchestrator.ComplianceOrchestrator.fold_children(parent, [child])

        assert folded.gap_desc == report.GAP_CHILDREN
        assert folded.recommendation == "Keep me"

    def test_fold_children_complete(self) -> None:
        parent = report.BomNode(node_id=1, parent_node_id=None, parent_matnr="P1")
        child = report.BomNode(node_id=2, parent_node_id=1, parent_matnr="C1")

        assert orchestrator.ComplianceOrchestrator.fold_children(parent, [child]) is parent

    @pytest.mark.asyncio
    async def test_assess_material_missing_fields(self, runner) -> None:
        materials = {"M3": {"Material": "M3", "BaseUnitOfMeasure": "", "Division": "03"}}

        assessment = await runner.assess_material("M3", "ParentMaterial", materials, ["BaseUnitOfMeasure", "Division"])

        assert assessment.avail_cat == Avail.MISSING
        assert assessment.gap_desc == "ParentMaterial missing required fields"

    @pytest.mark.asyncio
    async def test_assess_material_invalid_values(self, runner) -> None:
        materials = {"M2": {"Material": "M2", "BaseUnitOfMeasure": "XYZ"}}

        assessment = await runner.assess_material("M2", "ComponentMaterial", materials, ["BaseUnitOfMeasure"])

        assert assessment.gap_desc == "ComponentMaterial has invalid field values"
        assert assessment.data_quality == Quality.LOW

    @pytest.mark.asyncio
    async def test_evaluate_bom(self, runner) -> None:
        _, activity = await runner.preload()

        nodes = await runner.evaluate_bom([UNIT_RULE, DIVISION_RULE], activity.value)

        parent, c1, c9 = nodes
        assert parent.is_root
        assert parent.node_id == 1
        assert parent.parent_matnr == "M1"
        assert parent.plant == "1000"
        assert parent.bom_number == "B1"
        assert parent.avail_cat == Avail.MISSING
        assert parent.gap_desc == report.GAP_CHILDREN
        assert parent.activity_status == "ACTIVE"

        assert (c1.node_id, c1.parent_node_id, c1.parent_matnr) == (2, 1, "C1")
        assert c1.avail_cat == Avail.AVAILABLE
        assert c1.data_quality == Quality.HIGH
        assert c1.item_number == ""

        assert c9.parent_matnr == "C9"
        assert c9.gap_desc == "ComponentMaterial not found in master data"

    @pytest.mark.asyncio
    async def test_composition_scoped_to_active_parents(self, runner) -> None:
        activity = {"M2": activity_mod.ActivityRecord(activity_mod.ActivityStatus.INACTIVE, "2020-01-01", 1)}

        assert await runner.evaluate_bom([DIVISION_RULE], activity) == []

    @pytest.mark.asyncio
    async def test_composition_read_error_skips_bom(self, processor, material_tables) -> None:
        source = FailingSource(tables=material_tables, failing="MaterialComposition")
        runner = _build(processor, source)

        assert await runner.evaluate_bom([DIVISION_RULE], {}) == []


class TestRun:
    @pytest.mark.asyncio
    async def test_full_run(self, runner, memory_sink) -> None:
        rules = [UNIT_RULE, DIVISION_RULE, MISSING_SET_RULE, UNVALIDATED_RULE]

        result = await runner.run(rules, "EUDR")

        built = result.report
        assert [line.object_name for line in built.results] == [
            "BaseUnitOfMeasure",
            "Division",
            "Anything",
            "Material",
        ]
        assert len(built.bom_results) == 3
        # 3 fulfilled (Division, Material, component C1) out of 7
        assert built.degree_of_fulfillment == 43
        assert built.summary == "7 checks executed, 1 with errors, 0 with warnings"

        payload = memory_sink.reports[result.report_id]
        assert payload["regulation_ref"] == "EUDR"
        assert payload["run_timestamp"] == NOW.isoformat()
        assert payload["degree_of_fulfillment"] == 43
        assert "validation_status" not in payload["results"][0]
        assert [s.name for s in result.stages] == ["whitelists", "activity"]

    @pytest.mark.asyncio
    async def test_dropped_rule_not_in_report(self, processor, material_tables) -> None:
        source = FailingSource(tables=material_tables, failing="Z_I_Broken")
        runner = _build(processor, source)
        broken = Rule(entity_set_name="Z_I_Broken", field_name="X")

        result = await runner.run([broken, DIVISION_RULE], "EUDR")

        assert [line.object_name for line in result.report.results] == ["Division"]

    @pytest.mark.asyncio
    async def test_empty_run_scores_zero(self, processor) -> None:
        runner = _build(processor, sources.InMemoryRecordSource())

        result = await runner.run([], "EUDR")

        assert result.report.degree_of_fulfillment == 0
        assert result.report.summary == "0 checks executed, 0 with errors, 0 with warnings"

    @pytest.mark.asyncio
    async def test_sink_failure(self, processor, memory_source) -> None:
        runner = _build(processor, memory_source, BrokenSink())

        with pytest.raises(errors.ReportSubmissionError) as exc_info:
            await runner.run([DIVISION_RULE], "EUDR")

        assert exc_info.value.cause == "sink offline"

    @pytest.mark.asyncio
    async def test_malformed_snapshot_still_reports(self, processor, tmp_path) -> None:
        snapshot = tmp_path / "snapshot.json"
        snapshot.write_text(json.dumps({"Z_I_Materials": "oops"}))
        sink = sources.InMemoryReportSink()
        runner = _build(processor, sources.JsonFileRecordSource(path=str(snapshot)), sink)

        result = await runner.run([DIVISION_RULE], "EUDR")

        assert result.report.results == []
        assert result.report.bom_results == []
        assert result.report_id in sink.reports

    def test_default_classifier_uses_injected_clock(self, processor, memory_source) -> None:
        runner = orchestrator.ComplianceOrchestrator(
            processor=processor,
            source=memory_source,
            sink=sources.InMemoryReportSink(),
            clock=lambda: NOW,
        )

        assert runner.classifier.cutoff(12) == NOW.replace(year=2023)


class TestBuildOrchestrator:
    def test_wires_settings(self, material_tables) -> None:
        readiness_settings = settings.ReadinessSettings(
            source=sources.InMemoryRecordSource(tables=material_tables),
            whitelists={"ZREGION": ["north", "south"]},
            fields=[FieldDef(key="ZREGION", category=FieldCategory.DOMAIN, whitelist_source="ZREGION")],
            dates=settings.DateSettings(slash_order="mdy"),
        )

        runner = orchestrator.build_orchestrator(readiness_settings)

        assert runner.processor.slash_order == "mdy"
        assert runner.processor.get_field_def("ZREGION") is not None
        assert runner.processor.cache.get("ZREGION") == frozenset({"NORTH", "SOUTH"})
        assert runner.source is readiness_settings.source

    @pytest.mark.asyncio
    async def test_custom_whitelist_used(self) -> None:
        readiness_settings = settings.ReadinessSettings(
            whitelists={"ZREGION": ["north"]},
            fields=[FieldDef(key="ZREGION", category=FieldCategory.DOMAIN, whitelist_source="ZREGION")],
        )
        runner = orchestrator.build_orchestrator(readiness_settings)

        assert (await runner.processor.validate_value("ZREGION", "North")).ok
        assert not (await runner.processor.validate_value("ZREGION", "east")).ok
