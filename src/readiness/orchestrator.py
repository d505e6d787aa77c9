"""Compliance orchestrator: runs rules, evaluates BOMs, submits the report.

One run goes through four stages:

1. Preload: warm the whitelist cache and load activity classification,
   concurrently. Failures degrade the run but never stop it.
2. Rule checks: one result line per configured rule, concurrently.
3. BOM evaluation: parent and component nodes per BOM number, with
   component quality folded into the parent.
4. Report assembly and submission to the sink. A sink failure is the
   only error that aborts the run.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import itertools
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Generic, Sequence, TypeVar

import readiness.activity as activity_mod
import readiness.cache as cache_mod
import readiness.errors as errors
import readiness.loaders as loaders
import readiness.processor as processor_mod
import readiness.report as report
import readiness.sources.base as sources_base
from readiness.models import FieldDef, FieldResult, Rule
from readiness.settings import ActivitySettings, CheckSettings, ReadinessSettings
from readiness.validators import is_empty

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Composition edge fields copied onto the BOM header node
_EDGE_PLANT = "Plant"
_EDGE_BOM_USAGE = "BomUsage"
_EDGE_ALT_BOM = "AltBom"
_EDGE_ITEM_NUMBER = "ItemNumber"


class StageStatus(str, Enum):
    SUCCESS = "success"
    DEGRADED = "degraded"  # Partial data, run continues
    FAILED = "failed"  # No data, run continues with defaults


@dataclass(frozen=True)
class StageOutcome(Generic[T]):
    """Explicit result of a preload stage."""

    name: str
    status: StageStatus
    value: T
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class MaterialAssessment:
    """Availability and quality of one material for BOM evaluation."""

    avail_cat: report.AvailabilityCategory
    data_quality: report.DataQuality
    gap_desc: str = ""
    recommendation: str = ""

    @property
    def is_complete(self) -> bool:
        return (
            self.avail_cat == report.AvailabilityCategory.AVAILABLE
            and self.data_quality == report.DataQuality.HIGH
        )


@dataclass(frozen=True)
class _BomSlot:
    """Node ids and edges allocated for one BOM number."""

    bom_number: str
    parent_id: str
    node_id: int
    header_edge: sources_base.Row
    children: list[tuple[int, sources_base.Row]] = field(default_factory=list)


@dataclass(frozen=True)
class RunResult:
    report_id: str
    report: report.Report
    stages: tuple[StageOutcome, ...] = ()


def _utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _distinct(messages: list[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(messages))


def _append_gap(gap_desc: str, message: str) -> str:
    parts = [p for p in gap_desc.split("; ") if p]
    if message not in parts:
        parts.append(message)
    return "; ".join(parts)


class ComplianceOrchestrator:
    """Drives one compliance readiness run.

    Args:
        processor: Field processor used for value validation.
        source: Record source for rules, activity and BOM data.
        sink: Report sink receiving the finished report.
        classifier: Activity classifier. Defaults to one built from
            ``activity_settings``.
        check_settings: Entity set names, BOM limits and read timeout.
        activity_settings: Lookback window and activity entity sets.
        clock: Returns the current aware datetime. Injectable for tests.
    """

    def __init__(
        self,
        processor: processor_mod.FieldProcessor,
        source: sources_base.BaseRecordSource,
        sink: sources_base.BaseReportSink,
        classifier: activity_mod.ActivityClassifier | None = None,
        check_settings: CheckSettings | None = None,
        activity_settings: ActivitySettings | None = None,
        clock: Callable[[], dt.datetime] = _utc_now,
    ) -> None:
        self.processor = processor
        self.source = source
        self.sink = sink
        self.check = check_settings or CheckSettings()
        self.activity_settings = activity_settings or ActivitySettings()
        self.classifier = classifier or activity_mod.ActivityClassifier(
            tracked_entity_set=self.activity_settings.tracked_entity_set,
            transaction_entity_set=self.activity_settings.transaction_entity_set,
            entity_field=self.activity_settings.entity_field,
            date_field=self.activity_settings.date_field,
            read_timeout=self.check.read_timeout_seconds,
            clock=clock,
        )
        self._clock = clock

    async def _read(self, entity_set: str, **options: Any) -> list[sources_base.Row]:
        return await sources_base.read_with_timeout(
            self.source, entity_set, self.check.read_timeout_seconds, **options
        )

    # ------------------------------------------------------------------
    # Stage 1: preload
    # ------------------------------------------------------------------

    async def _preload_whitelists(self) -> StageOutcome[dict[str, Any]]:
        results = await self.processor.preload_whitelists(return_exceptions=True)
        failures = {key: r for key, r in results.items() if isinstance(r, BaseException)}
        for key, exc in failures.items():
            logger.warning("Whitelist %s could not be preloaded: %s", key, exc)

        if not failures:
            status = StageStatus.SUCCESS
        elif len(failures) < len(results):
            status = StageStatus.DEGRADED
        else:
            status = StageStatus.FAILED
        return StageOutcome(
            name="whitelists",
            status=status,
            value=results,
            errors=tuple(f"{key}: {exc}" for key, exc in failures.items()),
        )

    async def _preload_activity(self) -> StageOutcome[dict[str, activity_mod.ActivityRecord]]:
        try:
            activity = await self.classifier.fetch_activity_status(
                self.source, self.activity_settings.lookback_months
            )
        except errors.SourceError as e:
            logger.warning("Activity data unavailable, treating all materials as dormant: %s", e.cause)
            return StageOutcome(name="activity", status=StageStatus.FAILED, value={}, errors=(e.cause,))
        return StageOutcome(name="activity", status=StageStatus.SUCCESS, value=activity)

    async def preload(self) -> tuple[StageOutcome, StageOutcome]:
        """Warm whitelists and load activity concurrently."""
        whitelists, activity = await asyncio.gather(self._preload_whitelists(), self._preload_activity())
        return whitelists, activity

    # ------------------------------------------------------------------
    # Stage 2: rule checks
    # ------------------------------------------------------------------

    async def _validate_values(self, field_def: FieldDef, values: list[Any]) -> list[FieldResult]:
        return list(
            await asyncio.gather(
                *(self.processor.validate_field({field_def.key: v}, field_def) for v in values)
            )
        )

    async def evaluate_rule(
        self,
        rule: Rule,
        rows: list[sources_base.Row],
        activity: activity_mod.ActivityMap,
    ) -> report.CheckResultLine:
        """Build the result line for a rule from the rows it read."""
        values = [row.get(rule.field_name) for row in rows]
        filled = [v for v in values if not is_empty(v)]
        empty_count = len(values) - len(filled)

        if not filled:
            avail = report.AvailabilityCategory.MISSING
        elif empty_count:
            avail = report.AvailabilityCategory.PARTIAL
        else:
            avail = report.AvailabilityCategory.AVAILABLE

        gaps: list[str] = []
        recommendations: list[str] = []
        if empty_count or not values:
            gaps.append(report.GAP_MISSING_VALUES)
            recommendations.append(report.RECOMMEND_MAINTAIN)

        field_def = self.processor.get_field_def(rule.field_name)
        if field_def is None:
            status = report.ValidationStatus.NOT_VALIDATED
            messages: tuple[str, ...] = ()
            quality = report.DataQuality.LOW if gaps else report.DataQuality.HIGH
        else:
            results = await self._validate_values(field_def, filled)
            error_messages = _distinct([i.message for r in results for i in r.errors])
            warning_messages = _distinct([i.message for r in results for i in r.warnings])
            messages = error_messages + warning_messages

            if error_messages:
                status = report.ValidationStatus.INVALID
                gaps.append(f"Invalid values: {'; '.join(error_messages)}")
                recommendations.append("Correct invalid values")
            elif warning_messages:
                status = report.ValidationStatus.WARNING
            else:
                status = report.ValidationStatus.VALID

            if gaps:
                quality = report.DataQuality.LOW
            elif warning_messages:
                quality = report.DataQuality.MEDIUM
            else:
                quality = report.DataQuality.HIGH

        summary = activity_mod.summarize_activity(
            (row.get(self.check.reference_field) for row in rows), activity
        )
        return report.CheckResultLine(
            category=rule.category,
            object_id=rule.entity_set_name,
            object_name=rule.field_name,
            avail_cat=avail,
            data_quality=quality,
            gap_desc="; ".join(gaps),
            recommendation="; ".join(recommendations),
            data_source=rule.entity_set_name,
            activity_status=summary.status.value,
            last_transaction_date=summary.last_transaction_date,
            transaction_count=summary.transaction_count,
            validation_status=status,
            validation_errors=messages,
        )

    async def check_rule(
        self, rule: Rule, activity: activity_mod.ActivityMap
    ) -> report.CheckResultLine | None:
        """Run one rule. Returns None when the rule is dropped after a read error."""
        select = list(dict.fromkeys([rule.field_name, self.check.reference_field]))
        try:
            rows = await self._read(rule.entity_set_name, select=select)
        except errors.EntityNotFoundError:
            logger.warning("Entity set %s not found for rule %s", rule.entity_set_name, rule.field_name)
            return report.CheckResultLine(
                category=rule.category,
                object_id=rule.entity_set_name,
                object_name=rule.field_name,
                avail_cat=report.AvailabilityCategory.MISSING,
                data_quality=report.DataQuality.UNKNOWN,
                gap_desc=report.GAP_NOT_FOUND,
                recommendation=report.RECOMMEND_CHECK_SOURCE,
                data_source=rule.entity_set_name,
            )
        except errors.SourceError as e:
            logger.error(
                "Read error for %s.%s, rule skipped: %s", rule.entity_set_name, rule.field_name, e.cause
            )
            return None
        return await self.evaluate_rule(rule, rows, activity)

    # ------------------------------------------------------------------
    # Stage 3: BOM evaluation
    # ------------------------------------------------------------------

    def allocate_bom_nodes(self, edges: list[sources_base.Row]) -> list[_BomSlot]:
        """Assign node ids in a single pass, in first-seen order.

        Each BOM number gets one header id the first time it is seen and
        every edge gets one component id. Ids start at 1.
        """
        counter = itertools.count(1)
        slots: dict[str, _BomSlot] = {}
        for edge in edges:
            bom_number = str(edge.get(self.check.bom_number_field) or "")
            slot = slots.get(bom_number)
            if slot is None:
                slot = _BomSlot(
                    bom_number=bom_number,
                    parent_id=edge.get(self.check.parent_field) or "",
                    node_id=next(counter),
                    header_edge=edge,
                )
                slots[bom_number] = slot
            slot.children.append((next(counter), edge))
        return list(slots.values())

    async def assess_material(
        self,
        material_id: str,
        role: str,
        materials: dict[str, sources_base.Row],
        fields: list[str],
    ) -> MaterialAssessment:
        """Assess one material against the material rules' fields."""
        row = materials.get(material_id) if material_id else None
        if row is None:
            return MaterialAssessment(
                avail_cat=report.AvailabilityCategory.MISSING,
                data_quality=report.DataQuality.LOW,
                gap_desc=f"{role} not found in master data",
                recommendation=report.RECOMMEND_MATERIAL,
            )

        record = {name: row.get(name) for name in fields}
        missing = [name for name, value in record.items() if is_empty(value)]
        validated = [name for name in fields if name not in missing and self.processor.get_field_def(name)]
        results = await self.processor.process_record(record, validated) if validated else []
        invalid = any(not r.ok for r in results)
        warned = any(r.has_warnings for r in results)

        gaps = []
        if missing:
            gaps.append(f"{role} missing required fields")
        if invalid:
            gaps.append(f"{role} has invalid field values")

        if gaps:
            return MaterialAssessment(
                avail_cat=report.AvailabilityCategory.MISSING,
                data_quality=report.DataQuality.LOW,
                gap_desc="; ".join(gaps),
                recommendation=report.RECOMMEND_MATERIAL,
            )
        return MaterialAssessment(
            avail_cat=report.AvailabilityCategory.AVAILABLE,
            data_quality=report.DataQuality.MEDIUM if warned else report.DataQuality.HIGH,
        )

    def _node(
        self,
        node_id: int,
        parent_node_id: int | None,
        material_id: str,
        assessment: MaterialAssessment,
        activity: activity_mod.ActivityMap,
        edge: sources_base.Row | None = None,
    ) -> report.BomNode:
        record = activity_mod.get_activity(activity, material_id)
        edge = edge or {}
        return report.BomNode(
            node_id=node_id,
            parent_node_id=parent_node_id,
            parent_matnr=material_id,
            component_matnr=edge.get(self.check.component_field) or "",
            plant=edge.get(_EDGE_PLANT) or "",
            bom_usage=edge.get(_EDGE_BOM_USAGE) or "",
            alt_bom=edge.get(_EDGE_ALT_BOM) or "",
            bom_number=str(edge.get(self.check.bom_number_field) or ""),
            item_number=edge.get(_EDGE_ITEM_NUMBER) or "",
            avail_cat=assessment.avail_cat,
            data_quality=assessment.data_quality,
            gap_desc=assessment.gap_desc,
            recommendation=assessment.recommendation,
            activity_status=record.status.value,
            last_transaction_date=record.last_transaction_date,
            transaction_count=record.transaction_count,
        )

    @staticmethod
    def fold_children(parent: report.BomNode, children: list[report.BomNode]) -> report.BomNode:
        """Downgrade the parent when any child is not complete and HIGH quality."""
        incomplete = any(
            c.avail_cat != report.AvailabilityCategory.AVAILABLE or c.data_quality != report.DataQuality.HIGH
            for c in children
        )
        if not incomplete:
            return parent
        return replace(
            parent,
            avail_cat=report.AvailabilityCategory.MISSING,
            gap_desc=_append_gap(parent.gap_desc, report.GAP_CHILDREN),
            recommendation=parent.recommendation or report.RECOMMEND_MATERIAL,
        )

    async def _evaluate_slot(
        self,
        slot: _BomSlot,
        materials: dict[str, sources_base.Row],
        fields: list[str],
        activity: activity_mod.ActivityMap,
    ) -> list[report.BomNode]:
        parent_assessment = await self.assess_material(slot.parent_id, "ParentMaterial", materials, fields)
        parent = self._node(slot.node_id, None, slot.parent_id, parent_assessment, activity, slot.header_edge)

        component_ids = [edge.get(self.check.component_field) or "" for _, edge in slot.children]
        assessments = await asyncio.gather(
            *(self.assess_material(cid, "ComponentMaterial", materials, fields) for cid in component_ids)
        )
        children = [
            self._node(node_id, slot.node_id, cid, assessment, activity)
            for (node_id, _), cid, assessment in zip(slot.children, component_ids, assessments)
        ]
        return [self.fold_children(parent, children), *children]

    async def evaluate_bom(
        self, rules: Sequence[Rule], activity: activity_mod.ActivityMap
    ) -> list[report.BomNode]:
        """Build the flattened BOM tree (header node followed by its components).

        A failed composition or material read drops the BOM section.
        """
        fields = list(
            dict.fromkeys(r.field_name for r in rules if r.entity_set_name == self.check.material_entity_set)
        )
        active_parents = [
            entity_id
            for entity_id, record in activity.items()
            if record.status != activity_mod.ActivityStatus.DORMANT
        ]
        row_filter = {self.check.parent_field: active_parents} if active_parents else None

        try:
            edges = await self._read(
                self.check.composition_entity_set, filter=row_filter, top=self.check.bom_top
            )
        except errors.SourceError as e:
            logger.error("Read error for %s, BOM evaluation skipped: %s", self.check.composition_entity_set, e.cause)
            return []

        slots = self.allocate_bom_nodes(edges)
        if not slots:
            return []

        material_ids = {slot.parent_id for slot in slots}
        material_ids.update(
            edge.get(self.check.component_field) for slot in slots for _, edge in slot.children
        )
        material_ids.discard(None)
        material_ids.discard("")
        ref = self.check.reference_field
        try:
            rows = await self._read(
                self.check.material_entity_set,
                select=list(dict.fromkeys([ref, *fields])),
                filter={ref: sorted(material_ids)},
            )
        except errors.EntityNotFoundError:
            logger.warning("Material entity set %s not found", self.check.material_entity_set)
            rows = []
        except errors.SourceError as e:
            logger.error("Read error for %s, BOM evaluation skipped: %s", self.check.material_entity_set, e.cause)
            return []
        materials = {row.get(ref): row for row in rows if row.get(ref)}

        per_slot = await asyncio.gather(
            *(self._evaluate_slot(slot, materials, fields, activity) for slot in slots)
        )
        return [node for nodes in per_slot for node in nodes]

    # ------------------------------------------------------------------
    # Stage 4: report
    # ------------------------------------------------------------------

    async def build_report(
        self, rules: Sequence[Rule], regulation: str
    ) -> tuple[report.Report, tuple[StageOutcome, ...]]:
        """Run every stage except submission."""
        stages = await self.preload()
        activity = stages[1].value

        lines, bom_nodes = await asyncio.gather(
            asyncio.gather(*(self.check_rule(rule, activity) for rule in rules)),
            self.evaluate_bom(rules, activity),
        )
        built = report.Report(
            regulation_ref=regulation,
            run_timestamp=self._clock().isoformat(),
            results=[line for line in lines if line is not None],
            bom_results=bom_nodes,
        )
        return built, stages

    async def run(self, rules: Sequence[Rule], regulation: str) -> RunResult:
        """Build the report and submit it to the sink.

        Raises:
            ReportSubmissionError: If the sink fails to store the report.
        """
        built, stages = await self.build_report(rules, regulation)
        payload = built.to_payload()
        try:
            report_id = await self.sink.create(payload)
        except Exception as e:
            logger.error("Failed to create report for %s: %s", regulation, e)
            raise errors.ReportSubmissionError(regulation, str(e)) from e

        logger.info(
            "Report %s created: %s, %d%% fulfilled",
            report_id,
            built.summary,
            built.degree_of_fulfillment,
        )
        return RunResult(report_id=report_id, report=built, stages=stages)


def build_orchestrator(settings: ReadinessSettings) -> ComplianceOrchestrator:
    """Wire cache, loader, processor and classifier from settings."""
    cache = cache_mod.WhitelistCache(
        default_ttl=settings.cache.default_ttl_seconds,
        load_timeout=settings.cache.load_timeout_seconds,
    )
    loader = loaders.WhitelistLoader(
        cache,
        settings.source,
        unit_entity_set=settings.lookups.unit_entity_set,
        unit_field=settings.lookups.unit_field,
        currency_entity_set=settings.lookups.currency_entity_set,
        currency_field=settings.lookups.currency_field,
    )
    processor = processor_mod.FieldProcessor(
        cache=cache,
        loader=loader,
        field_defs=settings.fields,
        slash_order=settings.dates.slash_order,
    )
    for key, values in settings.whitelists.items():
        processor.register_whitelist(key, loader.load_custom_whitelist(key, values))

    return ComplianceOrchestrator(
        processor=processor,
        source=settings.source,
        sink=settings.sink,
        check_settings=settings.check,
        activity_settings=settings.activity,
    )
