"""Report data model: result lines, BOM nodes and the report payload."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class AvailabilityCategory(str, Enum):
    AVAILABLE = "AVAILABLE"
    PARTIAL = "PARTIAL"
    MISSING = "MISSING"


class DataQuality(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    UNKNOWN = "UNKNOWN"  # Entity set not found


class ValidationStatus(str, Enum):
    """Internal outcome of field validation for a line. Not sent to the sink."""

    VALID = "VALID"
    WARNING = "WARNING"
    INVALID = "INVALID"
    NOT_VALIDATED = "NOT_VALIDATED"  # No FieldDef for the field


BOM_CATEGORY = "BOM"
BOM_DATA_SOURCE = "MaterialComposition"
REPORT_STATUS_COMPLETED = "COMPLETED"

GAP_MISSING_VALUES = "Missing values detected"
GAP_NOT_FOUND = "Entity or data not found (404)"
GAP_CHILDREN = "Child components have missing/invalid data"
RECOMMEND_MAINTAIN = "Maintain missing values"
RECOMMEND_CHECK_SOURCE = "Check CDS view or data availability"
RECOMMEND_MATERIAL = "Ensure material exists with all required fields filled"


@dataclass(frozen=True)
class CheckResultLine:
    """One general row of the report: a single rule's outcome."""

    category: str
    object_id: str  # Entity set
    object_name: str  # Field
    avail_cat: AvailabilityCategory
    data_quality: DataQuality
    gap_desc: str = ""
    recommendation: str = ""
    data_source: str = ""
    activity_status: str = "DORMANT"
    last_transaction_date: str | None = None
    transaction_count: int = 0
    # Internal only
    validation_status: ValidationStatus = ValidationStatus.NOT_VALIDATED
    validation_errors: tuple[str, ...] = ()

    @property
    def is_fulfilled(self) -> bool:
        return (
            self.avail_cat == AvailabilityCategory.AVAILABLE
            and self.validation_status != ValidationStatus.INVALID
        )

    def to_payload(self) -> dict[str, Any]:
        """Serialize without the internal validation fields."""
        return {
            "category": self.category,
            "object_id": self.object_id,
            "object_name": self.object_name,
            "avail_cat": self.avail_cat.value,
            "data_quality": self.data_quality.value,
            "gap_desc": self.gap_desc,
            "recommendation": self.recommendation,
            "data_source": self.data_source,
            "activity_status": self.activity_status,
            "last_transaction_date": self.last_transaction_date,
            "transaction_count": self.transaction_count,
        }


@dataclass(frozen=True)
class BomNode:
    """One node of a two-level BOM tree (header material or component)."""

    node_id: int
    parent_node_id: int | None
    parent_matnr: str  # Material of this node
    component_matnr: str = ""
    plant: str = ""
    bom_usage: str = ""
    alt_bom: str = ""
    bom_number: str = ""
    item_number: str = ""
    avail_cat: AvailabilityCategory = AvailabilityCategory.AVAILABLE
    data_quality: DataQuality = DataQuality.HIGH
    gap_desc: str = ""
    recommendation: str = ""
    data_source: str = BOM_DATA_SOURCE
    activity_status: str = "DORMANT"
    last_transaction_date: str | None = None
    transaction_count: int = 0

    @property
    def is_root(self) -> bool:
        return self.parent_node_id is None

    @property
    def is_fulfilled(self) -> bool:
        return self.avail_cat == AvailabilityCategory.AVAILABLE

    def to_payload(self) -> dict[str, Any]:
        return {
            "node_id": self.node_id,
            "parent_node_id": self.parent_node_id,
            "parent_matnr": self.parent_matnr,
            "component_matnr": self.component_matnr,
            "plant": self.plant,
            "bom_usage": self.bom_usage,
            "alt_bom": self.alt_bom,
            "bom_number": self.bom_number,
            "item_number": self.item_number,
            "avail_cat": self.avail_cat.value,
            "data_quality": self.data_quality.value,
            "gap_desc": self.gap_desc,
            "recommendation": self.recommendation,
            "data_source": self.data_source,
            "activity_status": self.activity_status,
            "last_transaction_date": self.last_transaction_date,
            "transaction_count": self.transaction_count,
        }


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def degree_of_fulfillment(results: list[CheckResultLine], bom_nodes: list[BomNode]) -> int:
    """Percentage of results that are available and not invalid.

    General lines and BOM nodes both count. No results gives 0.
    """
    total = len(results) + len(bom_nodes)
    if total == 0:
        return 0
    fulfilled = sum(1 for r in results if r.is_fulfilled) + sum(1 for n in bom_nodes if n.is_fulfilled)
    return round_half_up(100 * fulfilled / total)


def summarize(results: list[CheckResultLine], bom_nodes: list[BomNode]) -> str:
    """Short summary: check count plus lines with errors and with warnings."""
    total = len(results) + len(bom_nodes)
    with_errors = sum(1 for r in results if r.validation_status == ValidationStatus.INVALID)
    with_warnings = sum(1 for r in results if r.validation_status == ValidationStatus.WARNING)
    return f"{total} checks executed, {with_errors} with errors, {with_warnings} with warnings"


@dataclass(frozen=True)
class Report:
    """Complete outcome of one orchestrator run."""

    regulation_ref: str
    run_timestamp: str  # ISO-8601
    results: list[CheckResultLine] = field(default_factory=list)
    bom_results: list[BomNode] = field(default_factory=list)
    status: str = REPORT_STATUS_COMPLETED

    @property
    def degree_of_fulfillment(self) -> int:
        return degree_of_fulfillment(self.results, self.bom_results)

    @property
    def summary(self) -> str:
        return summarize(self.results, self.bom_results)

    def to_payload(self) -> dict[str, Any]:
        """Payload handed to the report sink."""
        return {
            "regulation_ref": self.regulation_ref,
            "run_timestamp": self.run_timestamp,
            "degree_of_fulfillment": self.degree_of_fulfillment,
            "summary": self.summary,
            "status": self.status,
            "results": [r.to_payload() for r in self.results],
            "bom_results": [n.to_payload() for n in self.bom_results],
        }
