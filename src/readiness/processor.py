"""Field processor: registry of FieldDefs plus per-record validation.

Validation of a record runs in two passes. Pass 1 validates every
selected field independently and concurrently. Pass 2 re-derives the
result of each field with declared dependencies from the pass-1 results
of those dependencies.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

import readiness.cache as cache_mod
import readiness.errors as errors
import readiness.loaders as loaders
import readiness.validators as validators
from readiness.field_types import (
    STATIC_WHITELISTS,
    FieldCategory,
    SlashOrder,
    WhitelistSource,
)
from readiness.models import CharConstraints, FieldDef, FieldResult

logger = logging.getLogger(__name__)

_T006 = WhitelistSource.T006.value
_TCURC = WhitelistSource.TCURC.value

DEFAULT_FIELD_DEFS: tuple[FieldDef, ...] = (
    # SAP table field names
    FieldDef(key="MEINS", source_table="MARA", category=FieldCategory.UNIT, whitelist_source=_T006,
             description="Base unit of measure"),
    FieldDef(key="GEWEI", source_table="MARA", category=FieldCategory.UNIT, whitelist_source=_T006,
             description="Weight unit"),
    FieldDef(key="VOLEH", source_table="MARA", category=FieldCategory.UNIT, whitelist_source=_T006,
             description="Volume unit"),
    FieldDef(key="WAERS", source_table="VBAK", category=FieldCategory.CURRENCY, whitelist_source=_TCURC,
             description="Currency key"),
    FieldDef(key="MENGE", category=FieldCategory.QUAN, dependencies=("MEINS",), description="Order quantity"),
    FieldDef(key="NTGEW", source_table="MARA", category=FieldCategory.QUAN, dependencies=("GEWEI",),
             description="Net weight"),
    FieldDef(key="BRGEW", source_table="MARA", category=FieldCategory.QUAN, dependencies=("GEWEI",),
             description="Gross weight"),
    FieldDef(key="VOLUM", source_table="MARA", category=FieldCategory.QUAN, dependencies=("VOLEH",),
             description="Volume"),
    FieldDef(key="NETWR", source_table="VBAP", category=FieldCategory.CURR, dependencies=("WAERS",),
             description="Net value"),
    FieldDef(key="MWSBP", source_table="VBAP", category=FieldCategory.CURR, dependencies=("WAERS",),
             description="Tax amount"),
    FieldDef(key="ERDAT", category=FieldCategory.DATS, description="Creation date"),
    FieldDef(key="AEDAT", category=FieldCategory.DATS, description="Change date"),
    FieldDef(key="LFDAT", category=FieldCategory.DATS, description="Delivery date"),
    FieldDef(key="BESKZ", source_table="MARC", category=FieldCategory.DOMAIN,
             whitelist_source=WhitelistSource.STATIC.value, description="Procurement type"),
    FieldDef(key="LOEKZ", category=FieldCategory.BOOLEAN, description="Deletion indicator"),
    FieldDef(key="LVORM", category=FieldCategory.BOOLEAN, description="Deletion flag (material)"),
    FieldDef(key="TIMBER_CODES", category=FieldCategory.CODE_ARRAY,
             whitelist_source=WhitelistSource.EN13556.value, description="EN 13556 timber species codes"),
    # CDS view field names
    FieldDef(key="OrderUnit", category=FieldCategory.UNIT, whitelist_source=_T006,
             description="Order unit of measure"),
    FieldDef(key="WeightUnit", category=FieldCategory.UNIT, whitelist_source=_T006, description="Weight unit"),
    FieldDef(key="VolumeUnit", category=FieldCategory.UNIT, whitelist_source=_T006, description="Volume unit"),
    FieldDef(key="DeliveryDate", category=FieldCategory.DATS, description="Delivery date"),
    FieldDef(key="PurchaseOrderDate", category=FieldCategory.DATS, description="Purchase order date"),
    FieldDef(key="NetWeight", category=FieldCategory.QUAN, dependencies=("WeightUnit",),
             description="Net weight"),
    FieldDef(key="OrderQuantity", category=FieldCategory.QUAN, dependencies=("OrderUnit",),
             description="Order quantity"),
    FieldDef(key="Volume", category=FieldCategory.QUAN, dependencies=("VolumeUnit",), description="Volume"),
    FieldDef(key="NetOrderValue", category=FieldCategory.CURR, description="Net order value"),
    FieldDef(key="ScientificProducts", category=FieldCategory.CODE_ARRAY,
             whitelist_source=WhitelistSource.EN13556.value, description="Scientific product codes (EN 13556)"),
    FieldDef(key="MaterialType", category=FieldCategory.DOMAIN, whitelist_source=WhitelistSource.T134.value,
             description="Material type (T134)"),
    FieldDef(key="ProductHierarchy", category=FieldCategory.CHAR,
             char_constraints=CharConstraints(max_length=18, alphanumeric=True,
                                              field_name="Product hierarchy (T179)"),
             description="Product hierarchy (T179)"),
    FieldDef(key="BaseUnitOfMeasure", category=FieldCategory.UNIT, whitelist_source=_T006,
             description="Base unit of measure"),
    FieldDef(key="Division", category=FieldCategory.CHAR,
             char_constraints=CharConstraints(exact_length=2, field_name="Division (TSPA)"),
             description="Division (TSPA)"),
    FieldDef(key="HazardousMaterialWarning", category=FieldCategory.BOOLEAN,
             description="Hazardous material warning"),
    FieldDef(key="Materialstatus", category=FieldCategory.CHAR,
             char_constraints=CharConstraints(exact_length=2, field_name="Material status"),
             description="Material status (CHAR 2)"),
)


@dataclass(frozen=True)
class SummaryIssue:
    field: str
    message: str
    hint: str | None = None


@dataclass(frozen=True)
class ValidationSummary:
    """Aggregate counts over a list of FieldResults."""

    total: int
    valid: int
    invalid: int
    skipped: int
    errors: list[SummaryIssue] = field(default_factory=list)
    warnings: list[SummaryIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.invalid == 0


class FieldProcessor:
    """Validates and normalizes records using registered FieldDefs.

    Args:
        cache: Whitelist cache. A new one is created when omitted.
        loader: Whitelist loader. Created against ``cache`` when omitted.
        field_defs: Extra definitions, registered after the defaults so
            they override defaults with the same key.
        slash_order: Which slash date layout is accepted ("dmy" or "mdy").
        register_defaults: Register the built-in field definitions.

    Example:
        processor = FieldProcessor()
        result = await processor.validate_value("MEINS", "kg")
        assert result.ok and result.normalized_value == "KG"
    """

    def __init__(
        self,
        cache: cache_mod.WhitelistCache | None = None,
        loader: loaders.WhitelistLoader | None = None,
        field_defs: Iterable[FieldDef | dict] | None = None,
        slash_order: SlashOrder = "dmy",
        register_defaults: bool = True,
    ) -> None:
        if cache is None:
            cache = loader.cache if loader is not None else cache_mod.WhitelistCache()
        self._cache = cache
        self._loader = loader if loader is not None else loaders.WhitelistLoader(cache)
        self.slash_order = slash_order
        self._field_defs: dict[str, FieldDef] = {}
        self._custom_whitelists: dict[str, frozenset[str]] = {}

        if register_defaults:
            for field_def in DEFAULT_FIELD_DEFS:
                self.register_field_def(field_def)
        for field_def in field_defs or []:
            self.register_field_def(field_def)

    @property
    def cache(self) -> cache_mod.WhitelistCache:
        return self._cache

    @property
    def loader(self) -> loaders.WhitelistLoader:
        return self._loader

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register_field_def(self, field_def: FieldDef | dict) -> FieldDef:
        """Register a definition. The last registration for a key wins."""
        if not isinstance(field_def, FieldDef):
            field_def = FieldDef.model_validate(field_def)
        self._field_defs[field_def.key] = field_def
        return field_def

    def get_field_def(self, key: str) -> FieldDef | None:
        return self._field_defs.get(key)

    @property
    def field_defs(self) -> dict[str, FieldDef]:
        """Copy of the registry."""
        return dict(self._field_defs)

    def register_whitelist(self, key: str, values: Iterable[str]) -> frozenset[str]:
        """Register a custom whitelist that overrides any loader for ``key``."""
        data = frozenset(values)
        self._custom_whitelists[key] = data
        self._cache.set(key, data)
        return data

    async def preload_whitelists(
        self, return_exceptions: bool = False
    ) -> dict[str, frozenset[str] | BaseException]:
        return await self._loader.preload_all(return_exceptions=return_exceptions)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def _resolve_whitelist(self, field_def: FieldDef) -> frozenset[str] | None:
        """Custom override, then static constant, then cache-backed loader.

        A whitelist that cannot be loaded resolves to None, which makes the
        validator emit a "validation skipped" warning.
        """
        source = field_def.whitelist_source
        if not source:
            return None
        if source in self._custom_whitelists:
            return self._custom_whitelists[source]
        if source == WhitelistSource.STATIC.value:
            return STATIC_WHITELISTS.get(field_def.key)
        try:
            return await self._cache.get_or_load(source)
        except errors.WhitelistError as e:
            logger.warning("Whitelist %s unavailable for field %s: %s", source, field_def.key, e.cause)
            return None

    async def validate_field(self, record: dict[str, Any], field_def: FieldDef) -> FieldResult:
        """Validate ``record[field_def.key]`` without dependency checks."""
        whitelist = await self._resolve_whitelist(field_def)
        return validators.validate_with_definition(
            field_def,
            record.get(field_def.key),
            whitelist,
            slash_order=self.slash_order,
        )

    async def validate_value(self, key: str, value: Any) -> FieldResult:
        """Validate a single value for a registered field.

        Raises:
            UnknownFieldError: If no FieldDef is registered for ``key``.
        """
        field_def = self.get_field_def(key)
        if field_def is None:
            raise errors.UnknownFieldError(key, list(self._field_defs))
        return await self.validate_field({key: value}, field_def)

    def _select_fields(
        self, record: dict[str, Any], fields: Sequence[FieldDef | str] | None
    ) -> list[FieldDef]:
        if not fields:
            return [self._field_defs[key] for key in record if key in self._field_defs]

        selected = []
        for item in fields:
            if isinstance(item, FieldDef):
                selected.append(item)
            elif item in self._field_defs:
                selected.append(self._field_defs[item])
        return selected

    async def process_record(
        self,
        record: dict[str, Any],
        fields: Sequence[FieldDef | str] | None = None,
    ) -> list[FieldResult]:
        """Validate a record and resolve cross-field dependencies.

        Args:
            record: Field key -> raw value.
            fields: FieldDefs or keys to check. Unknown keys are skipped.
                When omitted, every record key with a registered FieldDef
                is checked.

        Returns:
            One FieldResult per selected field, in selection order.
        """
        selected = self._select_fields(record, fields)
        selected_keys = {fd.key for fd in selected}

        # Dependencies present in the record are validated even when they
        # are not part of the selection.
        extra: dict[str, FieldDef] = {}
        for field_def in selected:
            for dep in field_def.dependencies:
                if dep in selected_keys or dep in extra or dep not in record:
                    continue
                dep_def = self._field_defs.get(dep)
                if dep_def is not None:
                    extra[dep] = dep_def

        to_validate = selected + list(extra.values())
        first_pass = await asyncio.gather(*(self.validate_field(record, fd) for fd in to_validate))
        by_key = {fd.key: result for fd, result in zip(to_validate, first_pass)}

        results = []
        for field_def, result in zip(selected, first_pass):
            for dep in field_def.dependencies:
                result = validators.check_dependency(
                    field_def.key, result, dep, by_key.get(dep), field_def.mandatory
                )
            results.append(result)
        return results

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    @staticmethod
    def create_normalized_record(
        results: Iterable[FieldResult], original: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Copy of ``original`` with every non-null normalized value applied."""
        normalized = dict(original or {})
        for result in results:
            if result.normalized_value is not None:
                normalized[result.key] = result.normalized_value
        return normalized

    @staticmethod
    def get_summary(results: Iterable[FieldResult]) -> ValidationSummary:
        total = valid = invalid = skipped = 0
        error_list: list[SummaryIssue] = []
        warning_list: list[SummaryIssue] = []

        for result in results:
            total += 1
            if not result.ok:
                invalid += 1
            elif result.is_skipped:
                skipped += 1
            else:
                valid += 1
            error_list.extend(SummaryIssue(result.key, i.message, i.hint) for i in result.errors)
            warning_list.extend(SummaryIssue(result.key, i.message, i.hint) for i in result.warnings)

        return ValidationSummary(
            total=total,
            valid=valid,
            invalid=invalid,
            skipped=skipped,
            errors=error_list,
            warnings=warning_list,
        )
