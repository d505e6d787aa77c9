"""Configuration loading and validation for readiness runs.

Configuration is loaded from readiness.yaml and validated using Pydantic.
Every section has defaults, so the library is usable without a file.
"""

from __future__ import annotations

from functools import cache
from pathlib import Path
from typing import Literal

import omegaconf as oc
import pydantic as pdt
import pydantic_settings as pdts

import readiness.errors as errors
import readiness.sources as sources
from readiness.cache import DEFAULT_TTL_SECONDS
from readiness.models import FieldDef, Rule


class Settings(pdts.BaseSettings):
    """Base settings class with strict validation."""

    model_config = pdts.SettingsConfigDict(
        strict=True,
        frozen=True,
        extra="forbid",
        env_prefix="READINESS_",
    )


class CacheSettings(Settings):
    """Whitelist cache behaviour."""

    default_ttl_seconds: float = pdt.Field(default=DEFAULT_TTL_SECONDS, gt=0)
    load_timeout_seconds: float | None = pdt.Field(default=None, gt=0)


class LookupSettings(Settings):
    """Entity sets backing the unit and currency whitelists.

    When an entity set is not configured, built-in fallback values are used.
    """

    unit_entity_set: str | None = None
    unit_field: str = "UnitOfMeasure"
    currency_entity_set: str | None = None
    currency_field: str = "Currency"


class ActivitySettings(Settings):
    """Transaction-history activity classification."""

    lookback_months: int = pdt.Field(default=12, ge=1)
    tracked_entity_set: str = "Z_I_Materials"
    transaction_entity_set: str = "TAHistRelevantMats"
    entity_field: str = "Material"
    date_field: str = "PostingDate"


class CheckSettings(Settings):
    """Rule checks and BOM evaluation."""

    material_entity_set: str = "Z_I_Materials"
    composition_entity_set: str = "MaterialComposition"
    reference_field: str = "Material"
    parent_field: str = "ParentMaterial"
    component_field: str = "ComponentMaterial"
    bom_number_field: str = "BomNumber"
    bom_top: int = pdt.Field(default=10000, ge=1)
    read_timeout_seconds: float | None = pdt.Field(default=None, gt=0)


class DateSettings(Settings):
    slash_order: Literal["dmy", "mdy"] = "dmy"


class ReadinessSettings(Settings):
    """Root configuration loaded from readiness.yaml.

    Example readiness.yaml:
        name: eudr-readiness
        regulation: EUDR
        source:
          kind: json_file
          path: data/snapshot.json
        sink:
          kind: json_file
          directory: reports/
        activity:
          lookback_months: 12
        whitelists:
          MY_LIST: [A, B]
        rules:
          - entity_set_name: Z_I_Materials
            field_name: BaseUnitOfMeasure
            category: MASTER_DATA
    """

    name: str = "readiness"
    regulation: str = "GENERAL"
    source: sources.SourceKind = pdt.Field(default_factory=sources.InMemoryRecordSource)
    sink: sources.SinkKind = pdt.Field(default_factory=sources.InMemoryReportSink)
    cache: CacheSettings = pdt.Field(default_factory=CacheSettings)
    lookups: LookupSettings = pdt.Field(default_factory=LookupSettings)
    activity: ActivitySettings = pdt.Field(default_factory=ActivitySettings)
    check: CheckSettings = pdt.Field(default_factory=CheckSettings)
    dates: DateSettings = pdt.Field(default_factory=DateSettings)
    whitelists: dict[str, list[str]] = pdt.Field(default_factory=dict)
    fields: list[FieldDef] = pdt.Field(default_factory=list)
    rules: list[Rule] = pdt.Field(default_factory=list)

    @pdt.model_validator(mode="after")
    def validate_unique_rules(self) -> ReadinessSettings:
        """Reject the same entity set/field pair configured twice."""
        seen: set[tuple[str, str]] = set()
        for rule in self.rules:
            pair = (rule.entity_set_name, rule.field_name)
            if pair in seen:
                raise ValueError(f"Duplicate rule for {pair[0]}.{pair[1]}")
            seen.add(pair)
        return self


def load_readiness_settings(path: Path | str = Path("readiness.yaml")) -> ReadinessSettings:
    """Load and validate configuration from a YAML file.

    Args:
        path: Path to readiness.yaml file.

    Returns:
        Validated ReadinessSettings instance.

    Raises:
        ConfigNotFoundError: If config file doesn't exist.
        ConfigValidationError: If config fails validation.
    """
    path = Path(path)

    if not path.exists():
        raise errors.ConfigNotFoundError(str(path))

    try:
        config = oc.OmegaConf.load(path)
        config_dict = oc.OmegaConf.to_container(config, resolve=True)
        return ReadinessSettings.model_validate(config_dict)
    except pdt.ValidationError as e:
        raise errors.ConfigValidationError(
            path=str(path),
            details=_format_validation_errors(e),
        ) from e
    except errors.FieldDefinitionError as e:
        raise errors.ConfigValidationError(
            path=str(path),
            details=f"  - fields: {e.cause}",
        ) from e
    except oc.errors.OmegaConfBaseException as e:
        raise errors.ConfigValidationError(
            path=str(path),
            details=str(e),
        ) from e


def _format_validation_errors(error: pdt.ValidationError) -> str:
    """Format Pydantic validation errors into readable messages."""
    messages = []
    for err in error.errors():
        loc = ".".join(str(x) for x in err["loc"])
        msg = err["msg"]
        messages.append(f"  - {loc}: {msg}")
    return "\n".join(messages)


@cache
def get_settings() -> ReadinessSettings:
    """Get cached settings instance loaded from ./readiness.yaml."""
    return load_readiness_settings()
