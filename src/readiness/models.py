"""Data models for field validation: FieldDef, ValidationIssue, FieldResult.

FieldDef is a frozen pydantic model (config-as-code, built once at
registry initialization and only ever cloned). ValidationIssue and
FieldResult are plain dataclasses created per validation call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pydantic as pdt

import readiness.errors as errors
from readiness.field_types import FieldCategory, Severity


class ReadinessBaseModel(pdt.BaseModel):
    model_config = pdt.ConfigDict(
        frozen=True,
        extra="forbid",
    )


class CharConstraints(ReadinessBaseModel):
    """Length and format constraints for CHAR fields."""

    exact_length: int | None = None
    max_length: int | None = None
    alphanumeric: bool = False
    field_name: str | None = None  # Human-readable name used in messages


class FieldDef(ReadinessBaseModel):
    """Describes a field and how to validate/normalize it.

    Example:
        FieldDef(
            key="MENGE",
            category=FieldCategory.QUAN,
            dependencies=["MEINS"],
            description="Order quantity",
        )
    """

    key: str
    category: FieldCategory
    source_table: str | None = None
    source_field: str | None = None  # Defaults to key
    typical_type: str | None = None  # ABAP data type, informational
    dependencies: tuple[str, ...] = ()
    whitelist_source: str | None = None
    mandatory: bool = False
    char_constraints: CharConstraints | None = None
    description: str = ""

    @pdt.model_validator(mode="before")
    @classmethod
    def require_key_and_category(cls, data: Any) -> Any:
        """Fail fast when key or category is missing."""
        if not isinstance(data, dict):
            return data
        if not data.get("key"):
            raise errors.FieldDefinitionError("FieldDef", "key")
        if not data.get("category"):
            raise errors.FieldDefinitionError("FieldDef", "category")
        if not data.get("source_field"):
            data = {**data, "source_field": data["key"]}
        return data

    @property
    def has_dependencies(self) -> bool:
        return len(self.dependencies) > 0

    @property
    def primary_dependency(self) -> str | None:
        return self.dependencies[0] if self.dependencies else None

    def clone(self, **overrides: Any) -> FieldDef:
        """Return a copy of this definition with overrides applied."""
        data = self.model_dump()
        data.update(overrides)
        return FieldDef.model_validate(data)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")


class Rule(ReadinessBaseModel):
    """A configured check: one field of one entity set."""

    entity_set_name: str
    field_name: str
    category: str = "GENERAL"  # Report grouping label


# ---------------------------------------------------------------------------
# Validation results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ValidationIssue:
    """A single validation problem, warning or note."""

    severity: Severity
    message: str
    hint: str | None = None
    code: str | None = None
    context: Any = None

    def __post_init__(self) -> None:
        if not self.severity:
            raise errors.FieldDefinitionError("ValidationIssue", "severity")
        if not self.message:
            raise errors.FieldDefinitionError("ValidationIssue", "message")
        object.__setattr__(self, "severity", Severity(self.severity))

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR

    @property
    def is_warning(self) -> bool:
        return self.severity == Severity.WARN

    def __str__(self) -> str:
        text = f"[{self.severity.value}] {self.message}"
        if self.hint:
            text += f" (Hint: {self.hint})"
        return text

    def to_dict(self) -> dict:
        return {
            "severity": self.severity.value,
            "message": self.message,
            "hint": self.hint,
            "code": self.code,
            "context": self.context,
        }

    @classmethod
    def error(cls, message: str, hint: str | None = None, code: str | None = None) -> ValidationIssue:
        return cls(severity=Severity.ERROR, message=message, hint=hint, code=code)

    @classmethod
    def warn(cls, message: str, hint: str | None = None, code: str | None = None) -> ValidationIssue:
        return cls(severity=Severity.WARN, message=message, hint=hint, code=code)

    @classmethod
    def info(cls, message: str, code: str | None = None) -> ValidationIssue:
        return cls(severity=Severity.INFO, message=message, code=code)


SKIPPED_CODE = "SKIPPED"


@dataclass
class FieldResult:
    """Outcome of validating/normalizing a single field.

    Adding an ERROR issue forces ``ok`` to False. WARN and INFO issues
    never change it.
    """

    key: str
    raw_value: Any = None
    normalized_value: Any = None
    ok: bool = True
    issues: list[ValidationIssue] = field(default_factory=list)
    # Parsed number for QUAN/CURR fields. Not part of to_dict().
    numeric_value: float | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.key:
            raise errors.FieldDefinitionError("FieldResult", "key")
        if any(issue.is_error for issue in self.issues):
            self.ok = False

    def add_issue(self, issue: ValidationIssue) -> FieldResult:
        self.issues.append(issue)
        if issue.is_error:
            self.ok = False
        return self

    def add_error(self, message: str, hint: str | None = None, code: str | None = None) -> FieldResult:
        return self.add_issue(ValidationIssue.error(message, hint, code))

    def add_warning(self, message: str, hint: str | None = None, code: str | None = None) -> FieldResult:
        return self.add_issue(ValidationIssue.warn(message, hint, code))

    def add_info(self, message: str, code: str | None = None) -> FieldResult:
        return self.add_issue(ValidationIssue.info(message, code))

    @property
    def has_errors(self) -> bool:
        return any(i.is_error for i in self.issues)

    @property
    def has_warnings(self) -> bool:
        return any(i.is_warning for i in self.issues)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.is_error]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.is_warning]

    @property
    def is_skipped(self) -> bool:
        """True if validation was skipped because the value was empty."""
        return any(i.code == SKIPPED_CODE for i in self.issues)

    def __str__(self) -> str:
        status = "OK" if self.ok else "FAILED"
        return f"{self.key}: {status} ({len(self.issues)} issue(s))"

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "raw_value": self.raw_value,
            "normalized_value": self.normalized_value,
            "ok": self.ok,
            "issues": [i.to_dict() for i in self.issues],
        }

    @classmethod
    def success(cls, key: str, raw_value: Any, normalized_value: Any) -> FieldResult:
        return cls(key=key, raw_value=raw_value, normalized_value=normalized_value, ok=True)

    @classmethod
    def failure(
        cls,
        key: str,
        raw_value: Any,
        message: str,
        hint: str | None = None,
        code: str | None = None,
    ) -> FieldResult:
        result = cls(key=key, raw_value=raw_value, normalized_value=None, ok=False)
        result.add_error(message, hint, code)
        return result

    @classmethod
    def skipped(cls, key: str, raw_value: Any) -> FieldResult:
        """Result for an empty value on a non-mandatory field."""
        return cls(
            key=key,
            raw_value=raw_value,
            normalized_value=raw_value,
            ok=True,
            issues=[ValidationIssue.info("Field skipped (empty value)", code=SKIPPED_CODE)],
        )
