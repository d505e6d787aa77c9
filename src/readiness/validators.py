"""Per-category validators.

Each validator takes the field key and raw value and returns a
FieldResult. Validation failures are recorded as issues on the result,
never raised. Whitelists are plain sets of normalized values. None or an
empty set means the lookup was unavailable.
"""

from __future__ import annotations

from typing import AbstractSet, Any, Callable

import readiness.normalizers as normalizers
from readiness.field_types import (
    BOOLEAN_FALSE,
    BOOLEAN_TRUE,
    CODE_PATTERN,
    PROCUREMENT_TYPE_VALUES,
    FieldCategory,
    SlashOrder,
    accepted_date_formats,
)
from readiness.models import CharConstraints, FieldDef, FieldResult

Whitelist = AbstractSet[str]

DECIMAL_HINT = "Enter a valid decimal number (use . or , as decimal separator)"


def is_empty(value: Any) -> bool:
    """True for None, blank strings and empty sequences."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set, frozenset)):
        return len(value) == 0
    return False


def _empty_result(key: str, raw_value: Any, mandatory: bool) -> FieldResult:
    if mandatory:
        return FieldResult.failure(
            key,
            raw_value,
            f"Mandatory field {key} is empty",
            f"Provide a value for {key}",
            code="MANDATORY_EMPTY",
        )
    return FieldResult.skipped(key, raw_value)


def _validate_lookup(
    key: str,
    raw_value: Any,
    whitelist: Whitelist | None,
    *,
    mandatory: bool,
    label: str,
    normalize: Callable[[Any], str],
    missing_hint: str | None,
    invalid_hint: str,
) -> FieldResult:
    if is_empty(raw_value):
        return _empty_result(key, raw_value, mandatory)

    normalized = normalize(raw_value)
    if not whitelist:
        result = FieldResult.success(key, raw_value, normalized)
        result.add_warning(f"{label.capitalize()} whitelist not available, validation skipped", missing_hint)
        return result

    if normalized in whitelist:
        return FieldResult.success(key, raw_value, normalized)
    return FieldResult.failure(key, raw_value, f"Invalid {label} code: '{raw_value}'", invalid_hint)


def validate_unit(
    key: str, raw_value: Any, whitelist: Whitelist | None = None, *, mandatory: bool = False
) -> FieldResult:
    """Validate a unit of measure against the T006 whitelist."""
    return _validate_lookup(
        key,
        raw_value,
        whitelist,
        mandatory=mandatory,
        label="unit",
        normalize=normalizers.normalize_unit,
        missing_hint="Ensure T006 data is loaded",
        invalid_hint="Must be a valid unit from SAP table T006",
    )


def validate_currency(
    key: str, raw_value: Any, whitelist: Whitelist | None = None, *, mandatory: bool = False
) -> FieldResult:
    """Validate a currency key against the TCURC whitelist."""
    return _validate_lookup(
        key,
        raw_value,
        whitelist,
        mandatory=mandatory,
        label="currency",
        normalize=normalizers.normalize_currency,
        missing_hint="Ensure TCURC data is loaded",
        invalid_hint="Must be a valid ISO 4217 currency code from SAP table TCURC",
    )


def validate_domain_code(
    key: str,
    raw_value: Any,
    whitelist: Whitelist | None = None,
    *,
    mandatory: bool = False,
    domain_name: str | None = None,
) -> FieldResult:
    """Validate a code against a fixed set of allowed values."""
    if is_empty(raw_value):
        return _empty_result(key, raw_value, mandatory)

    normalized = normalizers.normalize_domain_code(raw_value)
    if not whitelist:
        result = FieldResult.success(key, raw_value, normalized)
        result.add_warning("Domain whitelist not available, validation skipped")
        return result

    if normalized in whitelist:
        return FieldResult.success(key, raw_value, normalized)

    allowed = sorted(whitelist)
    shown = ", ".join(allowed[:5])
    if len(allowed) > 5:
        shown += "..."
    return FieldResult.failure(
        key,
        raw_value,
        f"Invalid {domain_name or 'domain'} code: '{raw_value}'",
        f"Allowed values include: {shown}",
    )


def validate_procurement_type(key: str, raw_value: Any) -> FieldResult:
    """Validate a procurement type (E/F/X or blank)."""
    normalized = normalizers.normalize_procurement_type(raw_value)
    if normalized in PROCUREMENT_TYPE_VALUES:
        return FieldResult.success(key, raw_value, normalized)
    return FieldResult.failure(
        key,
        raw_value,
        f"Invalid procurement type: '{raw_value}'",
        "Allowed values: E (in-house), F (external), X (both), or blank (none)",
    )


def validate_boolean(key: str, raw_value: Any, *, mandatory: bool = False) -> FieldResult:
    """Validate an X/blank indicator.

    Blank is the canonical false token, so an empty value is valid even
    for mandatory fields.
    """
    normalized = normalizers.normalize_boolean(raw_value)
    if normalized in (BOOLEAN_TRUE, BOOLEAN_FALSE):
        return FieldResult.success(key, raw_value, normalized)
    return FieldResult.failure(
        key,
        raw_value,
        f"Invalid boolean indicator: '{raw_value}'",
        "Use X/true/1/yes for true, or blank/false/0/no for false",
    )


def validate_date(
    key: str, raw_value: Any, *, mandatory: bool = False, slash_order: SlashOrder = "dmy"
) -> FieldResult:
    if is_empty(raw_value):
        return _empty_result(key, raw_value, mandatory)

    parsed = normalizers.normalize_date(raw_value, slash_order)
    if not parsed.valid:
        return FieldResult.failure(
            key, raw_value, parsed.error, f"Accepted formats: {accepted_date_formats(slash_order)}"
        )
    return FieldResult.success(key, raw_value, parsed.normalized)


def _validate_decimal(
    key: str, raw_value: Any, mandatory: bool, normalize: Callable[[Any], normalizers.NormalizedNumber]
) -> FieldResult:
    if is_empty(raw_value):
        return _empty_result(key, raw_value, mandatory)

    parsed = normalize(raw_value)
    if not parsed.valid:
        return FieldResult.failure(key, raw_value, parsed.error, DECIMAL_HINT)

    result = FieldResult.success(key, raw_value, parsed.normalized)
    result.numeric_value = parsed.numeric_value
    return result


def validate_quantity(key: str, raw_value: Any, *, mandatory: bool = False) -> FieldResult:
    """Validate a quantity. The unit dependency is checked separately."""
    return _validate_decimal(key, raw_value, mandatory, normalizers.normalize_quantity)


def validate_amount(key: str, raw_value: Any, *, mandatory: bool = False) -> FieldResult:
    """Validate an amount. The currency dependency is checked separately."""
    return _validate_decimal(key, raw_value, mandatory, normalizers.normalize_amount)


def validate_code_array(
    key: str, raw_value: Any, whitelist: Whitelist | None = None, *, mandatory: bool = False
) -> FieldResult:
    """Validate a list of 4-letter codes.

    Format errors and unknown codes are reported as separate issues and
    can occur together.
    """
    if is_empty(raw_value):
        return _empty_result(key, raw_value, mandatory)

    parsed = normalizers.normalize_code_array(raw_value)
    if not parsed.normalized:
        return _empty_result(key, raw_value, mandatory)

    result = FieldResult(key=key, raw_value=raw_value, normalized_value=parsed.normalized)
    if parsed.invalid_codes:
        result.add_error(
            f"Invalid code format: {', '.join(parsed.invalid_codes)}",
            "Codes must be exactly 4 uppercase letters",
            code="INVALID_FORMAT",
        )

    if whitelist:
        unknown = [
            code for code in parsed.normalized if CODE_PATTERN.match(code) and code not in whitelist
        ]
        if unknown:
            result.add_error(
                f"Unknown timber codes: {', '.join(unknown)}",
                "Must be valid EN 13556 timber species codes",
                code="NOT_IN_WHITELIST",
            )
    return result


def validate_char(
    key: str,
    raw_value: Any,
    *,
    mandatory: bool = False,
    constraints: CharConstraints | None = None,
) -> FieldResult:
    """Validate a character field against its length/format constraints.

    Every violated constraint produces its own ERROR.
    """
    if is_empty(raw_value):
        return _empty_result(key, raw_value, mandatory)

    normalized = normalizers.normalize_char(raw_value)
    result = FieldResult.success(key, raw_value, normalized)
    if constraints is None:
        return result

    name = constraints.field_name or key
    if constraints.exact_length and len(normalized) != constraints.exact_length:
        result.add_error(
            f"Invalid {name}: '{raw_value}' (length must be exactly {constraints.exact_length} characters)",
            f"Enter exactly {constraints.exact_length} characters",
        )
    if constraints.max_length and len(normalized) > constraints.max_length:
        result.add_error(
            f"Invalid {name}: '{raw_value}' exceeds maximum length of {constraints.max_length}",
            f"Maximum {constraints.max_length} characters allowed",
        )
    if constraints.alphanumeric and not (normalized.isascii() and normalized.isalnum()):
        result.add_error(
            f"Invalid {name}: '{raw_value}' contains non-alphanumeric characters",
            "Only letters (A-Z) and numbers (0-9) are allowed",
        )
    return result


def check_dependency(
    main_key: str,
    main_result: FieldResult,
    dependency_key: str,
    dependency_result: FieldResult | None,
    mandatory: bool = False,
) -> FieldResult:
    """Check a field against the result of a field it depends on.

    A quantity without a known unit is not verifiable. The main result
    gets an ERROR when the field is mandatory and a WARN otherwise. The
    check is skipped when the main field itself has no value.
    """
    if not main_result.normalized_value:
        return main_result

    if dependency_result is None:
        if mandatory:
            main_result.add_error(
                f"Missing required dependency field: {dependency_key}",
                f"{dependency_key} is required when {main_key} has a value",
                code="DEPENDENCY_MISSING",
            )
        else:
            main_result.add_warning(
                f"Missing dependency field: {dependency_key}",
                f"{dependency_key} should be provided when {main_key} has a value",
                code="DEPENDENCY_MISSING",
            )
        return main_result

    if not dependency_result.ok:
        if mandatory:
            main_result.add_error(
                f"Invalid dependency field: {dependency_key}",
                f"Fix {dependency_key} errors before validating {main_key}",
                code="DEPENDENCY_INVALID",
            )
        else:
            main_result.add_warning(
                f"Dependency field has issues: {dependency_key}", code="DEPENDENCY_INVALID"
            )
        return main_result

    if not dependency_result.normalized_value:
        if mandatory:
            main_result.add_error(
                f"Empty dependency field: {dependency_key}",
                f"{dependency_key} must have a value when {main_key} is set",
                code="DEPENDENCY_EMPTY",
            )
        else:
            main_result.add_warning(
                f"Empty dependency field: {dependency_key}",
                f"Consider providing {dependency_key} for {main_key}",
                code="DEPENDENCY_EMPTY",
            )
    return main_result


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

_VALIDATORS: dict[FieldCategory, Callable[..., FieldResult]] = {
    FieldCategory.UNIT: validate_unit,
    FieldCategory.CURRENCY: validate_currency,
    FieldCategory.QUAN: validate_quantity,
    FieldCategory.CURR: validate_amount,
    FieldCategory.DATS: validate_date,
    FieldCategory.DOMAIN: validate_domain_code,
    FieldCategory.BOOLEAN: validate_boolean,
    FieldCategory.CODE_ARRAY: validate_code_array,
    FieldCategory.CHAR: validate_char,
}

_missing = set(FieldCategory) - set(_VALIDATORS)
if _missing:
    raise RuntimeError(f"No validator for categories: {sorted(c.value for c in _missing)}")

# Categories whose validator takes a whitelist
WHITELIST_CATEGORIES: frozenset[FieldCategory] = frozenset(
    [FieldCategory.UNIT, FieldCategory.CURRENCY, FieldCategory.DOMAIN, FieldCategory.CODE_ARRAY]
)


def get_validator(category: FieldCategory | str) -> Callable[..., FieldResult]:
    """Return the validator for a field category."""
    return _VALIDATORS[FieldCategory(category)]


# Field keys with a dedicated validator that replaces the category one
KEY_VALIDATORS: dict[str, Callable[[str, Any], FieldResult]] = {
    "BESKZ": validate_procurement_type,
}


def validate_with_definition(
    field_def: FieldDef,
    raw_value: Any,
    whitelist: Whitelist | None = None,
    *,
    slash_order: SlashOrder = "dmy",
) -> FieldResult:
    """Validate a value using the validator and options of its FieldDef."""
    if field_def.key in KEY_VALIDATORS:
        return KEY_VALIDATORS[field_def.key](field_def.key, raw_value)

    category = field_def.category
    validator = get_validator(category)
    kwargs: dict[str, Any] = {"mandatory": field_def.mandatory}
    if category in WHITELIST_CATEGORIES:
        kwargs["whitelist"] = whitelist
    if category == FieldCategory.DOMAIN:
        kwargs["domain_name"] = field_def.description or None
    if category == FieldCategory.DATS:
        kwargs["slash_order"] = slash_order
    if category == FieldCategory.CHAR:
        kwargs["constraints"] = field_def.char_constraints
    return validator(field_def.key, raw_value, **kwargs)
