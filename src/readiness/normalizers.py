"""Normalizers: raw input -> canonical form, one per field category.

All functions are pure. Normalizers never raise on bad data; the parsing
normalizers (dates, decimals, code lists) report validity in their
result object and leave the decision to the validators.
"""

from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable

from readiness.field_types import (
    BOOLEAN_FALSE,
    BOOLEAN_FALSY,
    BOOLEAN_TRUE,
    BOOLEAN_TRUTHY,
    CODE_PATTERN,
    FieldCategory,
    SlashOrder,
    accepted_date_formats,
    date_patterns,
)

_NON_NUMERIC = re.compile(r"[^\d.\-]")
_LEADING_NUMBER = re.compile(r"^-?(\d+(\.\d*)?|\.\d+)")
_CODE_SEPARATORS = re.compile(r"[,;\n\r]+")


@dataclass(frozen=True)
class NormalizedDate:
    normalized: str | None
    valid: bool
    error: str | None = None


@dataclass(frozen=True)
class NormalizedNumber:
    normalized: str | None
    numeric_value: float | None
    valid: bool
    error: str | None = None


@dataclass(frozen=True)
class NormalizedCodes:
    normalized: list[str] = field(default_factory=list)
    invalid_codes: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.invalid_codes


def _upper_trim(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().upper()


def normalize_unit(value: Any) -> str:
    return _upper_trim(value)


def normalize_currency(value: Any) -> str:
    return _upper_trim(value)


def normalize_domain_code(value: Any) -> str:
    return _upper_trim(value)


def normalize_procurement_type(value: Any) -> str:
    """Uppercase and trim. Blank is a legal procurement type."""
    return _upper_trim(value)


def normalize_char(value: Any) -> str:
    """Uppercase and trim; constraints are checked by the validator."""
    return _upper_trim(value)


def normalize_boolean(value: Any) -> str:
    """Map truthy tokens to "X" and falsy tokens to "".

    Unknown tokens are returned trimmed but otherwise unchanged so the
    validator can reject them.
    """
    if value is None:
        return BOOLEAN_FALSE
    if isinstance(value, bool):
        return BOOLEAN_TRUE if value else BOOLEAN_FALSE

    text = str(value).strip()
    if text in BOOLEAN_TRUTHY:
        return BOOLEAN_TRUE
    if text in BOOLEAN_FALSY or text == "":
        return BOOLEAN_FALSE
    return text


def normalize_date(value: Any, slash_order: SlashOrder = "dmy") -> NormalizedDate:
    """Normalize a date to ISO ``YYYY-MM-DD``.

    Accepts ``date``/``datetime`` objects and strings matching one of the
    active date patterns. Empty input is valid and normalizes to None.
    """
    if value is None or value == "":
        return NormalizedDate(normalized=None, valid=True)
    if isinstance(value, dt.datetime):
        return NormalizedDate(normalized=value.date().isoformat(), valid=True)
    if isinstance(value, dt.date):
        return NormalizedDate(normalized=value.isoformat(), valid=True)

    text = str(value).strip()
    for pattern in date_patterns(slash_order):
        match = pattern.pattern.match(text)
        if match is None:
            continue
        parts = dict(zip(pattern.groups, (int(g) for g in match.groups())))
        year, month, day = parts["year"], parts["month"], parts["day"]
        try:
            parsed = dt.date(year, month, day)
        except ValueError:
            return NormalizedDate(
                normalized=None,
                valid=False,
                error=f"Invalid calendar date: {year}-{month}-{day}",
            )
        return NormalizedDate(normalized=parsed.isoformat(), valid=True)

    return NormalizedDate(
        normalized=None,
        valid=False,
        error=f"Unrecognized date format. Use {accepted_date_formats(slash_order)}",
    )


def _format_number(number: float) -> str:
    """Render with 12 significant digits and no trailing ``.0``."""
    rounded = float(f"{number:.12g}")
    if rounded.is_integer() and abs(rounded) < 1e16:
        return str(int(rounded))
    if rounded.is_integer() and abs(rounded) < 1e21:
        # Plain digits from the shortest repr, not the exact binary value
        return f"{Decimal(repr(rounded)).to_integral_value():f}"
    return repr(rounded)


def _parse_decimal(value: Any, kind: str) -> NormalizedNumber:
    if value is None or value == "":
        return NormalizedNumber(normalized=None, numeric_value=None, valid=True)

    text = str(value).strip()
    last_comma = text.rfind(",")
    last_dot = text.rfind(".")

    if last_comma != -1 and last_dot != -1:
        if last_comma > last_dot:
            # European: 1.234,56
            text = text.replace(".", "").replace(",", ".", 1)
        else:
            # US: 1,234.56
            text = text.replace(",", "")
    elif last_comma != -1:
        # Comma only: decimal separator
        text = text.replace(",", ".", 1)

    text = _NON_NUMERIC.sub("", text)
    match = _LEADING_NUMBER.match(text)
    if match is None:
        return NormalizedNumber(
            normalized=None,
            numeric_value=None,
            valid=False,
            error=f"Cannot parse {kind}: {value}",
        )

    number = float(match.group(0))
    return NormalizedNumber(
        normalized=_format_number(number),
        numeric_value=number,
        valid=True,
    )


def normalize_quantity(value: Any) -> NormalizedNumber:
    """Parse a decimal quantity in European or US notation."""
    return _parse_decimal(value, "quantity")


def normalize_amount(value: Any) -> NormalizedNumber:
    """Parse a currency amount; same rules as quantities."""
    return _parse_decimal(value, "amount")


def normalize_code_array(value: Any) -> NormalizedCodes:
    """Split a code list on comma/semicolon/newline and uppercase each code.

    Lists and tuples are taken element-wise. Codes that are not exactly
    four letters are reported in ``invalid_codes``.
    """
    if value is None or value == "":
        return NormalizedCodes()

    if isinstance(value, (list, tuple)):
        codes = [str(code) for code in value]
    else:
        codes = [part.strip() for part in _CODE_SEPARATORS.split(str(value))]
        codes = [code for code in codes if code]

    normalized = [code.strip().upper() for code in codes]
    invalid = [code for code in normalized if not CODE_PATTERN.match(code)]
    return NormalizedCodes(normalized=normalized, invalid_codes=invalid)


_NORMALIZERS: dict[FieldCategory, Callable[..., Any]] = {
    FieldCategory.UNIT: normalize_unit,
    FieldCategory.CURRENCY: normalize_currency,
    FieldCategory.QUAN: normalize_quantity,
    FieldCategory.CURR: normalize_amount,
    FieldCategory.DATS: normalize_date,
    FieldCategory.DOMAIN: normalize_domain_code,
    FieldCategory.BOOLEAN: normalize_boolean,
    FieldCategory.CODE_ARRAY: normalize_code_array,
    FieldCategory.CHAR: normalize_char,
}

_missing = set(FieldCategory) - set(_NORMALIZERS)
if _missing:
    raise RuntimeError(f"No normalizer for categories: {sorted(c.value for c in _missing)}")


def get_normalizer(category: FieldCategory | str) -> Callable[..., Any]:
    """Return the normalizer for a field category."""
    return _NORMALIZERS[FieldCategory(category)]
