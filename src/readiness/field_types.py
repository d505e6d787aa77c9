"""Field type categories and static domain value sets.

Everything here is a constant: enums for the nine field categories and
issue severities, whitelist source identifiers, and the fixed lookup sets
used when no lookup table is available (procurement types, boolean tokens,
EN 13556 timber species codes, T134 material types).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Literal


class FieldCategory(str, Enum):
    """Field type categories. Determines normalization and validation."""

    UNIT = "UNIT"  # Unit of measure (T006-backed)
    CURRENCY = "CURRENCY"  # Currency key (TCURC-backed)
    QUAN = "QUAN"  # Quantity, needs a unit
    CURR = "CURR"  # Amount, needs a currency key
    DATS = "DATS"  # Date
    DOMAIN = "DOMAIN"  # Code with a fixed value set
    BOOLEAN = "BOOLEAN"  # X/blank indicator
    CODE_ARRAY = "CODE_ARRAY"  # List of 4-letter codes
    CHAR = "CHAR"  # Character field with length/format constraints


class Severity(str, Enum):
    """Validation issue severity levels."""

    ERROR = "ERROR"
    WARN = "WARN"
    INFO = "INFO"


class WhitelistSource(str, Enum):
    """Identifiers of whitelist sources, used as cache keys."""

    T006 = "T006"  # Units of measure
    TCURC = "TCURC"  # Currency codes
    T134 = "T134"  # Material types
    EN13556 = "EN13556"  # Timber species codes
    STATIC = "STATIC"  # Hardcoded domain values
    CONFIG = "CONFIG"  # Custom configuration


class ProcurementType(str, Enum):
    """Procurement type (BESKZ) domain values."""

    IN_HOUSE = "E"
    EXTERNAL = "F"
    BOTH = "X"
    NONE = ""


PROCUREMENT_TYPES_KEY = "PROCUREMENT_TYPES"

PROCUREMENT_TYPE_VALUES: frozenset[str] = frozenset(p.value for p in ProcurementType)

BOOLEAN_TRUTHY: frozenset[str] = frozenset(
    ["X", "x", "true", "TRUE", "1", "yes", "YES", "y", "Y"]
)
BOOLEAN_FALSY: frozenset[str] = frozenset(
    ["", " ", "false", "FALSE", "0", "no", "NO", "n", "N"]
)

BOOLEAN_TRUE = "X"
BOOLEAN_FALSE = ""

# Quantity/amount field -> unit/currency field it depends on
FIELD_DEPENDENCIES: dict[str, str] = {
    "MENGE": "MEINS",
    "NTGEW": "GEWEI",
    "BRGEW": "GEWEI",
    "VOLUM": "VOLEH",
    "GROES": "MEINS",
    "UMREZ": "MEINS",
    "UMREN": "MEINS",
    "LAENG": "MEINS",
    "BREIT": "MEINS",
    "HOEHE": "MEINS",
    "NETWR": "WAERS",
    "MWSBP": "WAERS",
    "KZWI1": "WAERS",
    "KZWI2": "WAERS",
    "KZWI3": "WAERS",
    "KZWI4": "WAERS",
    "KZWI5": "WAERS",
    "KZWI6": "WAERS",
    "WAVWR": "WAERS",
    "CMPRE": "WAERS",
    "KBETR": "WAERS",
}

# EN 13556 timber species codes (sample set)
EN13556_SAMPLE_CODES: frozenset[str] = frozenset([
    # European
    "ABAL", "ACPS", "ACPL", "ALGL", "BEPE", "CABE", "CASA", "FASY", "FXEX",
    "PCAB", "PISY", "PNNI", "PRAV", "QURO", "QUPE", "ROPS", "TICO", "ULGL",
    # Tropical
    "SWMA", "TGRD", "KHSE", "DINI", "DALA", "PTSN", "GOCE", "DISP", "PLEL",
    "MICA", "EUCY",
    # North American
    "QURU", "QUAL", "JUVI", "PRVI", "ACSA", "FRSP", "LITU", "TSHE", "PSME",
    "THPL",
])

# T134 material types
MATERIAL_TYPE_CODES: frozenset[str] = frozenset([
    "ROH", "HALB", "FERT", "HAWA", "DIEN", "ERSA", "HIBE", "NLAG", "UNBW",
    "VERP", "LEIH", "FHMI", "CONT", "PIPE", "PROD", "HERS", "KMAT", "VKHM",
    "WERB", "MODE", "FGTR", "WETT", "LEER", "LGUT", "FOOD", "VOLL", "INTR",
    "IBAU", "NOF1", "FRIP", "PROC", "WERT",
])

# Field key -> static domain constant, consulted before the cache
STATIC_WHITELISTS: dict[str, frozenset[str]] = {
    "BESKZ": PROCUREMENT_TYPE_VALUES,
}

CODE_PATTERN = re.compile(r"^[A-Z]{4}$")


# ---------------------------------------------------------------------------
# Date patterns
# ---------------------------------------------------------------------------

SlashOrder = Literal["dmy", "mdy"]


@dataclass(frozen=True)
class DatePattern:
    """A recognised date shape and the order of its captured groups."""

    name: str
    pattern: re.Pattern[str]
    groups: tuple[str, str, str]


_BASE_DATE_PATTERNS: tuple[DatePattern, ...] = (
    DatePattern("YYYYMMDD", re.compile(r"^(\d{4})(\d{2})(\d{2})$"), ("year", "month", "day")),
    DatePattern("YYYY-MM-DD", re.compile(r"^(\d{4})-(\d{2})-(\d{2})$"), ("year", "month", "day")),
    DatePattern("DD.MM.YYYY", re.compile(r"^(\d{2})\.(\d{2})\.(\d{4})$"), ("day", "month", "year")),
)

_SLASH_PATTERNS: dict[str, DatePattern] = {
    "dmy": DatePattern("DD/MM/YYYY", re.compile(r"^(\d{2})/(\d{2})/(\d{4})$"), ("day", "month", "year")),
    "mdy": DatePattern("MM/DD/YYYY", re.compile(r"^(\d{2})/(\d{2})/(\d{4})$"), ("month", "day", "year")),
}


def date_patterns(slash_order: SlashOrder = "dmy") -> tuple[DatePattern, ...]:
    """Return the active date patterns.

    Both slash layouts share the same shape, so exactly one of them is
    active, selected by ``slash_order``.
    """
    if slash_order not in _SLASH_PATTERNS:
        raise ValueError(f"slash_order must be 'dmy' or 'mdy', got {slash_order!r}")
    return _BASE_DATE_PATTERNS + (_SLASH_PATTERNS[slash_order],)


def accepted_date_formats(slash_order: SlashOrder = "dmy") -> str:
    """Human-readable list of accepted date formats."""
    return ", ".join(p.name for p in date_patterns(slash_order))
