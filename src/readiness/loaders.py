"""Concrete whitelist loaders registered into a WhitelistCache.

Units (T006) and currencies (TCURC) are read from the record source when
a lookup entity set is configured for them. Without one, or when the read
fails, the built-in fallback sets are used. Material types, timber
species codes and procurement types always come from constants.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable

import readiness.cache as cache_mod
import readiness.errors as errors
import readiness.sources.base as sources_base
from readiness.field_types import (
    EN13556_SAMPLE_CODES,
    MATERIAL_TYPE_CODES,
    PROCUREMENT_TYPE_VALUES,
    PROCUREMENT_TYPES_KEY,
    WhitelistSource,
)

logger = logging.getLogger(__name__)

FALLBACK_UNITS: frozenset[str] = frozenset([
    # Each / piece
    "EA", "PC", "ST", "LE", "AU",
    # Weight
    "KG", "G", "MG", "T", "TO", "LB", "OZ", "GR",
    # Length
    "M", "CM", "MM", "KM", "IN", "FT", "YD", "MI",
    # Volume
    "L", "ML", "HL", "M3", "GAL", "QT", "PT", "FL",
    # Area
    "M2", "CM2", "MM2", "KM2", "HA", "AR", "FT2", "YD2", "AC",
    # Time
    "SEC", "MIN", "H", "D", "WK", "MON", "YR",
    # Packaging
    "CS", "PK", "BX", "CT", "PAL", "DZ", "GRO", "ROL", "SET", "KIT",
    # Counts
    "PR", "PAR", "KK", "TSD",
    # Energy
    "KWH", "MWH", "J", "KJ",
    # Pressure
    "BAR", "PA", "KPA", "MPA", "PSI", "ATM",
    # Temperature
    "CEL", "FAH", "KEL",
])

FALLBACK_CURRENCIES: frozenset[str] = frozenset([
    "EUR", "USD", "GBP", "JPY", "CHF", "CNY", "HKD", "AUD", "CAD", "NZD",
    "SEK", "NOK", "DKK", "PLN", "CZK", "HUF", "RON", "BGN", "HRK", "ISK",
    "RUB", "UAH", "TRY",
    "INR", "KRW", "TWD", "SGD", "MYR", "THB", "IDR", "PHP", "VND", "PKR",
    "BDT", "LKR",
    "AED", "SAR", "QAR", "KWD", "BHD", "OMR", "EGP", "ZAR", "NGN", "KES",
    "MAD", "ILS",
    "MXN", "BRL", "ARS", "CLP", "COP", "PEN", "VES",
    "FJD",
    # Precious metals and SDR
    "XAU", "XAG", "XPT", "XPD", "XDR",
])

# Keys warmed by preload_all, in order
PRELOAD_KEYS: tuple[str, ...] = (
    WhitelistSource.T006.value,
    WhitelistSource.TCURC.value,
    WhitelistSource.EN13556.value,
    WhitelistSource.T134.value,
    PROCUREMENT_TYPES_KEY,
)


def _normalize_values(values: Iterable[Any]) -> frozenset[str]:
    return frozenset(str(v).strip().upper() for v in values if v is not None)


class WhitelistLoader:
    """Registers whitelist loaders into a cache and exposes lookup helpers.

    Example:
        cache = WhitelistCache()
        loader = WhitelistLoader(cache)
        units = await loader.get_units()
    """

    def __init__(
        self,
        cache: cache_mod.WhitelistCache,
        source: sources_base.BaseRecordSource | None = None,
        *,
        unit_entity_set: str | None = None,
        unit_field: str = "UnitOfMeasure",
        currency_entity_set: str | None = None,
        currency_field: str = "Currency",
    ) -> None:
        self.cache = cache
        self.source = source
        self.unit_entity_set = unit_entity_set
        self.unit_field = unit_field
        self.currency_entity_set = currency_entity_set
        self.currency_field = currency_field
        self._register_loaders()

    def _register_loaders(self) -> None:
        self.cache.register_loader(WhitelistSource.T006.value, self.load_units)
        self.cache.register_loader(WhitelistSource.TCURC.value, self.load_currencies)
        self.cache.register_loader(WhitelistSource.T134.value, self.load_material_types)
        self.cache.register_loader(WhitelistSource.EN13556.value, self.load_timber_codes)
        self.cache.register_loader(PROCUREMENT_TYPES_KEY, self.load_procurement_types)

    # ------------------------------------------------------------------
    # Loaders
    # ------------------------------------------------------------------

    async def _load_table(
        self, entity_set: str | None, field: str, fallback: frozenset[str]
    ) -> frozenset[str]:
        if self.source is None or entity_set is None:
            return fallback
        try:
            rows = await self.source.read(entity_set, select=[field])
        except errors.SourceError as e:
            logger.warning("Lookup table %s unavailable, using fallback values: %s", entity_set, e.cause)
            return fallback

        values = _normalize_values(row.get(field) for row in rows)
        values = frozenset(v for v in values if v)
        if not values:
            logger.warning("Lookup table %s returned no values, using fallback values", entity_set)
            return fallback
        return values

    async def load_units(self) -> frozenset[str]:
        return await self._load_table(self.unit_entity_set, self.unit_field, FALLBACK_UNITS)

    async def load_currencies(self) -> frozenset[str]:
        return await self._load_table(self.currency_entity_set, self.currency_field, FALLBACK_CURRENCIES)

    async def load_material_types(self) -> frozenset[str]:
        return MATERIAL_TYPE_CODES

    async def load_timber_codes(self) -> frozenset[str]:
        return EN13556_SAMPLE_CODES

    async def load_procurement_types(self) -> frozenset[str]:
        return PROCUREMENT_TYPE_VALUES

    @staticmethod
    def load_custom_whitelist(key: str, config: Any) -> frozenset[str]:
        """Build a whitelist from a list or a ``{"values": [...]}`` mapping.

        Values are uppercased and trimmed.

        Raises:
            WhitelistLoadError: If ``config`` has neither shape.
        """
        if isinstance(config, (list, tuple, set, frozenset)):
            values = config
        elif isinstance(config, dict) and isinstance(config.get("values"), (list, tuple)):
            values = config["values"]
        else:
            raise errors.WhitelistLoadError(key, f"Invalid configuration data for whitelist: {key}")
        return _normalize_values(values)

    # ------------------------------------------------------------------
    # Cached accessors
    # ------------------------------------------------------------------

    async def get_units(self) -> frozenset[str]:
        return await self.cache.get_or_load(WhitelistSource.T006.value)

    async def get_currencies(self) -> frozenset[str]:
        return await self.cache.get_or_load(WhitelistSource.TCURC.value)

    async def get_timber_codes(self) -> frozenset[str]:
        return await self.cache.get_or_load(WhitelistSource.EN13556.value)

    async def get_material_types(self) -> frozenset[str]:
        return await self.cache.get_or_load(WhitelistSource.T134.value)

    async def is_valid_unit(self, code: Any) -> bool:
        return _normalize_code(code) in await self.get_units()

    async def is_valid_currency(self, code: Any) -> bool:
        return _normalize_code(code) in await self.get_currencies()

    async def is_valid_timber_code(self, code: Any) -> bool:
        return _normalize_code(code) in await self.get_timber_codes()

    async def is_valid_material_type(self, code: Any) -> bool:
        return _normalize_code(code) in await self.get_material_types()

    async def preload_all(
        self, return_exceptions: bool = False
    ) -> dict[str, frozenset[str] | BaseException]:
        """Warm every built-in whitelist concurrently.

        With ``return_exceptions=True`` a failed key maps to its exception
        instead of aborting the whole preload.
        """
        results = await asyncio.gather(
            *(self.cache.get_or_load(key) for key in PRELOAD_KEYS),
            return_exceptions=return_exceptions,
        )
        return dict(zip(PRELOAD_KEYS, results))

    async def refresh_all(
        self, return_exceptions: bool = False
    ) -> dict[str, frozenset[str] | BaseException]:
        for key in PRELOAD_KEYS:
            self.cache.remove(key)
        return await self.preload_all(return_exceptions=return_exceptions)


def _normalize_code(code: Any) -> str:
    return str(code or "").strip().upper()
