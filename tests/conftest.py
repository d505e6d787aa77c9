"""Global test configuration and fixtures.

Provides a fixed clock and small in-memory record sources shared by the
processor, activity and orchestrator tests.
"""

from __future__ import annotations

import pytest

import readiness.cache as cache_mod
import readiness.processor as processor_mod
import readiness.sources as sources


class FakeClock:
    """Monotonic seconds clock that only moves when told to."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> cache_mod.WhitelistCache:
    return cache_mod.WhitelistCache(default_ttl=60, clock=clock)


@pytest.fixture
def processor() -> processor_mod.FieldProcessor:
    """Processor with default field definitions and fallback whitelists."""
    return processor_mod.FieldProcessor()


@pytest.fixture
def material_tables() -> dict[str, list[dict]]:
    """Materials, transactions and one BOM, shaped like the CDS views."""
    return {
        "Z_I_Materials": [
            {"Material": "M1", "BaseUnitOfMeasure": "KG", "Division": "01"},
            {"Material": "M2", "BaseUnitOfMeasure": "XYZ", "Division": "02"},
            {"Material": "M3", "BaseUnitOfMeasure": "", "Division": "03"},
            {"Material": "C1", "BaseUnitOfMeasure": "EA", "Division": "10"},
        ],
        "TAHistRelevantMats": [
            {"Material": "M1", "PostingDate": "2024-05-01T00:00:00Z"},
            {"Material": "M1", "PostingDate": "2024-03-01T00:00:00Z"},
            {"Material": "M2", "PostingDate": "2020-01-01T00:00:00Z"},
        ],
        "MaterialComposition": [
            {
                "BomNumber": "B1",
                "ParentMaterial": "M1",
                "ComponentMaterial": "C1",
                "Plant": "1000",
                "BomUsage": "1",
                "AltBom": "01",
                "ItemNumber": "0010",
            },
            {
                "BomNumber": "B1",
                "ParentMaterial": "M1",
                "ComponentMaterial": "C9",
                "Plant": "1000",
                "BomUsage": "1",
                "AltBom": "01",
                "ItemNumber": "0020",
            },
        ],
    }


@pytest.fixture
def memory_source(material_tables) -> sources.InMemoryRecordSource:
    return sources.InMemoryRecordSource(tables=material_tables)


@pytest.fixture
def memory_sink() -> sources.InMemoryReportSink:
    return sources.InMemoryReportSink()
