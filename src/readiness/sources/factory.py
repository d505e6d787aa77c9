"""Discriminated unions of the record source and report sink kinds."""

from typing import Annotated

import pydantic as pdt

import readiness.sources.json_file as json_file
import readiness.sources.memory as memory

SourceKind = Annotated[
    memory.InMemoryRecordSource | json_file.JsonFileRecordSource,
    pdt.Field(discriminator="kind"),
]
SinkKind = Annotated[
    memory.InMemoryReportSink | json_file.JsonFileReportSink,
    pdt.Field(discriminator="kind"),
]
