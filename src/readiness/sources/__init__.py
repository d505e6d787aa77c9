from .base import BaseRecordSource, BaseReportSink, Relation, Row, read_with_timeout
from .factory import SinkKind, SourceKind
from .json_file import JsonFileRecordSource, JsonFileReportSink
from .memory import InMemoryRecordSource, InMemoryReportSink

__all__ = [
    "BaseRecordSource",
    "BaseReportSink",
    "InMemoryRecordSource",
    "InMemoryReportSink",
    "JsonFileRecordSource",
    "JsonFileReportSink",
    "Relation",
    "Row",
    "SinkKind",
    "SourceKind",
    "read_with_timeout",
]
