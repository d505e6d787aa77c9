from .activity import ActivityClassifier, ActivityRecord, ActivityStatus, summarize_activity
from .cache import WhitelistCache
from .field_types import FieldCategory, Severity, WhitelistSource
from .loaders import WhitelistLoader
from .models import CharConstraints, FieldDef, FieldResult, Rule, ValidationIssue
from .orchestrator import ComplianceOrchestrator, build_orchestrator
from .processor import FieldProcessor
from .report import BomNode, CheckResultLine, Report
from .settings import load_readiness_settings

__all__ = [
    # models
    "FieldDef",
    "CharConstraints",
    "FieldResult",
    "ValidationIssue",
    "Rule",
    "FieldCategory",
    "Severity",
    "WhitelistSource",
    # whitelists
    "WhitelistCache",
    "WhitelistLoader",
    # validation
    "FieldProcessor",
    # activity
    "ActivityClassifier",
    "ActivityRecord",
    "ActivityStatus",
    "summarize_activity",
    # reporting
    "ComplianceOrchestrator",
    "build_orchestrator",
    "CheckResultLine",
    "BomNode",
    "Report",
    # config
    "load_readiness_settings",
]
