"""Structured error handling with context + cause + fix pattern.

All readiness errors follow a consistent pattern that provides:
- Context: What operation was being attempted
- Cause: Why it failed
- Fix: How to resolve the issue

Validation failures are never raised. They are attached to a FieldResult
as issues. Only configuration problems, unrecoverable lookups and report
submission failures surface as exceptions.
"""

from __future__ import annotations


class ReadinessError(Exception):
    """Base error with structured messaging.

    All readiness errors inherit from this class and provide
    context, cause, and fix information.
    """

    def __init__(self, context: str, cause: str, fix: str) -> None:
        self.context = context
        self.cause = cause
        self.fix = fix
        message = f"{context}\n\nCause: {cause}\n\nFix: {fix}"
        super().__init__(message)

    def to_dict(self) -> dict:
        """Serialize error to structured dict for JSON output."""
        return {
            "error": True,
            "code": type(self).__name__,
            "context": self.context,
            "cause": self.cause,
            "fix": self.fix,
        }


class ConfigurationError(ReadinessError):
    """Configuration file or settings related errors."""

    pass


class ConfigNotFoundError(ConfigurationError):
    """Configuration file not found."""

    def __init__(self, path: str) -> None:
        super().__init__(
            context=f"Loading configuration from '{path}'",
            cause="Configuration file not found",
            fix=f"Create a readiness.yaml file at '{path}' or pass --config with the correct path",
        )


class ConfigValidationError(ConfigurationError):
    """Configuration validation failed."""

    def __init__(self, path: str, details: str) -> None:
        super().__init__(
            context=f"Validating configuration from '{path}'",
            cause=details,
            fix="Check the configuration file matches the expected schema (source, sink, rules, cache, activity, check).",
        )


class FieldDefinitionError(ConfigurationError):
    """A field model was constructed without its required attributes."""

    def __init__(self, model: str, missing: str) -> None:
        self.model = model
        self.missing = missing
        super().__init__(
            context=f"Constructing {model}",
            cause=f"{model} requires a non-empty '{missing}'",
            fix=f"Pass '{missing}' when creating the {model}",
        )


class UnknownFieldError(ConfigurationError):
    """Field key has no registered FieldDef."""

    def __init__(self, key: str, available: list[str] | None = None) -> None:
        self.key = key
        shown = ", ".join(sorted(available)[:10]) if available else "(none)"
        super().__init__(
            context=f"Validating field '{key}'",
            cause=f"Unknown field: '{key}' has no registered field definition",
            fix=f"Register a FieldDef for '{key}' or use a known field such as: {shown}",
        )


class WhitelistError(ReadinessError):
    """Whitelist cache and loader errors."""

    pass


class LoaderNotRegisteredError(WhitelistError):
    """No cached value and no loader for a whitelist key."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(
            context=f"Loading whitelist '{key}'",
            cause=f"No loader registered for cache key: {key}",
            fix=f"Call register_loader('{key}', loader) or set the whitelist explicitly",
        )


class WhitelistLoadError(WhitelistError):
    """A registered loader failed or timed out."""

    def __init__(self, key: str, details: str) -> None:
        self.key = key
        super().__init__(
            context=f"Loading whitelist '{key}'",
            cause=details,
            fix="Check the lookup source is reachable, or register a custom whitelist as override",
        )


class SourceError(ReadinessError):
    """Record source read errors (transport, query)."""

    pass


class EntityNotFoundError(SourceError):
    """The requested entity set does not exist at the record source."""

    def __init__(self, entity_set: str) -> None:
        self.entity_set = entity_set
        super().__init__(
            context=f"Reading entity set '{entity_set}'",
            cause="Entity or data not found",
            fix=f"Check that '{entity_set}' is exposed by the record source",
        )


class SourceTimeoutError(SourceError):
    """A record source read exceeded its configured timeout."""

    def __init__(self, entity_set: str, timeout: float) -> None:
        self.entity_set = entity_set
        self.timeout = timeout
        super().__init__(
            context=f"Reading entity set '{entity_set}'",
            cause=f"Read did not complete within {timeout:g}s",
            fix="Increase check.read_timeout_seconds or check the record source",
        )


class ReportSubmissionError(ReadinessError):
    """The report sink rejected or failed to store the report."""

    def __init__(self, regulation: str, details: str) -> None:
        self.regulation = regulation
        super().__init__(
            context=f"Submitting compliance report for '{regulation}'",
            cause=details,
            fix="Check the report sink configuration and retry the run",
        )
