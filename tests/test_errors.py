"""Tests for structured error handling."""

from __future__ import annotations

import readiness.errors as errors


class TestReadinessError:
    """Tests for base error class."""

    def test_error_has_context_cause_fix(self) -> None:
        """Error contains context, cause, and fix."""
        err = errors.ReadinessError(
            context="Loading whitelist",
            cause="Source offline",
            fix="Retry later",
        )

        assert err.context == "Loading whitelist"
        assert err.cause == "Source offline"
        assert err.fix == "Retry later"

    def test_error_message_format(self) -> None:
        """Error message includes all three parts."""
        err = errors.ReadinessError(context="Ctx", cause="Why", fix="How")

        message = str(err)
        assert "Ctx" in message
        assert "Cause: Why" in message
        assert "Fix: How" in message

    def test_to_dict(self) -> None:
        """Serialized form carries the class name as code."""
        err = errors.ConfigNotFoundError("readiness.yaml")

        data = err.to_dict()
        assert data["error"] is True
        assert data["code"] == "ConfigNotFoundError"
        assert "readiness.yaml" in data["context"]


class TestConfigurationErrors:
    def test_config_not_found(self) -> None:
        err = errors.ConfigNotFoundError("/tmp/readiness.yaml")

        assert isinstance(err, errors.ConfigurationError)
        assert "/tmp/readiness.yaml" in err.context
        assert "not found" in err.cause

    def test_config_validation(self) -> None:
        err = errors.ConfigValidationError("readiness.yaml", "  - rules: bad")

        assert err.cause == "  - rules: bad"

    def test_field_definition_error_names_missing_attribute(self) -> None:
        err = errors.FieldDefinitionError("FieldDef", "key")

        assert isinstance(err, errors.ConfigurationError)
        assert err.missing == "key"
        assert "'key'" in err.cause

    def test_unknown_field_lists_known_fields(self) -> None:
        err = errors.UnknownFieldError("NOPE", ["MEINS", "WAERS"])

        assert err.cause == "Unknown field: 'NOPE' has no registered field definition"
        assert "MEINS, WAERS" in err.fix

    def test_unknown_field_without_registry(self) -> None:
        err = errors.UnknownFieldError("NOPE")

        assert "(none)" in err.fix


class TestWhitelistErrors:
    def test_loader_not_registered(self) -> None:
        err = errors.LoaderNotRegisteredError("T006")

        assert isinstance(err, errors.WhitelistError)
        assert err.key == "T006"
        assert err.cause == "No loader registered for cache key: T006"

    def test_whitelist_load_error(self) -> None:
        err = errors.WhitelistLoadError("TCURC", "Loader failed: boom")

        assert isinstance(err, errors.WhitelistError)
        assert err.cause == "Loader failed: boom"


class TestSourceErrors:
    def test_entity_not_found(self) -> None:
        err = errors.EntityNotFoundError("Z_I_Materials")

        assert isinstance(err, errors.SourceError)
        assert err.entity_set == "Z_I_Materials"
        assert err.cause == "Entity or data not found"

    def test_source_timeout(self) -> None:
        err = errors.SourceTimeoutError("Z_I_Materials", 2.5)

        assert isinstance(err, errors.SourceError)
        assert "2.5s" in err.cause

    def test_report_submission(self) -> None:
        err = errors.ReportSubmissionError("EUDR", "sink offline")

        assert err.regulation == "EUDR"
        assert "EUDR" in err.context
        assert err.cause == "sink offline"
