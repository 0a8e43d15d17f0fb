"""Tests for rulecell.errors module."""

import pytest

from rulecell.errors import (
    CompilationError,
    ConfigError,
    ContentFetchError,
    ConversionError,
    ErrorCategory,
    ErrorContext,
    RuleCellError,
    UnsupportedConversionError,
    UnsupportedTargetError,
    is_retryable,
)


class TestErrorContext:
    """Test ErrorContext dataclass."""

    def test_create_empty_context(self):
        ctx = ErrorContext()
        assert ctx.table_name is None
        assert ctx.url is None
        assert ctx.metadata == {}
        assert ctx.to_dict() == {}

    def test_to_dict_includes_set_fields(self):
        """to_dict includes only non-None fields plus metadata."""
        ctx = ErrorContext(table_name="rates", http_status=404, metadata={"attempt": 1})
        d = ctx.to_dict()
        assert d == {"table_name": "rates", "http_status": 404, "attempt": 1}
        assert "table_version" not in d


class TestRuleCellError:
    """Test the base error."""

    def test_defaults(self):
        error = RuleCellError("Something went wrong")
        assert error.message == "Something went wrong"
        assert str(error) == "Something went wrong"
        assert error.category == ErrorCategory.INTERNAL
        assert error.retryable is False
        assert error.cause is None

    def test_cause_is_chained(self):
        original = KeyError("x")
        error = RuleCellError("wrapped", cause=original)
        assert error.cause is original
        assert error.__cause__ is original
        assert error.to_dict()["cause"] == str(original)

    def test_with_context_sets_fields_and_metadata(self):
        error = RuleCellError("boom").with_context(table_name="rates", attempt=3)
        assert error.context.table_name == "rates"
        assert error.context.metadata == {"attempt": 3}

    def test_with_context_cannot_replace_metadata(self):
        error = RuleCellError("boom").with_context(metadata="oops")
        assert error.context.metadata == {"metadata": "oops"}

    def test_to_dict(self):
        error = CompilationError("bad rule", rule_body="return (").with_context(table_name="rates")
        d = error.to_dict()
        assert d["error_type"] == "CompilationError"
        assert d["category"] == "COMPILE"
        assert d["retryable"] is False
        assert d["context"] == {"table_name": "rates"}
        assert d["rule_body"] == "return ("

    def test_repr(self):
        assert repr(ConfigError("missing")) == "ConfigError('missing', category=CONFIG)"


class TestHierarchy:
    """Subclasses carry their category and are never retryable."""

    @pytest.mark.parametrize(
        "error, category",
        [
            (ConversionError("x"), ErrorCategory.VALIDATION),
            (UnsupportedTargetError("uuid"), ErrorCategory.VALIDATION),
            (ContentFetchError("x"), ErrorCategory.SOURCE),
            (CompilationError("x"), ErrorCategory.COMPILE),
            (ConfigError("x"), ErrorCategory.CONFIG),
        ],
    )
    def test_category(self, error, category):
        assert error.category == category
        assert isinstance(error, RuleCellError)
        assert not is_retryable(error)

    def test_conversion_errors_are_value_errors(self):
        with pytest.raises(ValueError):
            raise UnsupportedConversionError("nope", source_type="builtins.object", target="int64")

    def test_unsupported_conversion_context(self):
        error = UnsupportedConversionError("nope", source_type="builtins.object", target="int64")
        assert error.source_type == "builtins.object"
        assert error.context.target == "int64"

    def test_unsupported_target_message(self):
        error = UnsupportedTargetError("uuid")
        assert error.target == "uuid"
        assert "uuid" in error.message
        assert error.context.target == "uuid"

    def test_is_retryable_foreign_exception(self):
        assert is_retryable(RuntimeError("x")) is False

    def test_retryable_override(self):
        assert is_retryable(RuleCellError("x", retryable=True)) is True
