"""
Structured error types for rulecell.

Every failure raised by the rule-cell harness is a ``RuleCellError`` carrying
a category, an explicit retry flag, structured context (owning table, cell,
URL) and the chained underlying exception. Callers can branch on the type,
log ``to_dict()`` and decide whether re-running the evaluation makes sense.

Manifesto:
    - **Typed hierarchy:** One subclass per failure domain of the harness
    - **Explicit retry semantics:** None of the harness errors is retryable
    - **Rich context:** Table identity and rule body travel with the error
    - **Error chaining:** Transport/parse exceptions are kept as ``cause``

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                        RuleCellError                          │
        │          (category, retryable, context, cause)                │
        ├──────────────────────────────────────────────────────────────┤
        │                                                               │
        │  ConversionError        ContentFetchError   CompilationError  │
        │  (VALIDATION)           (SOURCE)            (COMPILE)         │
        │      │                                                        │
        │  UnsupportedConversionError                 ConfigError       │
        │  UnsupportedTargetError                     (CONFIG)          │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> error = ContentFetchError("Failed to load binary content from URL: x, NCube 'foo'")
    >>> error.retryable
    False
    >>> error.with_context(table_name="foo", table_version="1.0.0").context.table_name
    'foo'

Tags:
    error-handling, exception-hierarchy, error-context, rulecell

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for classification and reporting."""

    VALIDATION = "VALIDATION"     # Value conversion, unsupported targets
    SOURCE = "SOURCE"             # Remote cell content
    COMPILE = "COMPILE"           # Rule source rejected by the compiler
    CONFIG = "CONFIG"             # Missing or invalid settings
    INTERNAL = "INTERNAL"         # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata attached to a ``RuleCellError``.

    Only fields that are set end up in ``to_dict()``. Anything that has no
    dedicated field goes into ``metadata``.

    Attributes:
        table_name: Name of the owning table
        table_version: Version of the owning table
        cell_id: Logical identifier of the cell being evaluated
        unit_name: Generated name of the compiled unit
        url: URL that was being fetched
        http_status: HTTP status code if the server answered
        source_type: Runtime type of a value that failed to convert
        target: Requested conversion target
        metadata: Additional key-value pairs
    """

    # Owning table
    table_name: str | None = None
    table_version: str | None = None
    cell_id: str | None = None
    unit_name: str | None = None

    # Request context
    url: str | None = None
    http_status: int | None = None

    # Conversion context
    source_type: str | None = None
    target: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["table_name", "table_version", "cell_id", "unit_name",
                    "url", "http_status", "source_type", "target"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class RuleCellError(Exception):
    """
    Base exception for all rulecell errors.

    Subclasses set ``default_category`` and ``default_retryable``; both can be
    overridden per instance. When ``cause`` is given it is also installed as
    ``__cause__`` so tracebacks show the chain.

    Examples:
        >>> error = RuleCellError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.to_dict()["retryable"]
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> RuleCellError:
        """
        Add context to this error (fluent API).

        Usage:
            raise CompilationError("bad rule").with_context(
                table_name="rates", table_version="1.0.0"
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }

        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict

        if self.cause is not None:
            result["cause"] = str(self.cause)

        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONVERSION ERRORS
# =============================================================================


class ConversionError(RuleCellError, ValueError):
    """
    A value could not be coerced to a requested kind.

    Caller-correctable, never retryable.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False


class UnsupportedConversionError(ConversionError):
    """The value's runtime type has no rule for the target, or failed to parse."""

    def __init__(self, message: str, *, source_type: str, target: str, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.source_type = source_type
        self.target = target
        self.context.source_type = source_type
        self.context.target = target


class UnsupportedTargetError(ConversionError):
    """The requested target kind is outside the supported set."""

    def __init__(self, target: Any, message: str | None = None, **kwargs: Any):
        self.target = str(target)
        super().__init__(message or f"Unsupported type '{target}' for conversion", **kwargs)
        self.context.target = self.target


# =============================================================================
# SOURCE ERRORS
# =============================================================================


class ContentFetchError(RuleCellError):
    """
    Cell content could not be loaded from its URL.

    Fatal for the current evaluation; a higher layer may re-run the whole
    evaluation, but nothing inside rulecell retries.
    """

    default_category = ErrorCategory.SOURCE
    default_retryable = False


# =============================================================================
# COMPILATION ERRORS
# =============================================================================


class CompilationError(RuleCellError):
    """
    Synthesized rule source was rejected by the compiler.

    Deterministic: compiling the same body again fails the same way.
    """

    default_category = ErrorCategory.COMPILE
    default_retryable = False

    def __init__(self, message: str, *, rule_body: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.rule_body = rule_body

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.rule_body is not None:
            result["rule_body"] = self.rule_body
        return result


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(RuleCellError):
    """Configuration is missing or invalid."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, RuleCellError):
        return error.retryable
    return False


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "RuleCellError",
    "ConversionError",
    "UnsupportedConversionError",
    "UnsupportedTargetError",
    "ContentFetchError",
    "CompilationError",
    "ConfigError",
    "is_retryable",
]
