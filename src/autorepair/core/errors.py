"""
Structured error types for automated repair.

Every outcome of a repair cycle that is not a plain success is expressed
through this hierarchy, so logs and monitoring can classify it without
string matching.

Manifesto:
    - **Typed outcomes:** a skipped unit is not a failed unit, and neither
      is a broken configuration
    - **Rich context:** errors carry category, keyspace, table and host
    - **Error chaining:** the original exception is kept as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                        RepairError                          │
        │     (category, retryable, context, cause)                   │
        ├─────────────────────────────────────────────────────────────┤
        │                                                             │
        │  ConfigError         UnitOutcome     CycleError             │
        │  (CONFIG)            (UNIT)          (CYCLE)                │
        │       │                 │                                   │
        │  ConfigurationError  UnitSkipped     CoordinationError      │
        │  InvalidConfigError  UnitFailed      (COORDINATION)         │
        └─────────────────────────────────────────────────────────────┘

    ``ConfigurationError`` is fatal and only raised from
    ``RepairScheduler.setup()``.  ``UnitSkipped`` and ``UnitFailed`` are
    counted per cycle and logged; they never abort a cycle.
    ``CycleError`` wraps whatever escaped a cycle so the top-level handler
    can log it with context before the timer moves on.
    ``CoordinationError`` marks a turn decision that could not be made;
    it is logged the same way and the next tick asks again.

Examples:
    >>> err = UnitSkipped("too many fragments", reason=SkipReason.FRAGMENT_THRESHOLD)
    >>> err.with_context(keyspace="ks", table="events").to_dict()["context"]
    {'keyspace': 'ks', 'table': 'events'}

Tags:
    error-handling, exception-hierarchy, repair, autorepair

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories for classification and alert routing."""

    CONFIG = "CONFIG"             # Incompatible features, invalid options
    UNIT = "UNIT"                 # Per-table / per-keyspace outcomes
    CYCLE = "CYCLE"               # Whole-cycle failures
    COORDINATION = "COORDINATION"  # Turn coordinator / history errors
    INTERNAL = "INTERNAL"


class SkipReason(str, Enum):
    """Why a repair unit was not dispatched (or not finished)."""

    DISABLED = "disabled"
    FRAGMENT_THRESHOLD = "fragment_threshold"
    BUDGET_EXCEEDED = "budget_exceeded"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to a repair error.

    Only non-None fields are serialized by ``to_dict()``; anything that
    does not fit a typed field goes into ``metadata``.
    """

    repair_category: str | None = None
    keyspace: str | None = None
    table: str | None = None
    host_id: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["repair_category", "keyspace", "table", "host_id"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class RepairError(Exception):
    """
    Base exception for all autorepair errors.

    Subclasses set ``default_category`` and ``default_retryable``; callers
    may override both per instance.
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
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> RepairError:
        """
        Add context to this error (fluent API).

        Usage:
            raise UnitFailed("group failed").with_context(keyspace="ks", table="t")
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
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(RepairError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class ConfigurationError(ConfigError):
    """Fatal feature-combination error raised at scheduler setup."""


class InvalidConfigError(ConfigError):
    """A management-surface write was rejected."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


# =============================================================================
# UNIT OUTCOMES
# =============================================================================


class UnitOutcome(RepairError):
    """Base for per-unit outcomes that are counted, not propagated."""

    default_category = ErrorCategory.UNIT


class UnitSkipped(UnitOutcome):
    """
    A unit was not repaired for an expected reason.

    Counted as skipped (or disabled), never as failed.
    """

    def __init__(self, message: str, *, reason: SkipReason, table_count: int = 1, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.reason = reason
        self.table_count = table_count

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["reason"] = self.reason.value
        result["table_count"] = self.table_count
        return result


class UnitFailed(UnitOutcome):
    """A dispatched task group failed, raised, or its wait was interrupted."""

    default_retryable = True


# =============================================================================
# CYCLE ERRORS
# =============================================================================


class CycleError(RepairError):
    """Anything that escaped a repair cycle; logged and swallowed."""

    default_category = ErrorCategory.CYCLE


class CoordinationError(RepairError):
    """The turn coordinator or its history store misbehaved."""

    default_category = ErrorCategory.COORDINATION
    default_retryable = True


__all__ = [
    "ErrorCategory",
    "SkipReason",
    "ErrorContext",
    "RepairError",
    "ConfigError",
    "ConfigurationError",
    "InvalidConfigError",
    "UnitOutcome",
    "UnitSkipped",
    "UnitFailed",
    "CycleError",
    "CoordinationError",
]
