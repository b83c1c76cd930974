"""autorepair.core -- shared primitives.

Architecture::

    errors.py      Structured error hierarchy (RepairError, UnitSkipped, ...)
    logging.py     structlog configuration + scoped LogContext
    settings.py    AutoRepairSettings (pydantic-settings, AUTOREPAIR_ prefix)
"""

from .errors import (
    ConfigError,
    ConfigurationError,
    CycleError,
    ErrorCategory,
    ErrorContext,
    RepairError,
    SkipReason,
    UnitFailed,
    UnitSkipped,
)

__all__ = [
    "ConfigError",
    "ConfigurationError",
    "CycleError",
    "ErrorCategory",
    "ErrorContext",
    "RepairError",
    "SkipReason",
    "UnitFailed",
    "UnitSkipped",
]
