"""
autorepair - automated anti-entropy repair scheduling.

Decides, per repair category, whether the local node of a replicated
storage cluster should run a repair cycle, and runs it: turn taking via
an external coordinator, fragment-count backpressure, per-unit time
budgets and bounded task-group dispatch.

Layout::

    autorepair.core         errors, structlog logging, process settings
    autorepair.config       repair categories, per-category options,
                            management surface
    autorepair.ring         tokens, ranges, the token range splitter
    autorepair.scheduling   execution state, collaborator protocols,
                            executors, the RepairScheduler
    autorepair.cli          typer CLI (config inspection, simulation)
"""

__version__ = "0.1.0"

from autorepair.config.models import CategoryOptions, RepairCategory, RepairConfig
from autorepair.config.service import RepairConfigService
from autorepair.ring.splitter import TokenRangeSplitter
from autorepair.ring.tokens import RepairAssignment, TokenRange, split_evenly
from autorepair.scheduling.protocol import RepairTurn
from autorepair.scheduling.scheduler import RepairScheduler
from autorepair.scheduling.state import RepairExecutionState, RepairStateSnapshot

__all__ = [
    "__version__",
    "CategoryOptions",
    "RepairCategory",
    "RepairConfig",
    "RepairConfigService",
    "TokenRangeSplitter",
    "RepairAssignment",
    "TokenRange",
    "split_evenly",
    "RepairTurn",
    "RepairScheduler",
    "RepairExecutionState",
    "RepairStateSnapshot",
]
