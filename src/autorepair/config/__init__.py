"""Repair configuration: categories, per-category options, management surface."""

from .models import CategoryOptions, RepairCategory, RepairConfig
from .service import RepairConfigService

__all__ = [
    "CategoryOptions",
    "RepairCategory",
    "RepairConfig",
    "RepairConfigService",
]
