"""Process-level settings for autorepair.

Settings that belong to the node process rather than to a repair
category: logging, timer delays and the feature flags that decide
whether incremental repair may be enabled at all.  Per-category repair
options live in :mod:`autorepair.config.models` because they are mutated
at runtime through the management surface.

All fields can be set via ``AUTOREPAIR_*`` environment variables or a
``.env`` file, e.g. ``AUTOREPAIR_INITIAL_DELAY_SECONDS=5``.

Tags:
    settings, configuration, pydantic, environment, autorepair
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AutoRepairSettings(BaseSettings):
    """Node-process configuration for the repair scheduler.

    Fields
    ──────
    log_level               : structlog log level
    log_format              : ``json`` or ``console``
    initial_delay_seconds   : delay before the first timer firing
    quick_cycle_wait_ms     : stall applied after trivially short cycles
    materialized_views_enabled / cdc_enabled
                            : node features that rule out incremental repair
    """

    model_config = SettingsConfigDict(
        env_prefix="AUTOREPAIR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    # ── Timers ───────────────────────────────────────────────────
    initial_delay_seconds: float = Field(default=30.0, ge=0)
    quick_cycle_wait_ms: int = Field(default=60_000, ge=0)

    # ── Node features ────────────────────────────────────────────
    materialized_views_enabled: bool = Field(default=False)
    cdc_enabled: bool = Field(default=False)


_settings_cache: dict[str, AutoRepairSettings] = {}


def get_settings(*, _force_reload: bool = False) -> AutoRepairSettings:
    """Load, validate and cache an :class:`AutoRepairSettings` instance."""
    if _force_reload or "default" not in _settings_cache:
        _settings_cache["default"] = AutoRepairSettings()
    return _settings_cache["default"]


def clear_settings_cache() -> None:
    """Drop the cached settings (tests and CLI reloads)."""
    _settings_cache.clear()
