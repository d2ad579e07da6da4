"""Service layer helpers (settings, persistence, scheduling)."""

from .scheduling import AsyncioScheduler, DebouncedTask, Scheduler
from .settings import Settings, SettingsStore

__all__ = [
    "AsyncioScheduler",
    "DebouncedTask",
    "Scheduler",
    "Settings",
    "SettingsStore",
]
