"""Storage backends and models."""

from scout_service.storage.base import RunConflictError, ScoutStorage
from scout_service.storage.memory import InMemoryScoutStorage
from scout_service.storage.models import RunRecord, ScoutRecord, TerminalUpdate
from scout_service.storage.postgres import PostgresScoutStorage

__all__ = [
    "InMemoryScoutStorage",
    "PostgresScoutStorage",
    "RunConflictError",
    "RunRecord",
    "ScoutRecord",
    "ScoutStorage",
    "TerminalUpdate",
]
