"""Storage interfaces for the scout and run lifecycle."""

from __future__ import annotations

from typing import Protocol

from scout_service.storage.models import RunRecord, ScoutRecord, TerminalUpdate


class RunConflictError(Exception):
    """Raised when a scout already has an active run."""


class ScoutStorage(Protocol):
    def migrate(self) -> None: ...

    def create_scout(
        self,
        *,
        scout_id: str,
        user_id: str,
        name: str,
        instructions: str,
        result_action: str,
        session_id: str,
        live_url: str,
        started_at: int,
    ) -> ScoutRecord: ...

    def get_scout(self, scout_id: str) -> ScoutRecord | None: ...

    def list_scouts(self, user_id: str) -> list[ScoutRecord]: ...

    def mark_scout_running(self, scout_id: str) -> ScoutRecord | None:
        """Move an active scout to running; returns None when it is no longer active."""
        ...

    def complete_scout(self, scout_id: str, update: TerminalUpdate) -> ScoutRecord | None:
        """Write the terminal state only if the scout is still active."""
        ...

    def create_run(
        self,
        *,
        run_id: str,
        scout_id: str,
        session_id: str,
        live_url: str,
        started_at: int,
    ) -> RunRecord:
        """Insert a pending run; raises RunConflictError when one is already active."""
        ...

    def get_run(self, run_id: str) -> RunRecord | None: ...

    def list_runs(self, scout_id: str) -> list[RunRecord]: ...

    def mark_run_running(self, run_id: str) -> RunRecord | None: ...

    def complete_run(self, run_id: str, update: TerminalUpdate) -> RunRecord | None: ...
