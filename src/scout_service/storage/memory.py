"""In-memory storage backend for tests only."""

from __future__ import annotations

import threading
from datetime import UTC, datetime

from scout_service.storage.base import RunConflictError
from scout_service.storage.models import (
    ACTIVE_STATUSES,
    RunRecord,
    ScoutRecord,
    TerminalUpdate,
)


class InMemoryScoutStorage:
    """Simple in-memory implementation for unit tests."""

    def __init__(self) -> None:
        self._scouts: dict[str, ScoutRecord] = {}
        self._runs: list[RunRecord] = []
        self._lock = threading.Lock()
        self.terminal_writes = 0

    def migrate(self) -> None:
        return None

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
    ) -> ScoutRecord:
        now = datetime.now(UTC)
        record = ScoutRecord(
            scout_id=scout_id,
            user_id=user_id,
            name=name,
            instructions=instructions,
            result_action=result_action,
            status="pending",
            session_id=session_id,
            live_url=live_url,
            started_at=started_at,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            if scout_id in self._scouts:
                raise KeyError(f"Scout {scout_id} already exists")
            self._scouts[scout_id] = record
        return record.model_copy(deep=True)

    def get_scout(self, scout_id: str) -> ScoutRecord | None:
        record = self._scouts.get(scout_id)
        return record.model_copy(deep=True) if record else None

    def list_scouts(self, user_id: str) -> list[ScoutRecord]:
        rows = [item for item in self._scouts.values() if item.user_id == user_id]
        rows.sort(key=lambda item: item.created_at, reverse=True)
        return [item.model_copy(deep=True) for item in rows]

    def mark_scout_running(self, scout_id: str) -> ScoutRecord | None:
        with self._lock:
            current = self._scouts.get(scout_id)
            if current is None or current.status not in ACTIVE_STATUSES:
                return None
            updated = current.model_copy(
                update={"status": "running", "updated_at": datetime.now(UTC)}
            )
            self._scouts[scout_id] = updated
        return updated.model_copy(deep=True)

    def complete_scout(self, scout_id: str, update: TerminalUpdate) -> ScoutRecord | None:
        with self._lock:
            current = self._scouts.get(scout_id)
            if current is None or current.status not in ACTIVE_STATUSES:
                return None
            updated = current.model_copy(update=_terminal_fields(update))
            self._scouts[scout_id] = updated
            self.terminal_writes += 1
        return updated.model_copy(deep=True)

    def create_run(
        self,
        *,
        run_id: str,
        scout_id: str,
        session_id: str,
        live_url: str,
        started_at: int,
    ) -> RunRecord:
        now = datetime.now(UTC)
        record = RunRecord(
            run_id=run_id,
            scout_id=scout_id,
            status="pending",
            session_id=session_id,
            live_url=live_url,
            started_at=started_at,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            for item in self._runs:
                if item.scout_id == scout_id and item.status in ACTIVE_STATUSES:
                    raise RunConflictError(f"Scout {scout_id} already has an active run")
            self._runs.append(record)
        return record.model_copy(deep=True)

    def get_run(self, run_id: str) -> RunRecord | None:
        for item in self._runs:
            if item.run_id == run_id:
                return item.model_copy(deep=True)
        return None

    def list_runs(self, scout_id: str) -> list[RunRecord]:
        rows = [item for item in reversed(self._runs) if item.scout_id == scout_id]
        return [item.model_copy(deep=True) for item in rows]

    def mark_run_running(self, run_id: str) -> RunRecord | None:
        return self._replace_active_run(
            run_id, {"status": "running", "updated_at": datetime.now(UTC)}
        )

    def complete_run(self, run_id: str, update: TerminalUpdate) -> RunRecord | None:
        updated = self._replace_active_run(run_id, _terminal_fields(update))
        if updated is not None:
            self.terminal_writes += 1
        return updated

    def _replace_active_run(self, run_id: str, fields: dict) -> RunRecord | None:
        with self._lock:
            for index, item in enumerate(self._runs):
                if item.run_id != run_id:
                    continue
                if item.status not in ACTIVE_STATUSES:
                    return None
                updated = item.model_copy(update=fields)
                self._runs[index] = updated
                return updated.model_copy(deep=True)
        return None


def _terminal_fields(update: TerminalUpdate) -> dict:
    return {
        "status": update.status,
        "result": update.result,
        "error": update.error,
        "completed_at": update.completed_at,
        "screenshots": list(update.screenshots),
        "updated_at": datetime.now(UTC),
    }
