"""PostgreSQL-backed storage with automatic table migration."""

from __future__ import annotations

import json
import threading
from datetime import UTC, datetime
from typing import Any

from scout_service.storage.base import RunConflictError
from scout_service.storage.models import RunRecord, ScoutRecord, TerminalUpdate

_ACTIVE_SQL = "('pending', 'running')"


class PostgresScoutStorage:
    """Persist scouts and their runs in PostgreSQL."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("SCOUT_SERVICE_DATABASE_URL is required")
        self.database_url = database_url
        self._lock = threading.Lock()
        self._psycopg, self._dict_row = self._load_psycopg()

    def migrate(self) -> None:
        with self._lock, self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS scouts (
                    scout_id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    instructions TEXT NOT NULL,
                    result_action TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL,
                    session_id TEXT,
                    live_url TEXT,
                    result TEXT,
                    error TEXT,
                    screenshots TEXT,
                    started_at BIGINT NOT NULL,
                    completed_at BIGINT,
                    created_at TIMESTAMPTZ NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_scouts_user_id
                ON scouts(user_id, created_at DESC)
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS runs (
                    run_id TEXT PRIMARY KEY,
                    scout_id TEXT NOT NULL REFERENCES scouts(scout_id),
                    status TEXT NOT NULL,
                    session_id TEXT,
                    live_url TEXT,
                    result TEXT,
                    error TEXT,
                    screenshots TEXT,
                    started_at BIGINT NOT NULL,
                    completed_at BIGINT,
                    created_at TIMESTAMPTZ NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_runs_scout_id
                ON runs(scout_id, created_at DESC)
                """)
            # At most one active run per scout, enforced at write time.
            conn.execute(f"""
                CREATE UNIQUE INDEX IF NOT EXISTS uq_runs_active_scout
                ON runs(scout_id)
                WHERE status IN {_ACTIVE_SQL}
                """)
            conn.commit()

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
        now = datetime.now(tz=UTC)
        with self._lock, self._connect() as conn:
            row = conn.execute(
                """
                INSERT INTO scouts (
                    scout_id,
                    user_id,
                    name,
                    instructions,
                    result_action,
                    status,
                    session_id,
                    live_url,
                    started_at,
                    created_at,
                    updated_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (
                    scout_id,
                    user_id,
                    name,
                    instructions,
                    result_action,
                    "pending",
                    session_id,
                    live_url,
                    started_at,
                    now,
                    now,
                ),
            ).fetchone()
            conn.commit()
        if row is None:
            raise RuntimeError("Failed to persist scout")
        return self._row_to_scout(row)

    def get_scout(self, scout_id: str) -> ScoutRecord | None:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM scouts WHERE scout_id = %s",
                (scout_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_scout(row)

    def list_scouts(self, user_id: str) -> list[ScoutRecord]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM scouts WHERE user_id = %s ORDER BY created_at DESC",
                (user_id,),
            ).fetchall()
        return [self._row_to_scout(row) for row in rows]

    def mark_scout_running(self, scout_id: str) -> ScoutRecord | None:
        row = self._execute_returning(
            f"""
            UPDATE scouts
            SET status = 'running', updated_at = %s
            WHERE scout_id = %s AND status IN {_ACTIVE_SQL}
            RETURNING *
            """,
            (datetime.now(tz=UTC), scout_id),
        )
        return self._row_to_scout(row) if row is not None else None

    def complete_scout(self, scout_id: str, update: TerminalUpdate) -> ScoutRecord | None:
        row = self._execute_returning(
            f"""
            UPDATE scouts
            SET status = %s,
                result = %s,
                error = %s,
                completed_at = %s,
                screenshots = %s,
                updated_at = %s
            WHERE scout_id = %s AND status IN {_ACTIVE_SQL}
            RETURNING *
            """,
            (*self._terminal_params(update), scout_id),
        )
        return self._row_to_scout(row) if row is not None else None

    def create_run(
        self,
        *,
        run_id: str,
        scout_id: str,
        session_id: str,
        live_url: str,
        started_at: int,
    ) -> RunRecord:
        now = datetime.now(tz=UTC)
        try:
            row = self._execute_returning(
                """
                INSERT INTO runs (
                    run_id,
                    scout_id,
                    status,
                    session_id,
                    live_url,
                    started_at,
                    created_at,
                    updated_at
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (run_id, scout_id, "pending", session_id, live_url, started_at, now, now),
            )
        except self._psycopg.errors.UniqueViolation as exc:
            raise RunConflictError(f"Scout {scout_id} already has an active run") from exc
        if row is None:
            raise RuntimeError("Failed to persist run")
        return self._row_to_run(row)

    def get_run(self, run_id: str) -> RunRecord | None:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM runs WHERE run_id = %s",
                (run_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_run(row)

    def list_runs(self, scout_id: str) -> list[RunRecord]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                """
                SELECT *
                FROM runs
                WHERE scout_id = %s
                ORDER BY created_at DESC
                """,
                (scout_id,),
            ).fetchall()
        return [self._row_to_run(row) for row in rows]

    def mark_run_running(self, run_id: str) -> RunRecord | None:
        row = self._execute_returning(
            f"""
            UPDATE runs
            SET status = 'running', updated_at = %s
            WHERE run_id = %s AND status IN {_ACTIVE_SQL}
            RETURNING *
            """,
            (datetime.now(tz=UTC), run_id),
        )
        return self._row_to_run(row) if row is not None else None

    def complete_run(self, run_id: str, update: TerminalUpdate) -> RunRecord | None:
        row = self._execute_returning(
            f"""
            UPDATE runs
            SET status = %s,
                result = %s,
                error = %s,
                completed_at = %s,
                screenshots = %s,
                updated_at = %s
            WHERE run_id = %s AND status IN {_ACTIVE_SQL}
            RETURNING *
            """,
            (*self._terminal_params(update), run_id),
        )
        return self._row_to_run(row) if row is not None else None

    def _execute_returning(self, sql: str, params: tuple[Any, ...]) -> Any:
        with self._lock, self._connect() as conn:
            row = conn.execute(sql, params).fetchone()
            conn.commit()
        return row

    def _connect(self) -> Any:
        return self._psycopg.connect(self.database_url, row_factory=self._dict_row)

    @staticmethod
    def _terminal_params(update: TerminalUpdate) -> tuple[Any, ...]:
        screenshots = json.dumps(update.screenshots) if update.screenshots else None
        return (
            update.status,
            update.result,
            update.error,
            update.completed_at,
            screenshots,
            datetime.now(tz=UTC),
        )

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any]:
        try:
            import psycopg
            from psycopg.rows import dict_row
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "PostgreSQL storage requires psycopg. "
                'Install with: python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row

    @staticmethod
    def _parse_screenshots(raw: Any) -> list[str]:
        if raw is None or raw == "":
            return []
        parsed = json.loads(raw) if isinstance(raw, str) else raw
        if not isinstance(parsed, list):
            return []
        return [str(item) for item in parsed if item]

    @staticmethod
    def _parse_datetime(raw: Any) -> datetime:
        if isinstance(raw, datetime):
            return raw
        if isinstance(raw, str):
            return datetime.fromisoformat(raw)
        raise TypeError(f"Unsupported datetime value: {type(raw)!r}")

    @staticmethod
    def _optional_int(raw: Any) -> int | None:
        return int(raw) if raw is not None else None

    @classmethod
    def _row_to_scout(cls, row: Any) -> ScoutRecord:
        return ScoutRecord(
            scout_id=str(row["scout_id"]),
            user_id=str(row["user_id"]),
            name=row["name"],
            instructions=row["instructions"],
            result_action=row.get("result_action") or "",
            status=row["status"],
            session_id=row.get("session_id"),
            live_url=row.get("live_url"),
            result=row.get("result"),
            error=row.get("error"),
            screenshots=cls._parse_screenshots(row.get("screenshots")),
            started_at=int(row["started_at"]),
            completed_at=cls._optional_int(row.get("completed_at")),
            created_at=cls._parse_datetime(row["created_at"]),
            updated_at=cls._parse_datetime(row["updated_at"]),
        )

    @classmethod
    def _row_to_run(cls, row: Any) -> RunRecord:
        return RunRecord(
            run_id=str(row["run_id"]),
            scout_id=str(row["scout_id"]),
            status=row["status"],
            session_id=row.get("session_id"),
            live_url=row.get("live_url"),
            result=row.get("result"),
            error=row.get("error"),
            screenshots=cls._parse_screenshots(row.get("screenshots")),
            started_at=int(row["started_at"]),
            completed_at=cls._optional_int(row.get("completed_at")),
            created_at=cls._parse_datetime(row["created_at"]),
            updated_at=cls._parse_datetime(row["updated_at"]),
        )
