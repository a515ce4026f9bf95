"""Storage models shared by the lifecycle engine and persistence backends."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

ScoutStatus = Literal["pending", "running", "completed", "error"]

ACTIVE_STATUSES: tuple[str, ...] = ("pending", "running")
TERMINAL_STATUSES: tuple[str, ...] = ("completed", "error")


class ScoutRecord(BaseModel):
    """Persisted scout: the user's task definition plus its latest execution state."""

    scout_id: str
    user_id: str
    name: str
    instructions: str
    result_action: str = ""
    status: ScoutStatus
    session_id: str | None = None
    live_url: str | None = None
    result: str | None = None
    error: str | None = None
    screenshots: list[str] = []
    started_at: int
    completed_at: int | None = None
    created_at: datetime
    updated_at: datetime


class RunRecord(BaseModel):
    """One execution attempt of a scout."""

    run_id: str
    scout_id: str
    status: ScoutStatus
    session_id: str | None = None
    live_url: str | None = None
    result: str | None = None
    error: str | None = None
    screenshots: list[str] = []
    started_at: int
    completed_at: int | None = None
    created_at: datetime
    updated_at: datetime


class TerminalUpdate(BaseModel):
    """Fields written when an execution reaches a terminal status."""

    status: ScoutStatus
    result: str | None = None
    error: str | None = None
    completed_at: int
    screenshots: list[str] = []


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES
