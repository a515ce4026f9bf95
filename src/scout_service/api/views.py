"""Request bodies and camelCase response projections for the REST surface."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from scout_service.storage.models import RunRecord, ScoutRecord


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class CreateScoutRequest(CamelModel):
    name: str
    instructions: str
    result_action: str | None = None


class CreatedScout(CamelModel):
    scout_id: str
    name: str
    instructions: str
    result_action: str | None = None
    status: str
    session_id: str | None = None
    live_url: str | None = None
    started_at: int

    @classmethod
    def from_record(cls, record: ScoutRecord) -> CreatedScout:
        return cls(
            scout_id=record.scout_id,
            name=record.name,
            instructions=record.instructions,
            result_action=record.result_action or None,
            status=record.status,
            session_id=record.session_id,
            live_url=record.live_url,
            started_at=record.started_at,
        )


class ScoutStatusView(CreatedScout):
    result: str | None = None
    error: str | None = None
    completed_at: int | None = None
    screenshots: list[str] | None = None

    @classmethod
    def from_record(cls, record: ScoutRecord) -> ScoutStatusView:
        return cls(
            scout_id=record.scout_id,
            name=record.name,
            instructions=record.instructions,
            result_action=record.result_action or None,
            status=record.status,
            session_id=record.session_id,
            live_url=record.live_url,
            result=record.result,
            error=record.error,
            started_at=record.started_at,
            completed_at=record.completed_at,
            screenshots=record.screenshots or None,
        )


class RunView(CamelModel):
    run_id: str
    scout_id: str
    status: str
    session_id: str | None = None
    live_url: str | None = None
    result: str | None = None
    error: str | None = None
    started_at: int
    completed_at: int | None = None
    screenshots: list[str] | None = None

    @classmethod
    def from_record(cls, record: RunRecord) -> RunView:
        return cls(
            run_id=record.run_id,
            scout_id=record.scout_id,
            status=record.status,
            session_id=record.session_id,
            live_url=record.live_url,
            result=record.result,
            error=record.error,
            started_at=record.started_at,
            completed_at=record.completed_at,
            screenshots=record.screenshots or None,
        )


class RunHistory(CamelModel):
    scout_id: str
    current_run_id: str | None = None
    runs: list[RunView] = Field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        return {
            "scoutId": self.scout_id,
            "currentRunId": self.current_run_id,
            "runs": [run.to_wire() for run in self.runs],
        }
