"""Scout lifecycle engine: create, poll, and finish browser executions.

A scout (and each of its re-runs) moves ``pending -> running -> completed|error``.
Progress is driven entirely by callers polling ``refresh``/``refresh_run``; the
engine keeps no state between calls and re-reads the store before every write.
Terminal writes are conditional on the stored status still being active, so
concurrent pollers produce at most one terminal write and the loser returns
what the winner stored.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol, TypeVar

from scout_service.browser.client import (
    BrowserSession,
    BrowserSessionDetail,
    BrowserTask,
    BrowserTaskDetail,
)
from scout_service.errors import (
    AuthenticationError,
    ConfigurationError,
    NotFoundError,
    ScoutServiceError,
    UpstreamError,
    ValidationError,
)
from scout_service.scouts.ids import new_run_id, new_scout_id
from scout_service.scouts.prompts import build_task_prompt
from scout_service.storage.base import RunConflictError, ScoutStorage
from scout_service.storage.models import (
    ACTIVE_STATUSES,
    RunRecord,
    ScoutRecord,
    ScoutStatus,
    TerminalUpdate,
    is_terminal,
)

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100
DEFAULT_TASK_ERROR = "Task failed"

RecordT = TypeVar("RecordT", ScoutRecord, RunRecord)


class BrowserProvider(Protocol):
    def create_session(self) -> BrowserSession: ...

    def create_task(self, session_id: str, task: str) -> BrowserTask: ...

    def get_session(self, session_id: str) -> BrowserSessionDetail: ...

    def get_task(self, task_id: str) -> BrowserTaskDetail: ...

    def stop_session(self, session_id: str) -> None: ...


class ResultProcessor(Protocol):
    def process(self, raw_output: str, result_action: str) -> str: ...


@dataclass(frozen=True)
class PollOutcome:
    """What one provider poll observed for an active execution."""

    status: ScoutStatus
    result: str | None = None
    error: str | None = None
    screenshots: list[str] = field(default_factory=list)

    @property
    def finished(self) -> bool:
        return is_terminal(self.status)

    def terminal_update(self, completed_at: int) -> TerminalUpdate:
        return TerminalUpdate(
            status=self.status,
            result=self.result,
            error=self.error,
            completed_at=completed_at,
            screenshots=list(self.screenshots),
        )


@dataclass(frozen=True)
class _Launch:
    session_id: str
    live_url: str


class ScoutLifecycle:
    def __init__(
        self,
        *,
        storage: ScoutStorage,
        browser: BrowserProvider,
        result_processor: ResultProcessor | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.storage = storage
        self.browser = browser
        self.result_processor = result_processor
        self._clock = clock

    def create(
        self,
        *,
        name: str,
        instructions: str,
        payer: str,
        result_action: str | None = None,
    ) -> ScoutRecord:
        self.validate_new_scout(name=name, instructions=instructions, payer=payer)
        name = name.strip()
        instructions = instructions.strip()
        payer = payer.strip()
        action = (result_action or "").strip()

        launch = self._launch(instructions, action)
        scout_id = new_scout_id()
        try:
            scout = self.storage.create_scout(
                scout_id=scout_id,
                user_id=payer,
                name=name,
                instructions=instructions,
                result_action=action,
                session_id=launch.session_id,
                live_url=launch.live_url,
                started_at=self._now(),
            )
        except Exception as exc:
            logger.exception("scout_lifecycle event=persist_failed scout_id=%s", scout_id)
            self._stop_session_quietly(launch.session_id)
            raise UpstreamError("Failed to save scout") from exc

        logger.info(
            "scout_lifecycle event=scout_created scout_id=%s session_id=%s",
            scout.scout_id,
            scout.session_id,
        )
        return scout

    def get(self, scout_id: str) -> ScoutRecord:
        scout = self.storage.get_scout(scout_id)
        if scout is None:
            raise NotFoundError("Scout not found", details={"scoutId": scout_id})
        return scout

    def refresh(self, scout_id: str) -> ScoutRecord:
        scout = self.get(scout_id)
        return self._advance(
            scout,
            result_action=scout.result_action,
            label=f"scout_id={scout_id}",
            mark_running=lambda: self.storage.mark_scout_running(scout_id),
            complete=lambda update: self.storage.complete_scout(scout_id, update),
            reload=lambda: self.get(scout_id),
        )

    def validate_new_scout(self, *, name: str, instructions: str, payer: str) -> None:
        """Checks run before any payment is taken."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Scout name is required")
        if len(name) > MAX_NAME_LENGTH:
            raise ValidationError(f"Scout name must be at most {MAX_NAME_LENGTH} characters")
        if not (instructions or "").strip():
            raise ValidationError("Scout instructions are required")
        if not (payer or "").strip():
            raise ValidationError("Payer wallet address is required")

    def ensure_can_run(self, scout_id: str, *, payer: str) -> ScoutRecord:
        """Owner and single-active-run checks, refreshing a stale active run first."""
        payer = (payer or "").strip()
        if not payer:
            raise ValidationError("Payer wallet address is required")
        scout = self.get(scout_id)
        if scout.user_id.lower() != payer.lower():
            raise AuthenticationError("Scout belongs to a different wallet")

        active = self.current_run(scout_id)
        if active is not None:
            active = self.refresh_run(scout_id, active.run_id)
        if active is not None and active.status in ACTIVE_STATUSES:
            raise ValidationError(
                "Scout already has an active run",
                details={"runId": active.run_id},
            )
        return scout

    def start_run(self, scout_id: str, *, payer: str) -> RunRecord:
        scout = self.ensure_can_run(scout_id, payer=payer)
        launch = self._launch(scout.instructions, scout.result_action)
        run_id = new_run_id()
        try:
            run = self.storage.create_run(
                run_id=run_id,
                scout_id=scout_id,
                session_id=launch.session_id,
                live_url=launch.live_url,
                started_at=self._now(),
            )
        except RunConflictError as exc:
            self._stop_session_quietly(launch.session_id)
            raise ValidationError("Scout already has an active run") from exc
        except Exception as exc:
            logger.exception("scout_lifecycle event=persist_failed run_id=%s", run_id)
            self._stop_session_quietly(launch.session_id)
            raise UpstreamError("Failed to save run") from exc

        logger.info(
            "scout_lifecycle event=run_started scout_id=%s run_id=%s session_id=%s",
            scout_id,
            run.run_id,
            run.session_id,
        )
        return run

    def refresh_run(self, scout_id: str, run_id: str) -> RunRecord:
        scout = self.get(scout_id)
        run = self._get_run(scout_id, run_id)
        return self._advance(
            run,
            result_action=scout.result_action,
            label=f"scout_id={scout_id} run_id={run_id}",
            mark_running=lambda: self.storage.mark_run_running(run_id),
            complete=lambda update: self.storage.complete_run(run_id, update),
            reload=lambda: self._get_run(scout_id, run_id),
        )

    def list_runs(self, scout_id: str) -> list[RunRecord]:
        self.get(scout_id)
        return self.storage.list_runs(scout_id)

    def current_run(self, scout_id: str) -> RunRecord | None:
        for run in self.list_runs(scout_id):
            if run.status in ACTIVE_STATUSES:
                return run
        return None

    def _get_run(self, scout_id: str, run_id: str) -> RunRecord:
        run = self.storage.get_run(run_id)
        if run is None or run.scout_id != scout_id:
            raise NotFoundError("Run not found", details={"scoutId": scout_id, "runId": run_id})
        return run

    def _advance(
        self,
        record: RecordT,
        *,
        result_action: str,
        label: str,
        mark_running: Callable[[], RecordT | None],
        complete: Callable[[TerminalUpdate], RecordT | None],
        reload: Callable[[], RecordT],
    ) -> RecordT:
        if not record.session_id or is_terminal(record.status):
            return record

        outcome = self.poll(record.session_id, result_action=result_action, label=label)
        if outcome is None:
            return record

        if not outcome.finished:
            if record.status == "running":
                return record
            return mark_running() or reload()

        updated = complete(outcome.terminal_update(self._now()))
        if updated is None:
            logger.info("scout_lifecycle event=terminal_write_skipped %s", label)
            return reload()

        logger.info("scout_lifecycle event=finished %s status=%s", label, updated.status)
        return updated

    def poll(
        self,
        session_id: str,
        *,
        result_action: str = "",
        label: str = "",
    ) -> PollOutcome | None:
        """Observe one execution; ``None`` means the provider could not be reached."""
        try:
            session = self.browser.get_session(session_id)
        except ConfigurationError:
            raise
        except UpstreamError as exc:
            logger.warning(
                "scout_lifecycle event=status_poll_failed %s session_id=%s error=%s",
                label,
                session_id,
                exc,
            )
            return None

        task = session.first_task()
        if task is None or not task.is_finished:
            return PollOutcome(status="running")

        screenshots = self._screenshots(task.id, label=label)
        output = task.output or ""
        if not task.succeeded:
            return PollOutcome(
                status="error",
                error=output or DEFAULT_TASK_ERROR,
                screenshots=screenshots,
            )

        result = output
        if result_action.strip():
            result = self._process_result(output, result_action, label=label)
        return PollOutcome(status="completed", result=result, screenshots=screenshots)

    def _screenshots(self, task_id: str, *, label: str) -> list[str]:
        try:
            return self.browser.get_task(task_id).screenshots()
        except UpstreamError as exc:
            logger.warning(
                "scout_lifecycle event=screenshots_failed %s task_id=%s error=%s",
                label,
                task_id,
                exc,
            )
            return []

    def _process_result(self, raw_output: str, result_action: str, *, label: str) -> str:
        if self.result_processor is None:
            logger.warning("scout_lifecycle event=result_processor_missing %s", label)
            return raw_output
        try:
            return self.result_processor.process(raw_output, result_action)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "scout_lifecycle event=result_processing_failed %s error=%s",
                label,
                exc,
            )
            return raw_output

    def _launch(self, instructions: str, result_action: str) -> _Launch:
        session = self.browser.create_session()
        if not session.id or not session.live_url:
            self._stop_session_quietly(session.id)
            raise UpstreamError("Browser provider returned an incomplete session")

        try:
            self.browser.create_task(session.id, build_task_prompt(instructions, result_action))
        except ScoutServiceError:
            logger.error("scout_lifecycle event=task_create_failed session_id=%s", session.id)
            self._stop_session_quietly(session.id)
            raise
        return _Launch(session_id=session.id, live_url=session.live_url)

    def _stop_session_quietly(self, session_id: str) -> None:
        if not session_id:
            return
        try:
            self.browser.stop_session(session_id)
        except ScoutServiceError as exc:
            logger.warning(
                "scout_lifecycle event=session_stop_failed session_id=%s error=%s",
                session_id,
                exc,
            )

    def _now(self) -> int:
        return int(self._clock())
