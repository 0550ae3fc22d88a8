from __future__ import annotations

import asyncio
import contextlib
import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable

from app.analytics.db import log_screening_run
from app.core.config import settings
from app.schemas.screening import ScreeningCriteria
from app.screening.aggregator import ResultAggregator
from app.screening.analyzer import ResumeAnalyzer, is_processing_error
from app.screening.intake import Document, IntakeResult, partition_uploads
from app.screening.report import ReportExportError, export_csv, partition_verdicts, report_filename
from app.screening.scheduler import Analyzer, BatchScheduler
from app.screening.state import RunState, RunStatus

logger = logging.getLogger(__name__)


class ScreeningServiceError(RuntimeError):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def _short_hash(value: str | None) -> str:
    normalized = (value or "").strip()
    if not normalized:
        return ""
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:12]


@dataclass
class ScreeningSession:
    session_id: str
    queue: list[Document] = field(default_factory=list)
    run: RunState | None = None
    task: asyncio.Task | None = None
    last_seen: float = 0.0

    @property
    def is_running(self) -> bool:
        return self.run is not None and not self.run.is_terminal


class ScreeningService:
    """Per-session intake queues and screening runs for one process.

    Each session owns at most one RunState. Starting a run hands the queued
    documents over to a fresh RunState; the previous run is discarded.
    """

    def __init__(
        self,
        analyzer_factory: Callable[[], Analyzer] = ResumeAnalyzer,
        *,
        batch_size: int | None = None,
        grace_period_s: float | None = None,
        log_limit: int | None = None,
        session_ttl_s: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._analyzer_factory = analyzer_factory
        self._analyzer: Analyzer | None = None
        self._batch_size = batch_size or settings.screening_batch_size
        self._grace_period_s = settings.screening_grace_period_s if grace_period_s is None else grace_period_s
        self._log_limit = log_limit or settings.screening_log_limit
        self._session_ttl_s = session_ttl_s or settings.screening_session_ttl_s
        self._clock = clock
        self._sessions: dict[str, ScreeningSession] = {}

    @property
    def batch_size(self) -> int:
        return self._batch_size

    def _analyzer_instance(self) -> Analyzer:
        if self._analyzer is None:
            self._analyzer = self._analyzer_factory()
        return self._analyzer

    def purge_idle_sessions(self) -> int:
        """Forget sessions untouched for longer than the TTL. Running sessions are kept."""
        cutoff = self._clock() - self._session_ttl_s
        expired = [
            session_id
            for session_id, session in self._sessions.items()
            if session.last_seen <= cutoff and not session.is_running
        ]
        for session_id in expired:
            del self._sessions[session_id]
        if expired:
            logger.info("screening_sessions_expired count=%s remaining=%s", len(expired), len(self._sessions))
        return len(expired)

    def _lookup(self, session_id: str) -> ScreeningSession | None:
        self.purge_idle_sessions()
        session = self._sessions.get(session_id)
        if session is not None:
            session.last_seen = self._clock()
        return session

    def _session(self, session_id: str) -> ScreeningSession:
        session = self._lookup(session_id)
        if session is None:
            session = ScreeningSession(session_id=session_id, last_seen=self._clock())
            self._sessions[session_id] = session
        return session

    def _existing_session(self, session_id: str) -> ScreeningSession:
        session = self._lookup(session_id)
        if session is None:
            raise ScreeningServiceError("Screening session not found.", status_code=404)
        return session

    def add_files(self, session_id: str, files: Iterable[Document]) -> tuple[IntakeResult, list[Document]]:
        session = self._session(session_id)
        if session.is_running:
            raise ScreeningServiceError("A screening run is in progress. Abort it before adding files.", status_code=409)
        result = partition_uploads(files)
        session.queue.extend(result.accepted)
        logger.info(
            "screening_intake session=%s accepted=%s rejected=%s queued=%s",
            _short_hash(session_id),
            len(result.accepted),
            result.rejected_count,
            len(session.queue),
        )
        return result, list(session.queue)

    def get_queue(self, session_id: str) -> list[Document]:
        session = self._lookup(session_id)
        return list(session.queue) if session else []

    def clear_queue(self, session_id: str) -> None:
        session = self._lookup(session_id)
        if session is not None:
            session.queue.clear()

    def start_run(self, session_id: str, criteria: ScreeningCriteria) -> RunState:
        session = self._session(session_id)
        if session.is_running:
            raise ScreeningServiceError("A screening run is already in progress.", status_code=409)
        if not session.queue:
            raise ScreeningServiceError("Add at least one resume before starting a screening run.")

        state = RunState(session.queue, criteria, log_limit=self._log_limit)
        session.queue = []
        session.run = state

        scheduler = BatchScheduler(
            self._analyzer_instance(),
            batch_size=self._batch_size,
            grace_period_s=self._grace_period_s,
        )
        session.task = asyncio.create_task(self._drive(session_id, scheduler, state))
        return state

    async def _drive(self, session_id: str, scheduler: BatchScheduler, state: RunState) -> None:
        try:
            await scheduler.run(state, ResultAggregator(state))
        except asyncio.CancelledError:
            logger.info("screening_run_cancelled run_id=%s", state.run_id)
            raise
        except Exception as exc:  # pragma: no cover - scheduler contains item failures
            logger.error("screening_run_crashed run_id=%s: %s", state.run_id, exc, exc_info=True)
            state.request_abort()
            state.finish(RunStatus.ABORTED)
        finally:
            session = self._sessions.get(session_id)
            if session is not None:
                session.last_seen = self._clock()
            self._record_run(session_id, state)

    def _record_run(self, session_id: str, state: RunState) -> None:
        partition = partition_verdicts(state.verdicts)
        try:
            log_screening_run(
                run_id=state.run_id,
                session_hash=_short_hash(session_id),
                role=state.criteria.role,
                status=state.status.value,
                total=state.total,
                processed=state.processed,
                passed=len(partition.passed),
                failed=len(partition.failed),
                errors=sum(1 for verdict in state.verdicts if is_processing_error(verdict)),
                started_at=state.started_at,
                finished_at=state.finished_at,
            )
        except Exception:  # pragma: no cover - analytics must not break screening
            logger.debug("screening_run_logging_failed", exc_info=True)

    def get_run(self, session_id: str) -> RunState:
        session = self._existing_session(session_id)
        if session.run is None:
            raise ScreeningServiceError("No screening run for this session.", status_code=404)
        return session.run

    def request_abort(self, session_id: str) -> RunState:
        state = self.get_run(session_id)
        if state.is_terminal:
            raise ScreeningServiceError("The screening run has already finished.", status_code=409)
        state.request_abort()
        logger.info("screening_run_abort_requested run_id=%s processed=%s", state.run_id, state.processed)
        return state

    def finished_run(self, session_id: str) -> RunState:
        state = self.get_run(session_id)
        if not state.is_terminal:
            raise ScreeningServiceError("The screening run is still in progress.", status_code=409)
        return state

    def build_report(self, session_id: str) -> tuple[str, str]:
        state = self.finished_run(session_id)
        try:
            content = export_csv(state.verdicts)
        except ReportExportError as exc:
            logger.error("screening_report_failed run_id=%s: %s", state.run_id, exc)
            raise ScreeningServiceError("Report export failed. Please try again.", status_code=exc.status_code) from exc
        return report_filename(settings.report_product_name), content

    async def discard(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        await self._cancel(session)

    async def _cancel(self, session: ScreeningSession) -> None:
        task = session.task
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def shutdown(self) -> None:
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            await self._cancel(session)


screening_service = ScreeningService()


def get_screening_service() -> ScreeningService:
    return screening_service
