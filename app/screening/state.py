from __future__ import annotations

import uuid
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable

from app.schemas.screening import CandidateVerdict, LogSeverity, ScreeningCriteria
from app.screening.intake import Document


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


TERMINAL_STATUSES = {RunStatus.COMPLETED, RunStatus.ABORTED}


@dataclass(frozen=True)
class LogEntry:
    seq: int
    source: str
    message: str
    severity: LogSeverity
    created_at: datetime


class RunState:
    """Working state of one screening run.

    Created fresh for every run and never reused. The scheduler and the
    aggregator are the only writers; ``request_abort`` is the single entry
    point for outside callers.
    """

    def __init__(
        self,
        documents: Iterable[Document],
        criteria: ScreeningCriteria,
        *,
        log_limit: int = 10,
        run_id: str | None = None,
    ):
        self.run_id = run_id or uuid.uuid4().hex
        self.criteria = criteria
        self.queue: tuple[Document, ...] = tuple(documents)
        self._total = len(self.queue)
        self.processed = 0
        self.verdicts: list[CandidateVerdict] = []
        self.log: deque[LogEntry] = deque(maxlen=max(1, log_limit))
        self.abort_requested = False
        self.status = RunStatus.IDLE
        self.started_at: datetime | None = None
        self.finished_at: datetime | None = None
        self._log_seq = 0

    @property
    def total(self) -> int:
        return self._total

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def request_abort(self) -> None:
        self.abort_requested = True

    def mark_running(self) -> None:
        if self.status is not RunStatus.IDLE:
            raise RuntimeError(f"Run {self.run_id} cannot start from status '{self.status.value}'.")
        self.status = RunStatus.RUNNING
        self.started_at = _utc_now()

    def finish(self, status: RunStatus) -> None:
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"'{status.value}' is not a terminal status.")
        if self.is_terminal:
            return
        self.status = status
        self.finished_at = _utc_now()
        # Resume bytes live only for the duration of the run.
        self.queue = ()

    def append_log(self, source: str, message: str, severity: LogSeverity = "info") -> LogEntry:
        self._log_seq += 1
        entry = LogEntry(
            seq=self._log_seq,
            source=source,
            message=message,
            severity=severity,
            created_at=_utc_now(),
        )
        self.log.append(entry)
        return entry

    def logs_since(self, seq: int) -> list[LogEntry]:
        return [entry for entry in self.log if entry.seq > seq]
