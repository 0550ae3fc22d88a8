from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Iterable, Sequence

from app.schemas.screening import CandidateVerdict

EXPORT_COLUMNS = (
    "Candidate ID",
    "Name",
    "Current Role",
    "Experience (Yrs)",
    "Match Score",
    "Status",
    "Flags",
    "Screener Note",
    "Bias Check",
    "Tech Skills",
    "Referee Verdict",
)
FLAG_DELIMITER = ", "


class ReportExportError(RuntimeError):
    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class VerdictPartition:
    passed: tuple[CandidateVerdict, ...]
    failed: tuple[CandidateVerdict, ...]


def partition_verdicts(verdicts: Iterable[CandidateVerdict]) -> VerdictPartition:
    passed: list[CandidateVerdict] = []
    failed: list[CandidateVerdict] = []
    for verdict in verdicts:
        if verdict.status == "passed":
            passed.append(verdict)
        else:
            failed.append(verdict)
    return VerdictPartition(passed=tuple(passed), failed=tuple(failed))


def verdict_to_row(verdict: CandidateVerdict) -> list[str]:
    notes = verdict.agent_notes
    return [
        verdict.id,
        verdict.name,
        verdict.role,
        str(verdict.experience),
        str(verdict.match_score),
        verdict.status,
        FLAG_DELIMITER.join(verdict.flags),
        notes.screener,
        notes.bias_check,
        notes.tech,
        notes.referee,
    ]


def export_csv(verdicts: Sequence[CandidateVerdict]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    try:
        writer.writerow(EXPORT_COLUMNS)
        for verdict in verdicts:
            writer.writerow(verdict_to_row(verdict))
    except (csv.Error, TypeError, ValueError) as exc:
        raise ReportExportError(f"Could not build the screening report: {exc}") from exc
    return buffer.getvalue()


def report_filename(product: str, today: date | None = None) -> str:
    day = today or datetime.now(timezone.utc).date()
    slug = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in (product or "").strip().lower()) or "report"
    return f"{slug}_resume_report_{day.isoformat()}.csv"
