from __future__ import annotations

from app.core.screening_policy import get_policy_value
from app.schemas.screening import CandidateVerdict
from app.screening.analyzer import is_processing_error
from app.screening.intake import Document
from app.screening.state import RunState


class ResultAggregator:
    """Folds resolved verdicts into a RunState and writes the live log feed."""

    def __init__(self, state: RunState, *, preview_chars: int | None = None):
        self._state = state
        if preview_chars is None:
            preview_chars = int(get_policy_value("log.preview_chars", 50))
        self._preview_chars = max(1, preview_chars)

    @property
    def state(self) -> RunState:
        return self._state

    def record_started(self, document: Document) -> None:
        self._state.append_log("System", f"Processing {document.filename}...")

    def record(self, document: Document, verdict: CandidateVerdict) -> None:
        state = self._state
        state.verdicts.append(verdict)
        state.processed += 1

        if is_processing_error(verdict):
            state.append_log("Error", f"Failed: {document.filename}", "error")

        screener = verdict.agent_notes.screener
        if screener:
            state.append_log("Structure", screener[: self._preview_chars] + "...")

        passed = verdict.status == "passed"
        mark = "✅" if passed else "❌"
        state.append_log(
            "REFEREE",
            f"{mark} {verdict.name}: {verdict.status.upper()} ({verdict.match_score}%)",
            "success" if passed else "error",
        )
