from __future__ import annotations

import asyncio
import base64
import json
import logging
import re
import time
import uuid
from typing import Callable

from pydantic import ValidationError

from app.ai.config import load_ai_config
from app.ai.factory import get_ai_client
from app.ai.types import AIClient, DocumentPayload
from app.analytics.db import log_ai_analysis_run
from app.core.config import settings
from app.schemas.screening import AgentNotes, AnalyzerVerdictPayload, CandidateVerdict, ScreeningCriteria
from app.screening.intake import Document
from app.screening.prompt import build_screening_prompt, min_match_score

logger = logging.getLogger(__name__)

TOOL_SLUG = "resume-screening"
PROCESSING_ERROR_FLAG = "Processing Error"
POLICY_OVERRIDE_PREFIX = "Policy Override"
# Only synthetic failures carry this prefix; parsed verdicts get a bare hex id.
FAILURE_ID_PREFIX = "error-"

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


class VerdictParseError(ValueError):
    def __init__(self, message: str, *, code: str = "invalid_schema"):
        super().__init__(message)
        self.code = code


def new_verdict_id() -> str:
    return uuid.uuid4().hex[:12]


def failure_verdict() -> CandidateVerdict:
    return CandidateVerdict(
        id=f"{FAILURE_ID_PREFIX}{new_verdict_id()}",
        name="Unknown Candidate (Error)",
        role="N/A",
        experience=0,
        match_score=0,
        status="failed",
        flags=(PROCESSING_ERROR_FLAG,),
        agent_notes=AgentNotes(
            screener="Failed to parse",
            bias_check="N/A",
            tech="N/A",
            referee="System Error",
        ),
    )


def is_processing_error(verdict: CandidateVerdict) -> bool:
    return verdict.id.startswith(FAILURE_ID_PREFIX)


def parse_verdict_payload(raw: str | None) -> CandidateVerdict:
    text = (raw or "").strip()
    if not text:
        raise VerdictParseError("Analyzer returned an empty response.", code="empty_response")

    fenced = _FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1).strip()

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise VerdictParseError(f"Analyzer returned non-JSON output: {exc}", code="invalid_json") from exc

    if not isinstance(data, dict):
        raise VerdictParseError("Analyzer returned JSON that is not an object.")

    try:
        payload = AnalyzerVerdictPayload.model_validate(data)
    except ValidationError as exc:
        raise VerdictParseError(f"Analyzer response failed schema validation: {exc.error_count()} error(s)") from exc

    notes = payload.agent_notes
    return CandidateVerdict(
        id=new_verdict_id(),
        name=payload.name.strip() or "Unknown Candidate",
        role=payload.role.strip() or "N/A",
        experience=payload.experience,
        match_score=payload.match_score,
        status=payload.status,
        flags=tuple(flag.strip() for flag in payload.flags if flag.strip()),
        agent_notes=AgentNotes(
            screener=notes.screener,
            bias_check=notes.bias_check,
            tech=notes.tech,
            referee=notes.referee,
        ),
    )


def policy_violations(verdict: CandidateVerdict, criteria: ScreeningCriteria) -> list[str]:
    violations: list[str] = []
    if not criteria.min_exp <= verdict.experience <= criteria.max_exp:
        violations.append(
            f"experience {verdict.experience}y outside {criteria.min_exp}-{criteria.max_exp}y"
        )
    threshold = min_match_score()
    if verdict.match_score < threshold:
        violations.append(f"match score {verdict.match_score} below {threshold}")
    if criteria.filter_bias and any("bias" in flag.lower() for flag in verdict.flags):
        violations.append("bias flagged while bias filtering is on")
    return violations


def apply_local_policy(verdict: CandidateVerdict, criteria: ScreeningCriteria) -> CandidateVerdict:
    """Fail a 'passed' verdict that breaks the decision policy, leaving a visible flag."""
    if verdict.status != "passed":
        return verdict
    violations = policy_violations(verdict, criteria)
    if not violations:
        return verdict
    logger.warning(
        "screening_policy_override verdict_id=%s violations=%s", verdict.id, "; ".join(violations)
    )
    return verdict.model_copy(
        update={
            "status": "failed",
            "flags": verdict.flags + (f"{POLICY_OVERRIDE_PREFIX}: {'; '.join(violations)}",),
        }
    )


def encode_document(document: Document) -> DocumentPayload:
    return DocumentPayload(
        filename=document.filename,
        mime_type=document.mime_type,
        data_b64=base64.b64encode(document.content).decode("ascii"),
    )


class ResumeAnalyzer:
    """Sends one resume per call to the configured AI provider.

    ``analyze`` never raises for provider, transport, timeout or parse errors:
    every document yields exactly one verdict.
    """

    def __init__(
        self,
        client_factory: Callable[[], AIClient] = get_ai_client,
        *,
        timeout_s: float | None = None,
        local_policy_check: bool | None = None,
    ):
        self._client_factory = client_factory
        self._client_instance: AIClient | None = None
        timeout = settings.screening_analysis_timeout_s if timeout_s is None else timeout_s
        self._timeout_s = timeout if timeout and timeout > 0 else None
        self._local_policy_check = (
            settings.screening_local_policy_check if local_policy_check is None else local_policy_check
        )

    def _client(self) -> AIClient:
        if self._client_instance is None:
            self._client_instance = self._client_factory()
        return self._client_instance

    def _model_name(self) -> str:
        if self._client_instance is not None:
            return getattr(self._client_instance, "model", "") or "unknown"
        return load_ai_config().model or "unknown"

    def _log_ai_run(
        self,
        *,
        call_id: str,
        schema_valid: bool,
        status: str,
        started: float,
        error_code: str | None = None,
    ) -> None:
        try:
            log_ai_analysis_run(
                run_id=call_id,
                tool_slug=TOOL_SLUG,
                model=self._model_name(),
                schema_valid=schema_valid,
                status=status,
                error_code=error_code,
                latency_ms=int((time.perf_counter() - started) * 1000),
            )
        except Exception:  # pragma: no cover - analytics must not break screening
            logger.debug("ai_run_logging_failed", exc_info=True)

    async def analyze(self, document: Document, criteria: ScreeningCriteria) -> CandidateVerdict:
        call_id = uuid.uuid4().hex
        started = time.perf_counter()
        try:
            client = self._client()
            payload = encode_document(document)
            prompt = build_screening_prompt(criteria)
            raw = await asyncio.wait_for(
                client.generate_json(prompt=prompt, document=payload),
                timeout=self._timeout_s,
            )
            verdict = parse_verdict_payload(raw)
        except asyncio.TimeoutError:
            logger.warning("screening_analysis_timeout file=%s timeout_s=%s", document.filename, self._timeout_s)
            self._log_ai_run(call_id=call_id, schema_valid=False, status="error", started=started, error_code="timeout")
            return failure_verdict()
        except VerdictParseError as exc:
            logger.warning("screening_analysis_invalid file=%s: %s", document.filename, exc)
            self._log_ai_run(call_id=call_id, schema_valid=False, status="invalid_schema", started=started, error_code=exc.code)
            return failure_verdict()
        except Exception as exc:  # noqa: BLE001 - every failure becomes a failed verdict
            logger.warning("screening_analysis_failed file=%s model=%s: %s", document.filename, self._model_name(), exc)
            self._log_ai_run(call_id=call_id, schema_valid=False, status="error", started=started, error_code="llm_exception")
            return failure_verdict()

        self._log_ai_run(call_id=call_id, schema_valid=True, status="success", started=started)
        if self._local_policy_check:
            return apply_local_policy(verdict, criteria)
        return verdict
