from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictStr, field_validator, model_validator

VerdictStatus = Literal["passed", "failed"]
RunStatusValue = Literal["idle", "running", "completed", "aborted"]
NoticeType = Literal["success", "error"]
LogSeverity = Literal["info", "success", "warning", "error"]


class ScreeningCriteria(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: str = Field(min_length=1, max_length=200)
    min_exp: int = Field(default=0, ge=0, le=60)
    max_exp: int = Field(default=60, ge=0, le=60)
    custom_prompt: str = Field(default="", max_length=2000)
    filter_duplicates: bool = True
    filter_bias: bool = True

    @field_validator("role", "custom_prompt")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @model_validator(mode="after")
    def _check_experience_range(self) -> "ScreeningCriteria":
        if self.min_exp > self.max_exp:
            raise ValueError("min_exp must be less than or equal to max_exp.")
        if not self.role:
            raise ValueError("role must not be blank.")
        return self


class AgentNotes(BaseModel):
    model_config = ConfigDict(frozen=True)

    screener: str = ""
    bias_check: str = ""
    tech: str = ""
    referee: str = ""


class CandidateVerdict(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    role: str
    experience: int = Field(ge=0)
    match_score: int = Field(ge=0, le=100)
    status: VerdictStatus
    flags: tuple[str, ...] = ()
    agent_notes: AgentNotes = Field(default_factory=AgentNotes)


def _whole_number(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("expected a number")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError("expected a finite number")
    return int(round(value))


class AnalyzerNotesPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    screener: StrictStr = ""
    bias_check: StrictStr = Field(default="", alias="biasCheck")
    tech: StrictStr = ""
    referee: StrictStr = ""


class AnalyzerVerdictPayload(BaseModel):
    """Shape the external analyzer is asked to return. Parsed as untrusted input."""

    model_config = ConfigDict(extra="ignore")

    name: StrictStr = Field(min_length=1)
    role: StrictStr
    experience: int = Field(ge=0)
    match_score: int = Field(alias="matchScore", ge=0, le=100)
    status: VerdictStatus
    flags: list[StrictStr] = Field(default_factory=list)
    agent_notes: AnalyzerNotesPayload = Field(default_factory=AnalyzerNotesPayload, alias="agentNotes")

    @field_validator("experience", "match_score", mode="before")
    @classmethod
    def _numeric(cls, value: Any) -> int:
        return _whole_number(value)

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class Notice(BaseModel):
    message: str
    type: NoticeType


class QueuedFile(BaseModel):
    filename: str
    mime_type: str
    size_bytes: int = Field(ge=0)


class IntakeResponse(BaseModel):
    accepted: int = Field(ge=0)
    rejected: int = Field(ge=0)
    queued: int = Field(ge=0)
    files: list[QueuedFile] = Field(default_factory=list)
    notices: list[Notice] = Field(default_factory=list)


class QueueResponse(BaseModel):
    queued: int = Field(ge=0)
    files: list[QueuedFile] = Field(default_factory=list)


class LogEntryOut(BaseModel):
    seq: int
    source: str
    message: str
    severity: LogSeverity
    created_at: datetime


class RunProgress(BaseModel):
    processed: int = Field(ge=0)
    total: int = Field(ge=0)


class RunStatusResponse(BaseModel):
    run_id: str
    status: RunStatusValue
    progress: RunProgress
    abort_requested: bool
    criteria: ScreeningCriteria
    started_at: datetime | None = None
    finished_at: datetime | None = None
    logs: list[LogEntryOut] = Field(default_factory=list)


class RunResultsResponse(BaseModel):
    run_id: str
    status: RunStatusValue
    total: int = Field(ge=0)
    passed_count: int = Field(ge=0)
    failed_count: int = Field(ge=0)
    passed: list[CandidateVerdict] = Field(default_factory=list)
    failed: list[CandidateVerdict] = Field(default_factory=list)


class ScreeningConfigResponse(BaseModel):
    suggested_roles: list[str]
    default_criteria: ScreeningCriteria
    batch_size: int = Field(ge=1)
    accepted_mime_types: list[str]
    accepted_extensions: list[str]
    min_match_score: int = Field(ge=0, le=100)
