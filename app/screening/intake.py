from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Iterable

from app.core.screening_policy import get_policy_value
from app.schemas.screening import Notice

GENERIC_MIME_TYPES = {"", "application/octet-stream", "binary/octet-stream"}


@dataclass(frozen=True)
class Document:
    filename: str
    mime_type: str
    content: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class IntakeResult:
    accepted: list[Document] = field(default_factory=list)
    rejected_count: int = 0
    notices: list[Notice] = field(default_factory=list)


@lru_cache(maxsize=1)
def _extension_re() -> re.Pattern[str]:
    pattern = get_policy_value("intake.extension_pattern", r"\.(pdf|doc|docx)$")
    return re.compile(pattern, re.IGNORECASE)


def accepted_mime_types() -> tuple[str, ...]:
    values = get_policy_value("intake.mime_types", []) or []
    return tuple(str(value).strip().lower() for value in values)


def accepted_extensions() -> tuple[str, ...]:
    mapping = get_policy_value("intake.extension_mime_types", {}) or {}
    return tuple(sorted(str(ext).lower() for ext in mapping))


def _normalize_mime(mime_type: str | None) -> str:
    return (mime_type or "").split(";")[0].strip().lower()


def is_supported_resume(filename: str, mime_type: str | None) -> bool:
    if _normalize_mime(mime_type) in accepted_mime_types():
        return True
    return bool(_extension_re().search(filename or ""))


def resolve_mime_type(filename: str, mime_type: str | None) -> str:
    declared = _normalize_mime(mime_type)
    if declared in accepted_mime_types():
        return declared
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    mapping = get_policy_value("intake.extension_mime_types", {}) or {}
    inferred = mapping.get(ext)
    if inferred:
        return str(inferred)
    return declared if declared not in GENERIC_MIME_TYPES else "application/octet-stream"


def partition_uploads(files: Iterable[Document]) -> IntakeResult:
    result = IntakeResult()
    for document in files:
        if is_supported_resume(document.filename, document.mime_type):
            result.accepted.append(
                Document(
                    filename=document.filename,
                    mime_type=resolve_mime_type(document.filename, document.mime_type),
                    content=document.content,
                )
            )
        else:
            result.rejected_count += 1

    if result.rejected_count > 0:
        result.notices.append(
            Notice(
                message=f"Skipped {result.rejected_count} invalid file(s). Only PDF/DOCX allowed.",
                type="error",
            )
        )
    if result.accepted:
        result.notices.append(Notice(message=f"{len(result.accepted)} file(s) added to queue.", type="success"))
    return result
