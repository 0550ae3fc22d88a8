import asyncio
import json
from typing import Annotated, Any

from fastapi import APIRouter, Depends, File, HTTPException, Path, Request, Response, UploadFile, status
from fastapi.responses import StreamingResponse

from app.core.config import settings
from app.core.rate_limit import rate_limit
from app.core.screening_policy import get_policy_value
from app.core.security import Identity, require_screening_access
from app.schemas.screening import (
    IntakeResponse,
    LogEntryOut,
    QueueResponse,
    QueuedFile,
    RunProgress,
    RunResultsResponse,
    RunStatusResponse,
    ScreeningConfigResponse,
    ScreeningCriteria,
)
from app.screening.intake import Document, accepted_extensions, accepted_mime_types
from app.screening.prompt import min_match_score
from app.screening.report import partition_verdicts
from app.screening.state import LogEntry, RunState
from app.services.screening_service import ScreeningService, ScreeningServiceError, get_screening_service

router = APIRouter(prefix="/screening")

SessionId = Annotated[str, Path(min_length=8, max_length=200)]
EVENT_POLL_INTERVAL_S = 0.25


def _raise_service_error(exc: ScreeningServiceError) -> None:
    raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc


def _sse_event(event: str, payload: dict[str, Any]) -> str:
    data = json.dumps(payload, ensure_ascii=False, default=str)
    return f"event: {event}\ndata: {data}\n\n"


def _queued_files(documents: list[Document]) -> list[QueuedFile]:
    return [
        QueuedFile(filename=document.filename, mime_type=document.mime_type, size_bytes=document.size)
        for document in documents
    ]


def _log_out(entry: LogEntry) -> LogEntryOut:
    return LogEntryOut(
        seq=entry.seq,
        source=entry.source,
        message=entry.message,
        severity=entry.severity,
        created_at=entry.created_at,
    )


def _run_status(state: RunState) -> RunStatusResponse:
    return RunStatusResponse(
        run_id=state.run_id,
        status=state.status.value,
        progress=RunProgress(processed=state.processed, total=state.total),
        abort_requested=state.abort_requested,
        criteria=state.criteria,
        started_at=state.started_at,
        finished_at=state.finished_at,
        logs=[_log_out(entry) for entry in state.log],
    )


@router.get("/config", response_model=ScreeningConfigResponse)
async def screening_config(
    _: Identity = Depends(require_screening_access),
    service: ScreeningService = Depends(get_screening_service),
):
    defaults = get_policy_value("default_criteria", {}) or {}
    return ScreeningConfigResponse(
        suggested_roles=list(get_policy_value("suggested_roles", []) or []),
        default_criteria=ScreeningCriteria.model_validate(defaults),
        batch_size=service.batch_size,
        accepted_mime_types=list(accepted_mime_types()),
        accepted_extensions=list(accepted_extensions()),
        min_match_score=min_match_score(),
    )


@router.post("/sessions/{session_id}/files", response_model=IntakeResponse)
@rate_limit(settings.upload_rate_limit)
async def screening_upload_files(
    request: Request,
    session_id: SessionId,
    files: list[UploadFile] = File(...),
    _: Identity = Depends(require_screening_access),
    service: ScreeningService = Depends(get_screening_service),
):
    _ = request
    documents: list[Document] = []
    for upload in files:
        content = await upload.read()
        documents.append(
            Document(
                filename=upload.filename or "uploaded-file",
                mime_type=upload.content_type or "",
                content=content,
            )
        )
    try:
        result, queue = service.add_files(session_id, documents)
    except ScreeningServiceError as exc:
        _raise_service_error(exc)
    return IntakeResponse(
        accepted=len(result.accepted),
        rejected=result.rejected_count,
        queued=len(queue),
        files=_queued_files(queue),
        notices=result.notices,
    )


@router.get("/sessions/{session_id}/files", response_model=QueueResponse)
async def screening_list_files(
    session_id: SessionId,
    _: Identity = Depends(require_screening_access),
    service: ScreeningService = Depends(get_screening_service),
):
    queue = service.get_queue(session_id)
    return QueueResponse(queued=len(queue), files=_queued_files(queue))


@router.delete("/sessions/{session_id}/files", status_code=status.HTTP_204_NO_CONTENT)
async def screening_clear_files(
    session_id: SessionId,
    _: Identity = Depends(require_screening_access),
    service: ScreeningService = Depends(get_screening_service),
):
    service.clear_queue(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/sessions/{session_id}/runs", response_model=RunStatusResponse, status_code=status.HTTP_202_ACCEPTED)
@rate_limit()
async def screening_start_run(
    request: Request,
    criteria: ScreeningCriteria,
    session_id: SessionId,
    _: Identity = Depends(require_screening_access),
    service: ScreeningService = Depends(get_screening_service),
):
    _ = request
    try:
        state = service.start_run(session_id, criteria)
    except ScreeningServiceError as exc:
        _raise_service_error(exc)
    return _run_status(state)


@router.get("/sessions/{session_id}/runs/current", response_model=RunStatusResponse)
async def screening_run_status(
    session_id: SessionId,
    _: Identity = Depends(require_screening_access),
    service: ScreeningService = Depends(get_screening_service),
):
    try:
        return _run_status(service.get_run(session_id))
    except ScreeningServiceError as exc:
        _raise_service_error(exc)


@router.post("/sessions/{session_id}/runs/current/abort", response_model=RunStatusResponse)
async def screening_abort_run(
    session_id: SessionId,
    _: Identity = Depends(require_screening_access),
    service: ScreeningService = Depends(get_screening_service),
):
    try:
        return _run_status(service.request_abort(session_id))
    except ScreeningServiceError as exc:
        _raise_service_error(exc)


@router.get("/sessions/{session_id}/runs/current/results", response_model=RunResultsResponse)
async def screening_run_results(
    session_id: SessionId,
    _: Identity = Depends(require_screening_access),
    service: ScreeningService = Depends(get_screening_service),
):
    try:
        state = service.finished_run(session_id)
    except ScreeningServiceError as exc:
        _raise_service_error(exc)
    partition = partition_verdicts(state.verdicts)
    return RunResultsResponse(
        run_id=state.run_id,
        status=state.status.value,
        total=len(state.verdicts),
        passed_count=len(partition.passed),
        failed_count=len(partition.failed),
        passed=list(partition.passed),
        failed=list(partition.failed),
    )


@router.get("/sessions/{session_id}/runs/current/report.csv")
async def screening_download_report(
    session_id: SessionId,
    _: Identity = Depends(require_screening_access),
    service: ScreeningService = Depends(get_screening_service),
):
    try:
        filename, content = service.build_report(session_id)
    except ScreeningServiceError as exc:
        _raise_service_error(exc)
    return Response(
        content=content.encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/sessions/{session_id}/runs/current/events")
async def screening_run_events(
    request: Request,
    session_id: SessionId,
    _: Identity = Depends(require_screening_access),
    service: ScreeningService = Depends(get_screening_service),
):
    try:
        state = service.get_run(session_id)
    except ScreeningServiceError as exc:
        _raise_service_error(exc)

    async def event_stream():
        last_seq = 0
        last_progress: dict[str, Any] | None = None
        yield _sse_event("connected", {"run_id": state.run_id})
        while True:
            if await request.is_disconnected():
                break
            progress = {"processed": state.processed, "total": state.total, "status": state.status.value}
            if progress != last_progress:
                yield _sse_event("progress", progress)
                last_progress = progress
            for entry in state.logs_since(last_seq):
                yield _sse_event("log", _log_out(entry).model_dump(mode="json"))
                last_seq = entry.seq
            if state.is_terminal:
                yield _sse_event("done", {"status": state.status.value})
                break
            await asyncio.sleep(EVENT_POLL_INTERVAL_S)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def screening_discard_session(
    session_id: SessionId,
    _: Identity = Depends(require_screening_access),
    service: ScreeningService = Depends(get_screening_service),
):
    await service.discard(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
