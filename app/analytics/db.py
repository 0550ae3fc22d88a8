from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from app.core.config import settings

_schema_ready: set[str] = set()


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _get_db_path() -> Path:
    return Path(settings.analytics_db_path)


def init_db() -> None:
    if not settings.analytics_enabled:
        return
    db_path = _get_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS ai_analysis_runs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                created_at TEXT NOT NULL,
                run_id TEXT NOT NULL,
                tool_slug TEXT NOT NULL,
                model TEXT NOT NULL,
                schema_valid INTEGER NOT NULL,
                status TEXT NOT NULL,
                error_code TEXT,
                latency_ms INTEGER
            )
            """
        )
        conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_ai_analysis_runs_created_at
            ON ai_analysis_runs (created_at)
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS screening_runs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                created_at TEXT NOT NULL,
                run_id TEXT NOT NULL,
                session_hash TEXT,
                role TEXT,
                status TEXT NOT NULL,
                total INTEGER NOT NULL,
                processed INTEGER NOT NULL,
                passed INTEGER NOT NULL,
                failed INTEGER NOT NULL,
                errors INTEGER NOT NULL,
                started_at TEXT,
                finished_at TEXT
            )
            """
        )
        conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_screening_runs_created_at
            ON screening_runs (created_at)
            """
        )
        conn.commit()
    _schema_ready.add(str(db_path))


def _ensure_schema() -> Path:
    db_path = _get_db_path()
    if str(db_path) not in _schema_ready:
        init_db()
    return db_path


def log_ai_analysis_run(
    *,
    run_id: str,
    tool_slug: str,
    model: str,
    schema_valid: bool,
    status: str,
    error_code: str | None = None,
    latency_ms: int | None = None,
) -> None:
    if not settings.analytics_enabled:
        return
    db_path = _ensure_schema()
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            """
            INSERT INTO ai_analysis_runs (
                created_at, run_id, tool_slug, model, schema_valid, status, error_code, latency_ms
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                _utc_now(),
                run_id,
                tool_slug,
                model,
                1 if schema_valid else 0,
                status,
                error_code,
                latency_ms,
            ),
        )
        conn.commit()


def log_screening_run(
    *,
    run_id: str,
    session_hash: str | None,
    role: str,
    status: str,
    total: int,
    processed: int,
    passed: int,
    failed: int,
    errors: int,
    started_at: datetime | None,
    finished_at: datetime | None,
) -> None:
    if not settings.analytics_enabled:
        return
    db_path = _ensure_schema()
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            """
            INSERT INTO screening_runs (
                created_at, run_id, session_hash, role, status, total, processed,
                passed, failed, errors, started_at, finished_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                _utc_now(),
                run_id,
                session_hash,
                role,
                status,
                total,
                processed,
                passed,
                failed,
                errors,
                started_at.isoformat() if started_at else None,
                finished_at.isoformat() if finished_at else None,
            ),
        )
        conn.commit()


def purge_old_records() -> dict[str, int]:
    if not settings.analytics_enabled:
        return {"ai_analysis_runs": 0, "screening_runs": 0}

    db_path = _ensure_schema()
    retention = max(1, int(settings.analytics_retention_days))

    deleted = {"ai_analysis_runs": 0, "screening_runs": 0}
    with sqlite3.connect(db_path) as conn:
        for table in deleted:
            cur = conn.execute(
                f"DELETE FROM {table} WHERE created_at < datetime('now', ?)",
                (f"-{retention} days",),
            )
            deleted[table] = int(cur.rowcount or 0)
        conn.commit()

    return deleted


def _row_to_dict(cursor: sqlite3.Cursor, row: tuple) -> dict[str, Any]:
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def get_screening_summary() -> dict[str, Any]:
    if not settings.analytics_enabled:
        return {"enabled": False}
    db_path = _ensure_schema()
    with sqlite3.connect(db_path) as conn:
        cur = conn.execute(
            """
            SELECT
                COUNT(*) AS runs,
                COALESCE(SUM(processed), 0) AS candidates,
                COALESCE(SUM(passed), 0) AS passed,
                COALESCE(SUM(failed), 0) AS failed,
                COALESCE(SUM(errors), 0) AS errors,
                COALESCE(SUM(CASE WHEN status = 'aborted' THEN 1 ELSE 0 END), 0) AS aborted
            FROM screening_runs
            """
        )
        totals = _row_to_dict(cur, cur.fetchone())
        cur = conn.execute(
            """
            SELECT AVG(latency_ms)
            FROM ai_analysis_runs
            WHERE tool_slug = 'resume-screening' AND latency_ms IS NOT NULL
            """
        )
        avg_latency = cur.fetchone()[0]
    return {
        "enabled": True,
        **totals,
        "avg_analysis_latency_ms": int(avg_latency) if avg_latency is not None else None,
    }


def get_latest_screening_runs(limit: int = 20) -> list[dict[str, Any]]:
    if not settings.analytics_enabled:
        return []
    db_path = _ensure_schema()
    with sqlite3.connect(db_path) as conn:
        cur = conn.execute(
            """
            SELECT created_at, run_id, role, status, total, processed, passed, failed, errors,
                   started_at, finished_at
            FROM screening_runs
            ORDER BY id DESC
            LIMIT ?
            """,
            (limit,),
        )
        rows = cur.fetchall()
        return [_row_to_dict(cur, row) for row in rows]
