from fastapi import APIRouter, Depends, Query

from app.core.security import Identity, require_screening_access
from app.analytics import db as analytics_db

router = APIRouter()


@router.get("/analytics/screening/summary")
def screening_summary(_: Identity = Depends(require_screening_access)):
    return analytics_db.get_screening_summary()


@router.get("/analytics/screening/runs")
def screening_runs(
    limit: int = Query(default=20, ge=1, le=200),
    _: Identity = Depends(require_screening_access),
):
    return analytics_db.get_latest_screening_runs(limit=limit)
