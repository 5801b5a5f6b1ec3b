"""
api/routes/reports.py -- Aggregate reports over submissions.

GET /api/reports?type=monthly|statusDistribution|priceAnalysis&year=YYYY

Scope follows the list endpoint: operators report on their own submissions,
observers on everyone's. year defaults to the current year.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from api.limiter import limiter
from api.routes.submissions import scope_owner
from auth.dependencies import get_session
from auth.models import SessionIdentity
from tracker.models import SubmissionQuery
from tracker.reports import REPORT_TYPES, build_report
from tracker.store import SubmissionStore

router = APIRouter()


@limiter.limit("60/minute")
@router.get("/reports")
def get_report(
    request: Request,
    type: str = Query(default="monthly"),
    year: Optional[int] = Query(default=None, ge=1970, le=9999),
    session: SessionIdentity = Depends(get_session),
) -> dict:
    """Return {type, year, data} for the requested report."""
    if type not in REPORT_TYPES:
        raise HTTPException(
            status_code=400,
            detail={"message": "Invalid report type.", "error": "invalid_report_type"},
        )
    year = year or date.today().year
    store: SubmissionStore = request.app.state.submission_store
    rows = store.list_submissions(
        SubmissionQuery(
            owner_id=scope_owner(session),
            start_date=f"{year:04d}-01-01",
            end_date=f"{year:04d}-12-31",
        ),
        newest_first=False,
    )
    return {"type": type, "year": year, "data": build_report(type, rows, year)}
