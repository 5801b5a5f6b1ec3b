"""
api/routes/submissions.py -- Submission CRUD, export and dashboard endpoints.

Routes:
  GET    /api/submissions            -- filtered, paginated list
  POST   /api/submissions            -- create (operators only)
  GET    /api/submissions/export     -- CSV (default) or JSON download
  GET    /api/submissions/dashboard  -- counts, series and rates for the dashboard
  GET    /api/submissions/{id}       -- read one
  PUT    /api/submissions/{id}       -- update (owning operator only)
  DELETE /api/submissions/{id}       -- delete (owning operator only)

Scope rules:
  Operators see and touch only their own submissions.
  Observers see every submission and can modify none. The role check runs
  before the record lookup, so an observer gets 403 even for an id that does
  not exist.

/export and /dashboard are registered before /{submission_id} so the literal
paths win.
"""

from __future__ import annotations

import logging
import math
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    DATE_PATTERN,
    ExportFormatEnum,
    Pagination,
    StatusEnum,
    SubmissionCreate,
    SubmissionListResponse,
    SubmissionResponse,
    SubmissionUpdate,
    check_calendar_date,
)
from auth.dependencies import get_session, require_operator
from auth.models import ROLE_OPERATOR, SessionIdentity
from auth.store import AccountStore
from tracker.export import parse_fields, to_csv, to_json_rows
from tracker.models import Submission, SubmissionQuery
from tracker.reports import build_dashboard
from tracker.store import SubmissionStore

logger = logging.getLogger("proptrack.api.submissions")

router = APIRouter()

# Columns that cannot be cleared with an explicit null on update.
_REQUIRED_FIELDS = {"date", "job_link", "price", "status"}


# ---------------------------------------------------------------------------
# Shared dependencies and helpers
# ---------------------------------------------------------------------------


def submission_filters(
    start_date: Optional[str] = Query(default=None, pattern=DATE_PATTERN),
    end_date: Optional[str] = Query(default=None, pattern=DATE_PATTERN),
    status: Optional[StatusEnum] = Query(default=None),
    min_price: Optional[float] = Query(default=None, ge=0, allow_inf_nan=False),
    max_price: Optional[float] = Query(default=None, ge=0, allow_inf_nan=False),
    search: Optional[str] = Query(default=None, max_length=200),
) -> SubmissionQuery:
    """Filter query params shared by the list and export endpoints.

    Dates must be real calendar dates; "2024-02-31" is a 400, not an empty page.
    """
    try:
        start_date = check_calendar_date(start_date)
        end_date = check_calendar_date(end_date)
    except ValueError as exc:
        raise HTTPException(
            status_code=400,
            detail={"message": f"Invalid date filter: {exc}", "error": "invalid_param"},
        ) from exc
    return SubmissionQuery(
        start_date=start_date,
        end_date=end_date,
        status=status.value if status is not None else None,
        min_price=min_price,
        max_price=max_price,
        search=search or None,
    )


def scope_owner(session: SessionIdentity) -> Optional[int]:
    """Owner filter for session: own id for operators, None (all) for observers."""
    return session.subject_id if session.role == ROLE_OPERATOR else None


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={"message": "Submission not found.", "error": "not_found"},
    )


def _forbidden() -> HTTPException:
    return HTTPException(
        status_code=403,
        detail={"message": "You do not have access to this submission.", "error": "forbidden"},
    )


def _load_owned(store: SubmissionStore, submission_id: int, session: SessionIdentity) -> Submission:
    """Fetch a submission the operator in session owns. 404 / 403 otherwise."""
    submission = store.get_submission(submission_id)
    if submission is None:
        raise _not_found()
    if submission.owner_id != session.subject_id:
        raise _forbidden()
    return submission


# ---------------------------------------------------------------------------
# Collection endpoints
# ---------------------------------------------------------------------------


@router.get("/submissions", response_model=SubmissionListResponse)
def list_submissions(
    request: Request,
    filters: SubmissionQuery = Depends(submission_filters),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    session: SessionIdentity = Depends(get_session),
) -> SubmissionListResponse:
    """Return one page of submissions, newest first."""
    store: SubmissionStore = request.app.state.submission_store
    filters.owner_id = scope_owner(session)

    total = store.count_submissions(filters)
    rows = store.list_submissions(filters, offset=(page - 1) * limit, limit=limit)
    return SubmissionListResponse(
        submissions=[SubmissionResponse.from_submission(s) for s in rows],
        pagination=Pagination(total=total, page=page, limit=limit, pages=math.ceil(total / limit)),
    )


@router.post("/submissions", response_model=SubmissionResponse, status_code=201)
def create_submission(
    request: Request,
    body: SubmissionCreate,
    session: SessionIdentity = Depends(require_operator),
) -> SubmissionResponse:
    """Create a submission owned by the calling operator.

    The owning account is re-read from the database; a valid token for a
    since-removed account does not get to create orphaned rows.
    """
    accounts: AccountStore = request.app.state.account_store
    store: SubmissionStore = request.app.state.submission_store

    if accounts.get_by_id(session.subject_id) is None:
        raise HTTPException(
            status_code=401,
            detail={"message": "Account no longer exists.", "error": "invalid-token"},
        )

    submission_id = store.create_submission(
        Submission(
            owner_id=session.subject_id,
            date=body.date,
            job_link=body.job_link,
            price=body.price,
            status=body.status.value,
            notes=body.notes or None,
        )
    )
    logger.info("Account %d created submission %d", session.subject_id, submission_id)
    return SubmissionResponse.from_submission(store.get_submission(submission_id))


@limiter.limit("60/minute")
@router.get("/submissions/export")
def export_submissions(
    request: Request,
    format: ExportFormatEnum = Query(default=ExportFormatEnum.csv),
    fields: Optional[str] = Query(default=None, max_length=200),
    filters: SubmissionQuery = Depends(submission_filters),
    session: SessionIdentity = Depends(get_session),
) -> Response:
    """Download the caller's scoped submissions as CSV or JSON.

    fields is a comma-separated column list; unknown names are a 400.
    """
    try:
        columns = parse_fields(fields)
    except ValueError as exc:
        raise HTTPException(
            status_code=400,
            detail={"message": str(exc), "error": "invalid_param"},
        ) from exc

    store: SubmissionStore = request.app.state.submission_store
    filters.owner_id = scope_owner(session)
    rows = store.list_submissions(filters, newest_first=False)
    stamp = date.today().isoformat()
    logger.info("Account %d exported %d submissions as %s", session.subject_id, len(rows), format.value)

    if format == ExportFormatEnum.json:
        return JSONResponse(
            content=to_json_rows(rows, columns),
            headers={"Content-Disposition": f'attachment; filename="submissions_{stamp}.json"'},
        )
    return Response(
        content=to_csv(rows, columns),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="submissions_{stamp}.csv"'},
    )


@router.get("/submissions/dashboard")
def dashboard(
    request: Request,
    session: SessionIdentity = Depends(get_session),
) -> dict:
    """Return the dashboard payload for the caller's scope."""
    accounts: AccountStore = request.app.state.account_store
    store: SubmissionStore = request.app.state.submission_store

    owner = scope_owner(session)
    rows = store.list_submissions(SubmissionQuery(owner_id=owner))
    payload = build_dashboard(rows, store.get_status_totals(owner))

    account = accounts.get_by_id(session.subject_id)
    settings = accounts.effective_settings(account) if account is not None else None
    payload["user_settings"] = (
        {
            "weekly_target": settings.weekly_target,
            "default_view": settings.default_view,
            "currency": settings.currency,
        }
        if settings is not None
        else None
    )
    return payload


# ---------------------------------------------------------------------------
# Item endpoints
# ---------------------------------------------------------------------------


@router.get("/submissions/{submission_id}", response_model=SubmissionResponse)
def get_submission(
    request: Request,
    submission_id: int,
    session: SessionIdentity = Depends(get_session),
) -> SubmissionResponse:
    """Read one submission. Operators may only read their own."""
    store: SubmissionStore = request.app.state.submission_store
    submission = store.get_submission(submission_id)
    if submission is None:
        raise _not_found()
    if session.role == ROLE_OPERATOR and submission.owner_id != session.subject_id:
        raise _forbidden()
    return SubmissionResponse.from_submission(submission)


@router.put("/submissions/{submission_id}", response_model=SubmissionResponse)
def update_submission(
    request: Request,
    submission_id: int,
    body: SubmissionUpdate,
    session: SessionIdentity = Depends(require_operator),
) -> SubmissionResponse:
    """Update date, job_link, status, price or notes on an owned submission."""
    store: SubmissionStore = request.app.state.submission_store
    _load_owned(store, submission_id, session)

    updates = body.model_dump(exclude_unset=True)
    updates = {k: v for k, v in updates.items() if v is not None or k not in _REQUIRED_FIELDS}
    if "status" in updates:
        updates["status"] = StatusEnum(updates["status"]).value
    if not updates:
        raise HTTPException(
            status_code=400,
            detail={"message": "No fields to update.", "error": "validation_error"},
        )

    store.update_submission(submission_id, **updates)
    logger.info("Account %d updated submission %d (%s)", session.subject_id, submission_id, ", ".join(sorted(updates)))
    return SubmissionResponse.from_submission(store.get_submission(submission_id))


@router.delete("/submissions/{submission_id}")
def delete_submission(
    request: Request,
    submission_id: int,
    session: SessionIdentity = Depends(require_operator),
) -> dict:
    """Delete an owned submission."""
    store: SubmissionStore = request.app.state.submission_store
    _load_owned(store, submission_id, session)
    store.delete_submission(submission_id)
    logger.info("Account %d deleted submission %d", session.subject_id, submission_id)
    return {"success": True, "message": "Submission deleted successfully."}
