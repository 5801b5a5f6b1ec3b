"""
tracker/store.py -- SQLAlchemy-backed persistence layer for submissions.

Uses SQLAlchemy Core (not ORM) so the dataclasses in tracker/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
DATABASE_URL change, not a rewrite.

Pattern: Repository + Data Mapper. SubmissionStore is the repository; the
_row_to_submission function is the mapper. Route handlers never touch SQL
directly.

Security: all queries use bound parameters. No f-strings in SQL. The search
filter uses icontains(autoescape=True) so user input cannot inject LIKE
wildcards.

Ownership and role checks are the route layer's job. The store enforces only
the data invariants it can see: status must be one of SUBMISSION_STATUSES
and date must be a real calendar date.

Usage:
    store = SubmissionStore()
    sub_id = store.create_submission(Submission(owner_id=1, date="2024-05-01", job_link=url, price=50))
    page = store.list_submissions(SubmissionQuery(owner_id=1), offset=0, limit=10)
    store.update_submission(sub_id, status="viewed")
"""

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import Column, Float, Integer, MetaData, String, Table, Text, func, or_, select
from sqlalchemy.engine import Engine

from core.db import get_engine
from tracker.models import SUBMISSION_STATUSES, Submission, SubmissionQuery

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_submissions = Table(
    "submissions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("owner_id", Integer, nullable=False, index=True),
    Column("date", String(10), nullable=False, index=True),  # YYYY-MM-DD
    Column("job_link", Text, nullable=False),
    Column("status", String(20), nullable=False, server_default="submitted"),
    Column("price", Float, nullable=False),
    Column("notes", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_MUTABLE_FIELDS = {"date", "job_link", "status", "price", "notes"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _check_status(status: str) -> None:
    if status not in SUBMISSION_STATUSES:
        raise ValueError(f"Invalid submission status: {status!r}")


def _check_date(value: str) -> None:
    try:
        date.fromisoformat(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid submission date: {value!r}") from exc


def _apply_filters(stmt, query: SubmissionQuery):
    """Add WHERE clauses for every populated field of query."""
    c = _submissions.c
    if query.owner_id is not None:
        stmt = stmt.where(c.owner_id == query.owner_id)
    if query.start_date:
        stmt = stmt.where(c.date >= query.start_date)
    if query.end_date:
        stmt = stmt.where(c.date <= query.end_date)
    if query.status:
        stmt = stmt.where(c.status == query.status)
    if query.min_price is not None:
        stmt = stmt.where(c.price >= query.min_price)
    if query.max_price is not None:
        stmt = stmt.where(c.price <= query.max_price)
    if query.search:
        stmt = stmt.where(
            or_(
                c.job_link.icontains(query.search, autoescape=True),
                c.notes.icontains(query.search, autoescape=True),
            )
        )
    return stmt


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SubmissionStore:
    def __init__(self, engine: Optional[Engine] = None) -> None:
        self.engine: Engine = engine if engine is not None else get_engine()
        metadata.create_all(self.engine)

    def create_submission(self, submission: Submission) -> int:
        """Insert a submission and return its assigned database ID.

        Raises ValueError for a status outside SUBMISSION_STATUSES.
        """
        _check_status(submission.status)
        _check_date(submission.date)
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _submissions.insert().values(
                    owner_id=submission.owner_id,
                    date=submission.date,
                    job_link=submission.job_link,
                    status=submission.status,
                    price=submission.price,
                    notes=submission.notes,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_submission(self, submission_id: int) -> Optional[Submission]:
        """Fetch a single submission by ID. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_submissions.select().where(_submissions.c.id == submission_id)).fetchone()
        return _row_to_submission(row) if row is not None else None

    def list_submissions(
        self,
        query: SubmissionQuery,
        offset: int = 0,
        limit: Optional[int] = None,
        newest_first: bool = True,
    ) -> list[Submission]:
        """Return submissions matching query, ordered by date.

        limit None returns every match (export, reports).
        """
        order = _submissions.c.date.desc() if newest_first else _submissions.c.date.asc()
        stmt = _apply_filters(_submissions.select(), query).order_by(order, _submissions.c.id.desc())
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_submission(r) for r in rows]

    def count_submissions(self, query: SubmissionQuery) -> int:
        stmt = _apply_filters(select(func.count()).select_from(_submissions), query)
        with self.engine.connect() as conn:
            result = conn.execute(stmt).scalar()
        return result or 0

    def update_submission(self, submission_id: int, **fields) -> bool:
        """Update mutable fields on a submission and bump updated_at.

        Accepted fields: date, job_link, status, price, notes.
        Returns True if a row was updated, False if submission_id was not found.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown submission fields: {unknown!r}")
        if "status" in fields:
            _check_status(fields["status"])
        if "date" in fields:
            _check_date(fields["date"])
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_submissions.update().where(_submissions.c.id == submission_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_submission(self, submission_id: int) -> bool:
        """Delete a submission. Returns True if deleted, False if not found."""
        with self.engine.connect() as conn:
            result = conn.execute(_submissions.delete().where(_submissions.c.id == submission_id))
            conn.commit()
        return result.rowcount > 0

    def get_status_totals(self, owner_id: Optional[int] = None) -> dict[str, dict]:
        """Return {status: {"count": N, "total_value": X}} in one grouped query.

        Every status appears in the result, zero-filled, so callers can index
        without .get().
        """
        stmt = select(
            _submissions.c.status,
            func.count().label("count"),
            func.coalesce(func.sum(_submissions.c.price), 0).label("total_value"),
        ).group_by(_submissions.c.status)
        if owner_id is not None:
            stmt = stmt.where(_submissions.c.owner_id == owner_id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        totals = {s: {"count": 0, "total_value": 0.0} for s in SUBMISSION_STATUSES}
        for row in rows:
            if row.status in totals:
                totals[row.status] = {"count": row.count, "total_value": float(row.total_value)}
        return totals


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_submission(row) -> Submission:
    return Submission(
        id=row.id,
        owner_id=row.owner_id,
        date=row.date,
        job_link=row.job_link,
        status=row.status,
        price=row.price,
        notes=row.notes,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
