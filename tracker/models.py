"""
tracker/models.py -- Domain dataclasses for proposal submissions.

These are pure data containers with zero logic. Persistence rules (status
validation, timestamps) live in tracker/store.py; aggregation lives in
tracker/reports.py.
"""

from dataclasses import dataclass
from typing import Optional

# Lifecycle order. "declined" is terminal and can follow any earlier stage.
SUBMISSION_STATUSES: tuple[str, ...] = ("submitted", "viewed", "interviewed", "won", "declined")
DEFAULT_STATUS = "submitted"


@dataclass
class Submission:
    """One proposal sent to a prospective client.

    date is the day the proposal was submitted (ISO YYYY-MM-DD); created_at
    and updated_at are record timestamps (ISO 8601, set by the store).

    id is None before the record is written to the database.
    """

    owner_id: int
    date: str
    job_link: str
    price: float
    status: str = DEFAULT_STATUS
    notes: Optional[str] = None
    id: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class SubmissionQuery:
    """Filter set shared by the list, export, dashboard and report queries.

    owner_id None means "all owners" (observer scope). Dates are inclusive
    ISO YYYY-MM-DD strings; prices are inclusive bounds. search matches the
    job link or notes case-insensitively.
    """

    owner_id: Optional[int] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    status: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    search: Optional[str] = None
