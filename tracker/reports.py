"""
tracker/reports.py -- Aggregations behind GET /reports and the dashboard.

Pure functions over lists of Submission: the routes load the scoped rows once
(operators: own rows; observers: everything) and these functions shape them
into chart-ready series. Keeping them free of I/O makes them trivial to test
with hand-built submissions and a fixed "today".
"""

import calendar
from datetime import date, timedelta
from typing import Optional

from tracker.models import SUBMISSION_STATUSES, Submission

REPORT_TYPES: tuple[str, ...] = ("monthly", "statusDistribution", "priceAnalysis")

# Statuses that imply the client at least opened the proposal.
_VIEWED_OR_LATER = {"viewed", "interviewed", "won"}
_INTERVIEWED_OR_LATER = {"interviewed", "won"}


def _month_index(iso_date: str) -> int:
    return int(iso_date[5:7]) - 1


def _in_year(submissions: list[Submission], year: int) -> list[Submission]:
    prefix = f"{year:04d}-"
    return [s for s in submissions if s.date.startswith(prefix)]


def monthly_report(submissions: list[Submission], year: int) -> list[dict]:
    """Per-month counts broken down by status, January first."""
    data = [
        {"month": calendar.month_abbr[i + 1], **{status: 0 for status in SUBMISSION_STATUSES}, "total": 0}
        for i in range(12)
    ]
    for s in _in_year(submissions, year):
        bucket = data[_month_index(s.date)]
        bucket["total"] += 1
        if s.status in bucket:
            bucket[s.status] += 1
    return data


def status_distribution(submissions: list[Submission]) -> list[dict]:
    counts = {status: 0 for status in SUBMISSION_STATUSES}
    for s in submissions:
        if s.status in counts:
            counts[s.status] += 1
    return [{"status": status, "count": count} for status, count in counts.items()]


def price_analysis(submissions: list[Submission], year: int) -> list[dict]:
    """Average price (rounded to whole units) and volume per month."""
    sums = [0.0] * 12
    counts = [0] * 12
    for s in _in_year(submissions, year):
        m = _month_index(s.date)
        sums[m] += s.price
        counts[m] += 1
    return [
        {
            "month": calendar.month_abbr[i + 1],
            "avg_price": round(sums[i] / counts[i]) if counts[i] else 0,
            "total_submissions": counts[i],
        }
        for i in range(12)
    ]


def build_report(report_type: str, submissions: list[Submission], year: int) -> list[dict]:
    """Dispatch to the report named by report_type. Raises ValueError if unknown."""
    if report_type == "monthly":
        return monthly_report(submissions, year)
    if report_type == "statusDistribution":
        return status_distribution(_in_year(submissions, year))
    if report_type == "priceAnalysis":
        return price_analysis(submissions, year)
    raise ValueError(f"Invalid report type: {report_type!r}")


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


def _rate(part: int, total: int) -> float:
    return (part / total) * 100 if total else 0.0


def response_rates(submissions: list[Submission]) -> dict[str, float]:
    total = len(submissions)
    viewed = sum(1 for s in submissions if s.status in _VIEWED_OR_LATER)
    interviewed = sum(1 for s in submissions if s.status in _INTERVIEWED_OR_LATER)
    won = sum(1 for s in submissions if s.status == "won")
    return {
        "view_rate": _rate(viewed, total),
        "interview_rate": _rate(interviewed, total),
        "win_rate": _rate(won, total),
    }


def build_dashboard(
    submissions: list[Submission],
    status_totals: dict[str, dict],
    today: Optional[date] = None,
) -> dict:
    """Assemble the dashboard payload from the caller's scoped submissions.

    Weeks start on Sunday. submissions must be sorted newest first (the order
    SubmissionStore.list_submissions returns by default).
    """
    today = today or date.today()
    # date.weekday(): Monday=0 .. Sunday=6; shift so Sunday starts the week.
    start_of_week = today - timedelta(days=(today.weekday() + 1) % 7)
    start_of_month = today.replace(day=1)
    start_of_year = today.replace(month=1, day=1)

    def count_since(start: date) -> int:
        iso = start.isoformat()
        return sum(1 for s in submissions if s.date >= iso)

    month_data = [0] * 12
    for s in _in_year(submissions, today.year):
        month_data[_month_index(s.date)] += 1

    daily_data = []
    for offset in range(6, -1, -1):
        day = today - timedelta(days=offset)
        iso = day.isoformat()
        daily_data.append(
            {
                "name": calendar.day_abbr[day.weekday()],
                "date": iso,
                "value": sum(1 for s in submissions if s.date == iso),
            }
        )

    recent_activity = [
        {"id": s.id, "date": s.date, "job_link": s.job_link, "status": s.status, "price": s.price}
        for s in submissions[:10]
    ]

    total = len(submissions)
    total_value = sum(s.price for s in submissions)

    return {
        "counts": {
            "total": total,
            "weekly": count_since(start_of_week),
            "monthly": count_since(start_of_month),
            "yearly": count_since(start_of_year),
        },
        "status_data": status_totals,
        "month_data": month_data,
        "daily_data": daily_data,
        "recent_activity": recent_activity,
        "response_rates": response_rates(submissions),
        "avg_submission_value": total_value / total if total else 0.0,
    }
