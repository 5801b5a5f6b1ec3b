"""
API request and response models for the Proposal Tracker REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
tracker/models.py, which own the internal domain representation. Route
handlers map between the two.

Separation of concerns: domain dataclasses = domain truth; api/ models = API
contract.
"""

from datetime import date as _date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tracker.models import Submission

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
# Deliberately loose: one "@", something on both sides, a dot in the domain.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# bcrypt only hashes the first 72 bytes.
PASSWORD_MIN = 8
PASSWORD_MAX = 72


def check_calendar_date(value: Optional[str]) -> Optional[str]:
    """Return value if it is a real calendar date. Raises ValueError otherwise.

    DATE_PATTERN alone lets "2026-13-01" and "2026-02-31" through.
    """
    if value is None:
        return value
    return _date.fromisoformat(value).isoformat()


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class StatusEnum(str, Enum):
    submitted = "submitted"
    viewed = "viewed"
    interviewed = "interviewed"
    won = "won"
    declined = "declined"


class RoleEnum(str, Enum):
    operator = "operator"
    observer = "observer"


class ViewEnum(str, Enum):
    list = "list"
    grid = "grid"


class ExportFormatEnum(str, Enum):
    csv = "csv"
    json = "json"


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorResponse(BaseModel):
    """Uniform error body returned on every 4xx/5xx response.

    detail is only populated when DEBUG=true.
    """

    model_config = ConfigDict(frozen=True)

    message: str
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    database: str = "ok"


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=1, max_length=PASSWORD_MAX)


class RegisterRequest(BaseModel):
    """Request body for POST /api/auth/register.

    role is optional; omitted means Settings.default_role.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=PASSWORD_MIN, max_length=PASSWORD_MAX)
    name: Optional[str] = Field(default=None, max_length=255)
    role: Optional[RoleEnum] = None


class SessionUser(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    role: str


class LoginResponse(BaseModel):
    """Response for a successful login (and auto-login after register)."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    token: str
    token_type: str = "bearer"  # noqa: S105 # nosec B105 -- OAuth token type, not a password
    expires_in: int
    user: SessionUser


class MeUser(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    email: str
    role: str


class MeResponse(BaseModel):
    """Response for GET /api/auth/me."""

    model_config = ConfigDict(frozen=True)

    authenticated: bool = True
    user: MeUser


class ForgotPasswordRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    token: str = Field(min_length=1)
    password: str = Field(min_length=PASSWORD_MIN, max_length=PASSWORD_MAX)


# ---------------------------------------------------------------------------
# Submissions
# ---------------------------------------------------------------------------


class SubmissionCreate(BaseModel):
    """Request body for POST /api/submissions."""

    model_config = ConfigDict(str_strip_whitespace=True)

    date: str = Field(pattern=DATE_PATTERN)
    job_link: str = Field(min_length=1, max_length=2048)
    price: float = Field(ge=0, allow_inf_nan=False)
    status: StatusEnum = StatusEnum.submitted
    notes: Optional[str] = Field(default=None, max_length=5000)

    @field_validator("date")
    @classmethod
    def real_date(cls, value: str) -> str:
        return check_calendar_date(value)


class SubmissionUpdate(BaseModel):
    """Request body for PUT /api/submissions/{id}. Omitted fields are unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    date: Optional[str] = Field(default=None, pattern=DATE_PATTERN)
    job_link: Optional[str] = Field(default=None, min_length=1, max_length=2048)
    price: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    status: Optional[StatusEnum] = None
    notes: Optional[str] = Field(default=None, max_length=5000)

    @field_validator("date")
    @classmethod
    def real_date(cls, value: Optional[str]) -> Optional[str]:
        return check_calendar_date(value)


class SubmissionResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    owner_id: int
    date: str
    job_link: str
    status: str
    price: float
    notes: Optional[str]
    created_at: str
    updated_at: str

    @classmethod
    def from_submission(cls, submission: Submission) -> "SubmissionResponse":
        return cls(
            id=submission.id,
            owner_id=submission.owner_id,
            date=submission.date,
            job_link=submission.job_link,
            status=submission.status,
            price=submission.price,
            notes=submission.notes,
            created_at=submission.created_at,
            updated_at=submission.updated_at,
        )


class Pagination(BaseModel):
    model_config = ConfigDict(frozen=True)

    total: int
    page: int
    limit: int
    pages: int


class SubmissionListResponse(BaseModel):
    """Response for GET /api/submissions."""

    model_config = ConfigDict(frozen=True)

    submissions: list[SubmissionResponse]
    pagination: Pagination


# ---------------------------------------------------------------------------
# User settings
# ---------------------------------------------------------------------------


class SettingsUpdate(BaseModel):
    """Request body for PUT /api/user/settings. Omitted fields are unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    weekly_target: Optional[int] = Field(default=None, ge=1, le=1000)
    default_view: Optional[ViewEnum] = None
    currency: Optional[str] = Field(default=None, pattern=r"^[A-Za-z]{3}$")

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value else value


class SettingsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    name: Optional[str]
    role: str
    weekly_target: int
    default_view: str
    currency: str


class PasswordChangeRequest(BaseModel):
    """Request body for POST /api/user/password."""

    current_password: str = Field(min_length=1, max_length=PASSWORD_MAX)
    new_password: str = Field(min_length=PASSWORD_MIN, max_length=PASSWORD_MAX)
