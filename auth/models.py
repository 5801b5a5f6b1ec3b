"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in tracker/models.py -- dataclasses own domain shape; stores and routes do the
work.

Layer rule: no imports from api/, web/, tracker/ or client/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

ROLE_OPERATOR = "operator"
ROLE_OBSERVER = "observer"
ROLES: tuple[str, ...] = (ROLE_OPERATOR, ROLE_OBSERVER)


@dataclass
class AccountSettings:
    """Per-account preferences. Stored as a JSON blob on the account row."""

    weekly_target: int = 10
    default_view: str = "list"  # "list" | "grid"
    currency: str = "USD"


@dataclass
class Account:
    """A registered identity.

    email is always stored lower-cased and stripped; AccountStore normalizes
    it on every write and lookup so uniqueness is case-insensitive.

    id is None before the record is written to the database.
    """

    email: str
    hashed_password: str
    role: str  # "operator" | "observer"
    id: Optional[int] = None
    name: Optional[str] = None
    settings: AccountSettings = field(default_factory=AccountSettings)
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""


@dataclass(frozen=True)
class SessionIdentity:
    """The identity carried by a verified session token. Never persisted."""

    subject_id: int
    email: str
    role: str


@dataclass(frozen=True)
class SessionResolution:
    """Outcome of resolving a request to a session.

    Exactly one of identity / reason is set. reason is "no-token" or
    "invalid-token".
    """

    identity: Optional[SessionIdentity] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.identity is not None
