"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper (same as tracker/store.py).
AccountStore is the repository; _row_to_account is the mapper.
Route and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Emails are normalized (strip + lower) before every insert, update and
  lookup, and the column is UNIQUE, so "A@x.com" and "a@x.com" collide with an
  IntegrityError that the routes turn into 409.

Engine: the process-wide engine from core.db unless one is passed in (tests).

Layer rule: no imports from api/, web/, tracker/ or client/.
"""

from __future__ import annotations

import json
from dataclasses import asdict, replace
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, func, select
from sqlalchemy.engine import Engine

from auth.models import ROLE_OPERATOR, Account, AccountSettings
from core.db import get_engine

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(20), nullable=False, server_default="observer"),
    Column("name", String(255)),
    Column("settings", Text),  # JSON blob (AccountSettings)
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# Fields update_account() accepts. Anything else is a programming error.
_MUTABLE_FIELDS = {"email", "hashed_password", "role", "name", "settings"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account entities.

    Usage:
        store = AccountStore()
        account_id = store.create_account(Account(email="a@x.com", hashed_password=h, role="operator"))
        account = store.get_by_email("A@X.com")
    """

    def __init__(self, engine: Optional[Engine] = None) -> None:
        self.engine: Engine = engine if engine is not None else get_engine()
        _metadata.create_all(self.engine)

    def create_account(self, account: Account) -> int:
        """Insert a new account and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Callers (POST /auth/register) translate that into 409.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.insert().values(
                    email=normalize_email(account.email),
                    hashed_password=account.hashed_password,
                    role=account.role,
                    name=account.name,
                    settings=json.dumps(asdict(account.settings)),
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_email(self, email: str) -> Optional[Account]:
        """Look up an account by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == normalize_email(email))).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_id(self, account_id: int) -> Optional[Account]:
        """Look up an account by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_primary_operator(self) -> Optional[Account]:
        """Return the earliest-registered operator, or None.

        Observers inherit this account's weekly target on their dashboards.
        """
        with self.engine.connect() as conn:
            row = conn.execute(
                _accounts.select().where(_accounts.c.role == ROLE_OPERATOR).order_by(_accounts.c.id).limit(1)
            ).fetchone()
        return _row_to_account(row) if row is not None else None

    def effective_settings(self, account: Account) -> AccountSettings:
        """Return account's settings with the weekly target observers inherit.

        Observers track the primary operator's weekly target; their other
        preferences are their own.
        """
        if account.role == ROLE_OPERATOR:
            return account.settings
        primary = self.get_primary_operator()
        if primary is None:
            return account.settings
        return replace(account.settings, weekly_target=primary.settings.weekly_target)

    def count_accounts(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_accounts)).scalar()
        return result or 0

    def update_account(self, account_id: int, **fields) -> bool:
        """Update mutable fields on an existing account.

        Accepted fields: email, hashed_password, role, name, settings.
        settings must be passed as an AccountSettings; it is serialized here.
        Raises IntegrityError when a new email collides with another account.

        Returns True if a row was updated, False if account_id was not found.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown account fields: {unknown!r}")
        if "email" in fields:
            fields["email"] = normalize_email(fields["email"])
        if "settings" in fields:
            fields["settings"] = json.dumps(asdict(fields["settings"]))
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(**fields))
            conn.commit()
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _settings_from_json(raw: Optional[str]) -> AccountSettings:
    if not raw:
        return AccountSettings()
    data = json.loads(raw)
    defaults = AccountSettings()
    return AccountSettings(
        weekly_target=data.get("weekly_target", defaults.weekly_target),
        default_view=data.get("default_view", defaults.default_view),
        currency=data.get("currency", defaults.currency),
    )


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        hashed_password=row.hashed_password,
        role=row.role,
        name=row.name,
        settings=_settings_from_json(row.settings),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
