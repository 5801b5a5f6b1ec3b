"""
api/routes/user.py -- Profile, settings and password endpoints for the caller.

Routes:
  GET  /api/user/settings   -- profile + effective settings
  PUT  /api/user/settings   -- update name, email, weekly_target, default_view, currency
  POST /api/user/password   -- change password (current password required)

Field permissions are declared in _FIELD_ROLES rather than branched on in the
handler: a field listed there may only be set by the roles named. Observers
therefore get 403 for weekly_target (they inherit the primary operator's
target) while every other field stays open to them.

An email change invalidates the email claim in the caller's token, so a fresh
token and cookies are issued in the same response.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.models import PasswordChangeRequest, SettingsResponse, SettingsUpdate
from auth.dependencies import get_session
from auth.models import ROLE_OPERATOR, Account, SessionIdentity
from auth.store import AccountStore, normalize_email
from auth.tokens import create_access_token, hash_password, set_auth_cookies, verify_password

logger = logging.getLogger("proptrack.api.user")

router = APIRouter()

_FIELD_ROLES: dict[str, set[str]] = {
    "weekly_target": {ROLE_OPERATOR},
}

_SETTINGS_FIELDS = ("weekly_target", "default_view", "currency")


def check_field_permissions(role: str, fields: set[str]) -> None:
    """Raise 403 if role may not set one of fields."""
    for name in sorted(fields):
        allowed = _FIELD_ROLES.get(name)
        if allowed is not None and role not in allowed:
            raise HTTPException(
                status_code=403,
                detail={"message": f"Your role cannot change {name}.", "error": "forbidden_field"},
            )


def _load_account(store: AccountStore, session: SessionIdentity) -> Account:
    account = store.get_by_id(session.subject_id)
    if account is None:
        raise HTTPException(
            status_code=404,
            detail={"message": "User not found.", "error": "not_found"},
        )
    return account


def _settings_response(store: AccountStore, account: Account) -> SettingsResponse:
    settings = store.effective_settings(account)
    return SettingsResponse(
        id=account.id,
        email=account.email,
        name=account.name,
        role=account.role,
        weekly_target=settings.weekly_target,
        default_view=settings.default_view,
        currency=settings.currency,
    )


@router.get("/user/settings")
def get_user_settings(request: Request, session: SessionIdentity = Depends(get_session)) -> dict:
    store: AccountStore = request.app.state.account_store
    account = _load_account(store, session)
    return {"user": _settings_response(store, account).model_dump()}


@router.put("/user/settings")
def update_user_settings(
    request: Request,
    body: SettingsUpdate,
    session: SessionIdentity = Depends(get_session),
) -> JSONResponse:
    """Apply the supplied fields; omitted fields are left unchanged."""
    store: AccountStore = request.app.state.account_store
    supplied = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    check_field_permissions(session.role, set(supplied))

    account = _load_account(store, session)
    updates: dict = {}
    if "name" in supplied:
        updates["name"] = supplied["name"] or None

    email_changed = "email" in supplied and normalize_email(supplied["email"]) != account.email
    if email_changed:
        if store.get_by_email(supplied["email"]) is not None:
            raise HTTPException(
                status_code=409,
                detail={"message": "Email already in use.", "error": "email_in_use"},
            )
        updates["email"] = supplied["email"]

    setting_changes = {k: supplied[k] for k in _SETTINGS_FIELDS if k in supplied}
    if "default_view" in setting_changes:
        setting_changes["default_view"] = setting_changes["default_view"].value
    if setting_changes:
        updates["settings"] = replace(account.settings, **setting_changes)

    if updates:
        try:
            store.update_account(account.id, **updates)
        except IntegrityError as exc:
            # Lost a race with another registration for the same email.
            raise HTTPException(
                status_code=409,
                detail={"message": "Email already in use.", "error": "email_in_use"},
            ) from exc
        logger.info("Account %d updated %s", account.id, ", ".join(sorted(updates)))

    updated = _load_account(store, session)
    content: dict = {
        "success": True,
        "message": "User settings updated successfully.",
        "user": _settings_response(store, updated).model_dump(),
    }
    if not email_changed:
        return JSONResponse(content=content)

    token = create_access_token(updated.id, updated.email, updated.role)
    content["token"] = token
    resp = JSONResponse(content=content)
    set_auth_cookies(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/user/password")
def change_password(
    request: Request,
    body: PasswordChangeRequest,
    session: SessionIdentity = Depends(get_session),
) -> dict:
    store: AccountStore = request.app.state.account_store
    account = _load_account(store, session)
    if not verify_password(body.current_password, account.hashed_password):
        raise HTTPException(
            status_code=400,
            detail={"message": "Current password is incorrect.", "error": "bad_password"},
        )
    store.update_account(account.id, hashed_password=hash_password(body.new_password))
    logger.info("Account %d changed password", account.id)
    return {"success": True, "message": "Password updated successfully."}
