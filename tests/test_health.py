"""
tests/test_health.py -- Integration tests for GET /api/health.

Covers:
  - 200 with status, version and database fields
  - No authentication required (public API prefix)
  - 503 "degraded" when the database round-trip fails
"""

from __future__ import annotations

import api.main as api_main
from conftest import ApiEnv


def test_health_ok(api_env: ApiEnv) -> None:
    resp = api_env.client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "version": api_main.VERSION, "database": "ok"}


def test_health_needs_no_auth_even_with_bad_token(api_env: ApiEnv) -> None:
    resp = api_env.client.get("/api/health", headers={"Authorization": "Bearer junk"})
    assert resp.status_code == 200


def test_health_degraded_when_db_unreachable(api_env: ApiEnv, monkeypatch) -> None:
    monkeypatch.setattr(api_main, "ping", lambda engine: False)
    resp = api_env.client.get("/api/health")
    assert resp.status_code == 503
    assert resp.json()["status"] == "degraded"
    assert resp.json()["database"] == "error"
