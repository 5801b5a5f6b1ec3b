"""
tests/test_export.py -- CSV/JSON export: formatter unit tests and the
GET /api/submissions/export route.

Security background: spreadsheet applications evaluate cells starting with
=, +, - or @ as formulas (CWE-1236). Text cells with those prefixes are
written with a leading tab so they open as text. Numeric cells are left
alone, so a price column still sums correctly.
"""

from __future__ import annotations

import csv
import io

import pytest

from conftest import ApiEnv, bearer
from tracker.export import DEFAULT_EXPORT_FIELDS, parse_fields, to_csv, to_json_rows
from tracker.models import Submission


def _sub(**overrides) -> Submission:
    values = dict(
        id=1,
        owner_id=1,
        date="2024-05-01",
        job_link="https://jobs.example.com/1",
        price=50.0,
        status="submitted",
        notes=None,
        created_at="2024-05-01T10:00:00+00:00",
        updated_at="2024-05-01T10:00:00+00:00",
    )
    values.update(overrides)
    return Submission(**values)


def _rows(text: str) -> list[dict]:
    return list(csv.DictReader(io.StringIO(text)))


class TestParseFields:
    def test_default(self) -> None:
        assert parse_fields(None) == list(DEFAULT_EXPORT_FIELDS)
        assert parse_fields("  ") == list(DEFAULT_EXPORT_FIELDS)
        assert "id" not in DEFAULT_EXPORT_FIELDS

    def test_subset_keeps_order(self) -> None:
        assert parse_fields("price, date ,status") == ["price", "date", "status"]

    def test_unknown_field(self) -> None:
        with pytest.raises(ValueError, match="owner_id"):
            parse_fields("date,owner_id")


class TestToCsv:
    def test_header_and_crlf(self) -> None:
        text = to_csv([_sub(), _sub(id=2, price=75.0)], ["date", "status", "price"])
        assert text.startswith("date,status,price\r\n")
        assert text.count("\r\n") == 3
        assert text.endswith("\r\n")

    def test_rfc4180_quoting(self) -> None:
        text = to_csv([_sub(notes='He said "hi", then\nleft')], ["notes"])
        assert text == 'notes\r\n"He said ""hi"", then\nleft"\r\n'

    def test_none_becomes_empty(self) -> None:
        assert _rows(to_csv([_sub(notes=None)], ["notes"])) == [{"notes": ""}]

    @pytest.mark.parametrize("prefix", ["=", "+", "-", "@"])
    def test_formula_prefixes_are_neutralized(self, prefix: str) -> None:
        text = to_csv([_sub(notes=f"{prefix}HYPERLINK(\"http://evil\")")], ["notes"])
        assert _rows(text)[0]["notes"].startswith("\t" + prefix)

    def test_safe_text_untouched(self) -> None:
        assert _rows(to_csv([_sub(notes="plain note")], ["notes"]))[0]["notes"] == "plain note"

    def test_numbers_not_prefixed(self) -> None:
        assert _rows(to_csv([_sub(price=0.0)], ["price"]))[0]["price"] == "0.0"


class TestToJsonRows:
    def test_all_fields_by_default(self) -> None:
        row = to_json_rows([_sub()])[0]
        assert row["owner_id"] == 1
        assert row["price"] == 50.0

    def test_selected_fields(self) -> None:
        assert to_json_rows([_sub()], ["date", "price"]) == [{"date": "2024-05-01", "price": 50.0}]


class TestExportRoute:
    def test_csv_price_column_sums(self, api_env: ApiEnv) -> None:
        headers = bearer(api_env.operator_token)
        for price in (50, 75):
            resp = api_env.client.post(
                "/api/submissions",
                json={"date": "2024-05-01", "job_link": "https://jobs.example.com/x", "status": "submitted", "price": price},
                headers=headers,
            )
            assert resp.status_code == 201

        resp = api_env.client.get("/api/submissions/export", params={"format": "csv"}, headers=headers)
        assert resp.status_code == 200, resp.text
        assert resp.headers["content-type"].startswith("text/csv")
        assert 'filename="submissions_' in resp.headers["content-disposition"]
        assert resp.text.split("\r\n")[0] == ",".join(DEFAULT_EXPORT_FIELDS)

        rows = _rows(resp.text)
        assert len(rows) == 2
        assert sum(float(r["price"]) for r in rows) == 125

    def test_observer_export_includes_everyone(self, api_env: ApiEnv) -> None:
        api_env.client.post(
            "/api/submissions",
            json={"date": "2024-06-01", "job_link": "https://b.example.com", "price": 5},
            headers=bearer(api_env.other_operator_token),
        )
        resp = api_env.client.get(
            "/api/submissions/export",
            params={"format": "json", "fields": "date,price"},
            headers=bearer(api_env.observer_token),
        )
        assert resp.status_code == 200
        data = resp.json()
        assert len(data) == 3
        assert set(data[0]) == {"date", "price"}

    def test_filters_apply(self, api_env: ApiEnv) -> None:
        resp = api_env.client.get(
            "/api/submissions/export",
            params={"format": "json", "min_price": 60},
            headers=bearer(api_env.operator_token),
        )
        assert [r["price"] for r in resp.json()] == [75.0]

    def test_unknown_field_is_400(self, api_env: ApiEnv) -> None:
        resp = api_env.client.get(
            "/api/submissions/export",
            params={"fields": "date,password"},
            headers=bearer(api_env.operator_token),
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_param"

    def test_unknown_format_is_400(self, api_env: ApiEnv) -> None:
        resp = api_env.client.get(
            "/api/submissions/export", params={"format": "xml"}, headers=bearer(api_env.operator_token)
        )
        assert resp.status_code == 400
