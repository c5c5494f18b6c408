"""Tests for the financial transaction audit trail."""

import csv
import io
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from church_platform.core.exceptions import ValidationError
from church_platform.models import TransactionAuditLog
from church_platform.services.transaction_audit_service import (
    EXPORT_HEADERS,
    transaction_audit_service,
)


def record(db, **overrides):
    fields = {
        "transaction_type": "payment_initiated",
        "action": "payment_initiated",
        "user_id": "12",
        "amount": 250.0,
        "payment_method": "mpesa",
        "transaction_id": "txn-1",
    }
    fields.update(overrides)
    return transaction_audit_service.log_transaction(db, **fields)


class TestLogTransaction:
    def test_defaults_and_snapshots(self, db):
        entry = record(
            db,
            before_state={"status": "pending"},
            after_state={"status": "pending", "checkout": "ws_CO_1"},
            mpesa_checkout_request_id="ws_CO_1",
        )
        assert entry.id is not None
        assert entry.currency == "KES"
        assert entry.status == "pending"
        assert '"checkout": "ws_CO_1"' in entry.after_state_json

    def test_invalid_payment_method_rejected(self, db):
        with pytest.raises(ValidationError):
            record(db, payment_method="cheque")

    def test_store_failure_propagates(self, db, monkeypatch):
        def failing_commit():
            raise OperationalError("INSERT", {}, Exception("disk full"))

        monkeypatch.setattr(db, "commit", failing_commit)
        with pytest.raises(OperationalError):
            record(db)
        monkeypatch.undo()
        assert db.query(TransactionAuditLog).count() == 0


class TestQueries:
    @pytest.fixture
    def entries(self, db):
        return [
            record(db),
            record(db, transaction_type="payment_success", action="payment_completed",
                   status="success", mpesa_receipt_number="QAB123"),
            record(db, transaction_id="txn-2", user_id="40", transaction_type="payment_failed",
                   action="payment_failed", status="failed", error="insufficient funds"),
        ]

    def test_by_transaction_and_user(self, db, entries):
        assert len(transaction_audit_service.get_by_transaction(db, "txn-1")) == 2
        assert [e.transaction_id for e in transaction_audit_service.get_by_user(db, "40")] == ["txn-2"]

    def test_query_filters(self, db, entries):
        result = transaction_audit_service.query_logs(db, status="failed")
        assert result["total"] == 1
        assert transaction_audit_service.query_logs(db, search="QAB")["total"] == 1

    def test_offset_aware_date_filter(self, db, entries):
        now_local = datetime.now(timezone(timedelta(hours=3)))
        recent = transaction_audit_service.query_logs(db, start_date=now_local - timedelta(minutes=30))
        assert recent["total"] == 3
        older = transaction_audit_service.query_logs(db, end_date=now_local - timedelta(hours=2))
        assert older["total"] == 0

    def test_stats(self, db, entries):
        stats = transaction_audit_service.get_stats(db)
        assert stats["total"] == 3
        assert {"key": "failed", "count": 1} in stats["by_status"]
        assert [e.error for e in stats["recent_errors"]] == ["insufficient funds"]

    def test_export(self, db, entries):
        rows = list(csv.reader(io.StringIO(transaction_audit_service.export_csv(db))))
        assert rows[0] == EXPORT_HEADERS
        assert len(rows) == 4


class TestTransactionAuditApi:
    def test_requires_donation_report_permission(self, client, make_user, headers_for):
        pastor = make_user("pastor@church.test", "pastor")
        assert client.get("/api/transaction-audit", headers=headers_for(pastor)).status_code == 403

    def test_finance_views(self, client, db, make_user, headers_for):
        record(db)
        bishop = make_user("bishop@church.test", "bishop")
        headers = headers_for(bishop)

        listing = client.get("/api/transaction-audit", headers=headers).json()
        assert listing["total"] == 1
        log_id = listing["logs"][0]["id"]

        assert client.get(f"/api/transaction-audit/{log_id}", headers=headers).json()["log"]["amount"] == 250.0
        assert client.get("/api/transaction-audit/transaction/txn-1", headers=headers).json()["count"] == 1
        assert client.get("/api/transaction-audit/user/12", headers=headers).json()["count"] == 1
        assert client.get("/api/transaction-audit/stats", headers=headers).json()["stats"]["total"] == 1

        export = client.get("/api/transaction-audit/export", headers=headers)
        assert export.headers["content-type"].startswith("text/csv")
        assert client.get("/api/transaction-audit/999", headers=headers).status_code == 404
