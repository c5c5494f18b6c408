"""Tests for the audit read endpoints."""

from datetime import datetime, timedelta, timezone

from church_platform.db.base import utcnow
from church_platform.models import AuditLog


class TestAuditApi:
    def test_logs_stats_and_alerts(self, client, member, admin, headers_for):
        client.post("/api/auth/login", json={"email": member.email, "password": "nope-nope"})
        headers = headers_for(admin)

        logs = client.get("/api/audit/logs?action=auth.login.failed", headers=headers).json()
        assert logs["total"] == 1
        entry = logs["logs"][0]
        assert entry["actor_email"] == member.email
        assert entry["success"] is False

        detail = client.get(f"/api/audit/{entry['id']}", headers=headers).json()["log"]
        assert detail["endpoint"] == "/api/auth/login"

        stats = client.get("/api/audit/stats", headers=headers).json()["stats"]
        assert stats["failed_count"] == 1

        alerts = client.get("/api/audit/security-alerts", headers=headers).json()["alerts"]
        assert alerts["failed_logins"]["count"] == 1

    def test_bad_sort_column_is_400(self, client, admin, headers_for):
        resp = client.get("/api/audit/logs?sort_by=nonsense", headers=headers_for(admin))
        assert resp.status_code == 400

    def test_export_is_csv(self, client, admin, headers_for):
        resp = client.get("/api/audit/export", headers=headers_for(admin))
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert "attachment; filename=audit-logs-" in resp.headers["content-disposition"]
        assert resp.text.splitlines()[0].startswith('"Timestamp","User","Email"')

    def test_bishop_can_read_but_not_clean(self, client, make_user, headers_for):
        bishop = make_user("bishop@church.test", "bishop")
        headers = headers_for(bishop)
        assert client.get("/api/audit/recent", headers=headers).status_code == 200
        assert client.delete("/api/audit/clean", headers=headers).status_code == 403

    def test_clean_and_timeline(self, client, db, admin, headers_for):
        db.add(AuditLog(
            action="blog.create", resource_type="blog", resource_id="7", method="POST",
            endpoint="/api/blog", status_code=201, success=True,
            created_at=utcnow() - timedelta(days=400),
        ))
        db.commit()
        headers = headers_for(admin)

        timeline = client.get("/api/audit/timeline/blog/7", headers=headers).json()
        assert timeline["count"] == 1

        cleaned = client.delete("/api/audit/clean?days=90", headers=headers).json()
        assert cleaned["deletedCount"] == 1
        assert client.get("/api/audit/timeline/blog/7", headers=headers).json()["count"] == 0

    def test_missing_log_is_404(self, client, admin, headers_for):
        assert client.get("/api/audit/12345", headers=headers_for(admin)).status_code == 404

    def test_date_filter_accepts_utc_offset(self, client, db, admin, headers_for):
        db.add(AuditLog(
            action="sermon.create", resource_type="sermon", method="POST",
            endpoint="/api/sermons", status_code=201, success=True,
        ))
        db.commit()
        since = datetime.now(timezone(timedelta(hours=3))) - timedelta(minutes=30)

        resp = client.get(
            "/api/audit/logs",
            params={"start_date": since.isoformat()},
            headers=headers_for(admin),
        )
        assert resp.status_code == 200
        assert resp.json()["total"] == 1
