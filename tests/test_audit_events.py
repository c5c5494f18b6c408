"""Tests for the request classifier."""

import pytest

from church_platform.core.audit_events import (
    AUDIT_ACTIONS,
    OUTCOME_ACTIONS,
    RESOURCE_TYPES,
    AuditEvent,
    classify_request,
    is_excluded_path,
    resolve_outcome,
)


class TestExcludedPaths:
    @pytest.mark.parametrize("path", ["/api/health", "/", "/uploads/a.png", "/static/app.js"])
    def test_excluded(self, path):
        assert is_excluded_path(path)

    @pytest.mark.parametrize("path", ["/api/healthz", "/api/sermons", "/api/auth/login"])
    def test_not_excluded(self, path):
        assert not is_excluded_path(path)


class TestClassifyRequest:
    @pytest.mark.parametrize("method,path,expected", [
        ("PUT", "/api/sermons/64f1a2/like", AuditEvent("sermon.like", "sermon")),
        ("POST", "/api/sermons", AuditEvent("sermon.create", "sermon")),
        ("PATCH", "/api/sermons/3", AuditEvent("sermon.update", "sermon")),
        ("DELETE", "/api/sermons/3", AuditEvent("sermon.delete", "sermon")),
        ("POST", "/api/blog/5/approve", AuditEvent("blog.approve", "blog")),
        ("POST", "/api/events/9/register", AuditEvent("event.register", "event")),
        ("POST", "/api/gallery", AuditEvent("gallery.upload", "gallery")),
        ("POST", "/api/gallery/2/like", AuditEvent("gallery.like", "gallery")),
        ("DELETE", "/api/gallery/2", AuditEvent("gallery.delete", "gallery")),
        ("POST", "/api/livestreams/1/archive", AuditEvent("livestream.archive", "livestream")),
        ("POST", "/api/volunteers/apply", AuditEvent("volunteer.apply", "volunteer")),
        ("PUT", "/api/volunteers/4/edit", AuditEvent("volunteer.edit", "volunteer")),
        ("PATCH", "/api/volunteers/4", AuditEvent("volunteer.approve", "volunteer")),
        ("POST", "/api/feedback", AuditEvent("feedback.submit", "feedback")),
        ("POST", "/api/feedback/8/respond", AuditEvent("feedback.respond", "feedback")),
        ("PATCH", "/api/feedback/8/publish", AuditEvent("feedback.publish", "feedback")),
        ("PUT", "/api/users/2/role", AuditEvent("user.role.change", "user")),
        ("POST", "/api/users/bulk", AuditEvent("user.bulk.update", "user")),
        ("PATCH", "/api/users/2/status", AuditEvent("user.status.change", "user")),
        ("DELETE", "/api/users/2", AuditEvent("user.delete", "user")),
        ("POST", "/api/auth/logout", AuditEvent("auth.logout", "user")),
        ("GET", "/api/auth/verify-email", AuditEvent("auth.email.verify", "user")),
        ("GET", "/api/auth/verify", AuditEvent("auth.token.refresh", "user")),
        ("POST", "/api/auth/forgot-password", AuditEvent("auth.password.reset.request", "user")),
    ])
    def test_rules(self, method, path, expected):
        assert classify_request(method, path) == expected

    @pytest.mark.parametrize("method,path", [
        ("GET", "/api/sermons"),
        ("GET", "/api/users/3"),
        ("GET", "/api/gallery"),
        ("PUT", "/api/gallery/3"),
        ("POST", "/api/volunteers"),
        ("GET", "/api/audit/logs"),
        ("PATCH", "/api/roles/3"),
    ])
    def test_unclassified_requests_are_not_logged(self, method, path):
        assert classify_request(method, path) is None

    def test_lowercase_method(self):
        assert classify_request("post", "/api/sermons") == AuditEvent("sermon.create", "sermon")

    def test_every_rule_yields_known_vocabulary(self):
        for method in ("POST", "PUT", "PATCH", "DELETE"):
            for path in ("/api/sermons", "/api/blog", "/api/events", "/api/livestreams",
                         "/api/feedback", "/api/users", "/api/volunteers/1", "/api/gallery"):
                event = classify_request(method, path)
                if event is not None:
                    assert event.action in AUDIT_ACTIONS
                    assert event.resource_type in RESOURCE_TYPES


class TestResolveOutcome:
    def test_login_attempt_resolves_by_success(self):
        assert resolve_outcome("auth.login.attempt", True) == "auth.login.success"
        assert resolve_outcome("auth.login.attempt", False) == "auth.login.failed"

    def test_signup_attempt(self):
        assert resolve_outcome("auth.signup.attempt", False) == "auth.signup.failed"

    def test_other_actions_unchanged(self):
        assert resolve_outcome("sermon.create", False) == "sermon.create"

    def test_login_classified_as_attempt(self):
        assert classify_request("POST", "/api/auth/login").action in OUTCOME_ACTIONS
