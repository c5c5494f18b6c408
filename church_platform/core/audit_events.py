"""Audit action vocabulary and the HTTP request classifier.

``classify_request`` maps a method and path to an ``AuditEvent`` or ``None``
(do not log). Rules are checked in the order written below: auth sub-paths
first, then one block per resource segment, and inside each block the
special sub-paths before the generic method rules.
"""

from typing import NamedTuple, Optional

AUDIT_ACTIONS = (
    # Authentication
    "auth.login.success",
    "auth.login.failed",
    "auth.signup.success",
    "auth.signup.failed",
    "auth.logout",
    "auth.token.refresh",
    "auth.password.reset.request",
    "auth.password.reset.success",
    "auth.email.verify",
    # User management
    "user.create",
    "user.update",
    "user.delete",
    "user.role.change",
    "user.status.change",
    "user.bulk.update",
    # Content
    "sermon.create",
    "sermon.update",
    "sermon.delete",
    "sermon.like",
    "blog.create",
    "blog.update",
    "blog.delete",
    "blog.approve",
    "event.create",
    "event.update",
    "event.delete",
    "event.register",
    "gallery.upload",
    "gallery.delete",
    "gallery.like",
    # Livestream
    "livestream.create",
    "livestream.update",
    "livestream.archive",
    "livestream.delete",
    # Volunteer
    "volunteer.apply",
    "volunteer.edit",
    "volunteer.approve",
    "volunteer.reject",
    "volunteer.delete",
    # Feedback
    "feedback.submit",
    "feedback.update",
    "feedback.respond",
    "feedback.publish",
    "feedback.delete",
    # System
    "system.access.denied",
    "system.error",
    "system.rate.limit",
)

RESOURCE_TYPES = (
    "user", "sermon", "blog", "event", "gallery",
    "livestream", "volunteer", "feedback", "system",
)

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS")

# Resolved to .success / .failed once the response status is known.
OUTCOME_ACTIONS = {
    "auth.login.attempt": ("auth.login.success", "auth.login.failed"),
    "auth.signup.attempt": ("auth.signup.success", "auth.signup.failed"),
}

ACCESS_DENIED = "system.access.denied"
SYSTEM_ERROR = "system.error"
RATE_LIMITED = "system.rate.limit"


class AuditEvent(NamedTuple):
    action: str
    resource_type: str


def is_excluded_path(path: str) -> bool:
    """Health checks, root and static assets are never audited."""
    return (
        path == "/api/health"
        or path == "/"
        or path.startswith("/uploads")
        or path.startswith("/static")
    )


def resolve_outcome(action: str, success: bool) -> str:
    if action in OUTCOME_ACTIONS:
        succeeded, failed = OUTCOME_ACTIONS[action]
        return succeeded if success else failed
    return action


def _crud(method: str, resource: str, create: str = "create") -> Optional[AuditEvent]:
    if method == "POST":
        return AuditEvent(f"{resource}.{create}", resource)
    if method in ("PUT", "PATCH"):
        return AuditEvent(f"{resource}.update", resource)
    if method == "DELETE":
        return AuditEvent(f"{resource}.delete", resource)
    return None


_AUTH_RULES = (
    ("/auth/login", "auth.login.attempt"),
    ("/auth/signup", "auth.signup.attempt"),
    ("/auth/logout", "auth.logout"),
    ("/auth/verify-email", "auth.email.verify"),
    ("/auth/verify", "auth.token.refresh"),
    ("/auth/forgot-password", "auth.password.reset.request"),
    ("/auth/reset-password", "auth.password.reset.success"),
)


def classify_request(method: str, path: str) -> Optional[AuditEvent]:
    """Classify a request, or return ``None`` when it should not be logged."""
    method = method.upper()

    for fragment, action in _AUTH_RULES:
        if fragment in path:
            return AuditEvent(action, "user")

    if "/users" in path:
        if "/role" in path:
            return AuditEvent("user.role.change", "user")
        if "/bulk" in path:
            return AuditEvent("user.bulk.update", "user")
        if "/status" in path:
            return AuditEvent("user.status.change", "user")
        return _crud(method, "user")

    if "/sermons" in path:
        if "/like" in path:
            return AuditEvent("sermon.like", "sermon")
        return _crud(method, "sermon")

    if "/blog" in path:
        if "/approve" in path:
            return AuditEvent("blog.approve", "blog")
        return _crud(method, "blog")

    if "/events" in path:
        if "/register" in path:
            return AuditEvent("event.register", "event")
        return _crud(method, "event")

    if "/gallery" in path:
        if "/like" in path:
            return AuditEvent("gallery.like", "gallery")
        if method == "POST":
            return AuditEvent("gallery.upload", "gallery")
        if method == "DELETE":
            return AuditEvent("gallery.delete", "gallery")
        return None

    if "/livestreams" in path:
        if "/archive" in path:
            return AuditEvent("livestream.archive", "livestream")
        return _crud(method, "livestream")

    if "/volunteers" in path:
        if "/apply" in path:
            return AuditEvent("volunteer.apply", "volunteer")
        if "/edit" in path:
            return AuditEvent("volunteer.edit", "volunteer")
        if method in ("PUT", "PATCH"):
            return AuditEvent("volunteer.approve", "volunteer")
        if method == "DELETE":
            return AuditEvent("volunteer.delete", "volunteer")
        return None

    if "/feedback" in path:
        if "/respond" in path:
            return AuditEvent("feedback.respond", "feedback")
        if "/publish" in path:
            return AuditEvent("feedback.publish", "feedback")
        return _crud(method, "feedback", create="submit")

    return None
