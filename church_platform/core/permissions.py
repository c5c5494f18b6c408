"""Permission vocabulary, broad-grant expansion, and access decisions.

Everything here is pure: no database or request access. The authorization
dependencies in ``church_platform.core.security`` load the role row and
hand it to these functions.

Tokens are opaque ``verb:resource[:subresource]`` strings compared by exact
match. The only hierarchy is the static expansion table below: holding a
broad grant such as ``manage:donations`` also confers every granular token
listed for it.
"""

import enum
from dataclasses import dataclass
from typing import Iterable, Optional

ADMIN_ROLE = "admin"

FEEDBACK_CATEGORIES = ("sermon", "service", "testimony", "suggestion", "prayer", "general")

PERMISSION_EXPANSIONS: dict[str, tuple[str, ...]] = {
    "manage:donations": (
        "view:campaigns",
        "create:campaigns",
        "edit:campaigns",
        "activate:campaigns",
        "delete:campaigns",
        "view:pledges",
        "view:pledges:all",
        "edit:pledges",
        "process:payments",
        "verify:payments",
        "view:payments:all",
        "view:donation:reports",
    ),
    "manage:feedback": (
        *(f"read:feedback:{c}" for c in FEEDBACK_CATEGORIES),
        *(f"respond:feedback:{c}" for c in FEEDBACK_CATEGORIES),
        "publish:feedback:testimony",
        "update:feedback:status",
        "delete:feedback",
        "view:feedback:stats",
    ),
}

BROAD_PERMISSIONS = (
    "manage:events",
    "manage:sermons",
    "manage:gallery",
    "manage:donations",
    "manage:users",
    "manage:roles",
    "manage:blog",
    "manage:livestream",
    "manage:feedback",
    "manage:volunteers",
    "manage:settings",
    "manage:announcements",
)

STANDALONE_PERMISSIONS = (
    "view:analytics",
    "view:audit_logs",
)

PERMISSION_VOCABULARY: tuple[str, ...] = tuple(
    dict.fromkeys(
        BROAD_PERMISSIONS
        + STANDALONE_PERMISSIONS
        + tuple(token for tokens in PERMISSION_EXPANSIONS.values() for token in tokens)
    )
)


def expand_permissions(permissions: Iterable[str]) -> list[str]:
    """Return the effective permission list for a stored permission set.

    Single pass: keep the stored tokens in order, then append the granular
    tokens of every broad grant present. Re-expanding the result is a no-op.
    """
    effective = list(dict.fromkeys(permissions))
    seen = set(effective)
    for broad, granular in PERMISSION_EXPANSIONS.items():
        if broad not in seen:
            continue
        for token in granular:
            if token not in seen:
                seen.add(token)
                effective.append(token)
    return effective


def invalid_permissions(permissions: Iterable[str]) -> list[str]:
    """Tokens that are not part of the known vocabulary."""
    known = set(PERMISSION_VOCABULARY)
    return [p for p in permissions if p not in known]


def group_permissions() -> dict[str, list[str]]:
    """Group the vocabulary by area for role-management screens."""
    areas = (
        ("donations", ("campaign", "pledge", "payment", "donation")),
        ("feedback", ("feedback",)),
        ("analytics", ("analytics", "audit")),
    )
    grouped: dict[str, list[str]] = {"broad": []}
    grouped.update({name: [] for name, _ in areas})
    for perm in PERMISSION_VOCABULARY:
        if perm.startswith("manage:"):
            grouped["broad"].append(perm)
            continue
        for name, needles in areas:
            if any(n in perm for n in needles):
                grouped[name].append(perm)
                break
    return grouped


@dataclass(frozen=True)
class RoleGrant:
    """A role as resolved for one request."""

    name: str
    permissions: tuple[str, ...] = ()
    effective: frozenset = frozenset()

    @classmethod
    def from_role(cls, name: str, permissions: Iterable[str]) -> "RoleGrant":
        stored = tuple(permissions)
        return cls(name=name, permissions=stored, effective=frozenset(expand_permissions(stored)))

    @property
    def is_admin(self) -> bool:
        return self.name == ADMIN_ROLE

    def allows_any(self, required: Iterable[str]) -> bool:
        if self.is_admin:
            return True
        return any(token in self.effective for token in required)


@dataclass(frozen=True)
class Principal:
    """Snapshot of the requesting user.

    ``role`` is ``None`` exactly when the user has no role reference.
    """

    user_id: int
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: Optional[RoleGrant] = None

    @property
    def role_name(self) -> Optional[str]:
        return self.role.name if self.role else None

    @property
    def is_admin(self) -> bool:
        return self.role is not None and self.role.is_admin


class AccessDecision(str, enum.Enum):
    allowed = "allowed"
    no_role = "no_role"
    insufficient = "insufficient"


def check_permissions(principal: Principal, required: Iterable[str]) -> AccessDecision:
    """Decide access for a disjunction of required tokens (any one suffices)."""
    if principal.role is None:
        return AccessDecision.no_role
    if principal.role.allows_any(required):
        return AccessDecision.allowed
    return AccessDecision.insufficient


def check_admin(principal: Principal) -> bool:
    """Strict admin check: role name must be ``admin``, no expansion applies."""
    return principal.is_admin
