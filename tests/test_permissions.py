"""Tests for the pure permission policy module."""

import pytest

from church_platform.core.permissions import (
    PERMISSION_EXPANSIONS,
    PERMISSION_VOCABULARY,
    AccessDecision,
    Principal,
    RoleGrant,
    check_admin,
    check_permissions,
    expand_permissions,
    group_permissions,
    invalid_permissions,
)

BISHOP = [
    "manage:sermons", "manage:events", "manage:users", "manage:donations",
    "manage:volunteers", "view:analytics", "view:audit_logs",
]


def principal_with(role_name, permissions):
    return Principal(user_id=1, email="u@church.test", role=RoleGrant.from_role(role_name, permissions))


class TestExpandPermissions:
    def test_broad_donations_grant_confers_granular_tokens(self):
        effective = expand_permissions(["manage:donations"])
        assert effective[0] == "manage:donations"
        for token in PERMISSION_EXPANSIONS["manage:donations"]:
            assert token in effective

    def test_feedback_grant_covers_every_category(self):
        effective = expand_permissions(["manage:feedback"])
        for category in ("sermon", "service", "testimony", "suggestion", "prayer", "general"):
            assert f"read:feedback:{category}" in effective
            assert f"respond:feedback:{category}" in effective
        assert "publish:feedback:testimony" in effective
        assert "view:feedback:stats" in effective

    def test_tokens_without_expansion_pass_through(self):
        assert expand_permissions(["manage:events", "view:analytics"]) == [
            "manage:events", "view:analytics",
        ]

    def test_idempotent(self):
        once = expand_permissions(BISHOP + ["manage:feedback"])
        assert expand_permissions(once) == once

    def test_no_duplicates_when_granular_already_stored(self):
        effective = expand_permissions(["view:campaigns", "manage:donations"])
        assert effective.count("view:campaigns") == 1

    def test_empty(self):
        assert expand_permissions([]) == []


class TestVocabulary:
    def test_every_expansion_token_is_known(self):
        assert invalid_permissions(
            t for tokens in PERMISSION_EXPANSIONS.values() for t in tokens
        ) == []

    def test_invalid_tokens_reported(self):
        assert invalid_permissions(["manage:events", "fly:rockets"]) == ["fly:rockets"]

    def test_grouping_partitions_broad_grants(self):
        grouped = group_permissions()
        assert "manage:donations" in grouped["broad"]
        assert "view:campaigns" in grouped["donations"]
        assert "delete:feedback" in grouped["feedback"]
        assert "view:audit_logs" in grouped["analytics"]
        assert all(p in PERMISSION_VOCABULARY for group in grouped.values() for p in group)


class TestCheckPermissions:
    def test_bishop_reaches_campaigns_through_donations(self):
        decision = check_permissions(principal_with("bishop", BISHOP), ["create:campaigns"])
        assert decision is AccessDecision.allowed

    def test_volunteer_cannot_manage_sermons(self):
        volunteer = principal_with("volunteer", ["manage:events"])
        assert check_permissions(volunteer, ["manage:sermons"]) is AccessDecision.insufficient

    def test_any_one_required_token_suffices(self):
        pastor = principal_with("pastor", ["manage:sermons"])
        assert check_permissions(pastor, ["manage:users", "manage:sermons"]) is AccessDecision.allowed

    def test_admin_bypasses_even_with_no_tokens(self):
        admin = principal_with("admin", [])
        assert check_permissions(admin, ["manage:settings"]) is AccessDecision.allowed
        assert check_admin(admin) is True

    def test_no_role(self):
        orphan = Principal(user_id=7, email="orphan@church.test")
        assert orphan.role_name is None
        assert check_permissions(orphan, ["view:analytics"]) is AccessDecision.no_role
        assert check_admin(orphan) is False

    @pytest.mark.parametrize("permissions", [BISHOP, ["manage:roles", "manage:users"]])
    def test_admin_check_ignores_permissions(self, permissions):
        assert check_admin(principal_with("bishop", permissions)) is False
