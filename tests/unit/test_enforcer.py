"""
Unit tests for the permission enforcer.

Pure decision logic: deny overrides allow, allow must contain the request,
everything else is implicitly denied.
"""

from __future__ import annotations

import pytest

from topic_scope.domain.models import Operation, Permission, PermissionSet
from topic_scope.enforcer import authorize


@pytest.fixture()
def scoped() -> PermissionSet:
    return PermissionSet(
        publish=Permission(allow=["users.john-doe.>"], deny=["users.john-doe.audit"]),
        subscribe=Permission(allow=["users.john-doe.>"], deny=["users.john-doe.secret"]),
    )


class TestAllow:
    """Verify operations inside the scope are allowed."""

    def test_publish_inside_scope(self, scoped: PermissionSet) -> None:
        decision = authorize(scoped, Operation.PUBLISH, "users.john-doe.notifications")
        assert decision.allowed
        assert decision.matched_rule == "users.john-doe.>"
        assert decision.operation is Operation.PUBLISH
        assert decision.topic == "users.john-doe.notifications"

    def test_subscribe_inside_scope(self, scoped: PermissionSet) -> None:
        assert authorize(scoped, Operation.SUBSCRIBE, "users.john-doe.notifications").allowed

    def test_wildcard_subscription_contained_by_allow(self) -> None:
        permissions = PermissionSet.scoped_to("users.john-doe.>")
        decision = authorize(permissions, Operation.SUBSCRIBE, "users.john-doe.*")
        assert decision.allowed
        assert decision.matched_rule == "users.john-doe.>"

    def test_single_level_wildcard_overlapping_deny_is_denied(self, scoped: PermissionSet) -> None:
        decision = authorize(scoped, Operation.SUBSCRIBE, "users.john-doe.*")
        assert not decision.allowed
        assert decision.matched_rule == "users.john-doe.secret"

    def test_first_matching_allow_is_reported(self) -> None:
        permissions = PermissionSet(publish=Permission(allow=["a.b", "a.*", "a.>"]))
        assert authorize(permissions, Operation.PUBLISH, "a.b").matched_rule == "a.b"
        assert authorize(permissions, Operation.PUBLISH, "a.c").matched_rule == "a.*"


class TestDeny:
    """Verify deny precedence and implicit deny."""

    def test_subscribe_outside_scope_is_implicitly_denied(self) -> None:
        """
        GIVEN a credential scoped to users.john-doe.>
        WHEN subscribing to users.>
        THEN the request is denied with no matched rule.
        """
        decision = authorize(PermissionSet.scoped_to("users.john-doe.>"), Operation.SUBSCRIBE, "users.>")
        assert not decision.allowed
        assert decision.matched_rule is None

    def test_broad_subscription_reports_overlapping_deny(self, scoped: PermissionSet) -> None:
        """
        GIVEN a scope that denies users.john-doe.secret
        WHEN subscribing to users.>
        THEN the overlapping deny is the matched rule.
        """
        decision = authorize(scoped, Operation.SUBSCRIBE, "users.>")
        assert not decision.allowed
        assert decision.matched_rule == "users.john-doe.secret"

    def test_other_subject_is_denied(self, scoped: PermissionSet) -> None:
        assert not authorize(scoped, Operation.PUBLISH, "users.jane.notifications").allowed

    def test_scope_prefix_itself_is_denied(self, scoped: PermissionSet) -> None:
        assert not authorize(scoped, Operation.PUBLISH, "users.john-doe").allowed

    def test_deny_overrides_allow(self, scoped: PermissionSet) -> None:
        decision = authorize(scoped, Operation.SUBSCRIBE, "users.john-doe.secret")
        assert not decision.allowed
        assert decision.matched_rule == "users.john-doe.secret"

    def test_deny_overrides_allow_for_any_order(self) -> None:
        permissions = PermissionSet(publish=Permission(allow=["a.>"], deny=["a.>"]))
        assert not authorize(permissions, Operation.PUBLISH, "a.b").allowed

    def test_wildcard_subscription_overlapping_deny_is_denied(self, scoped: PermissionSet) -> None:
        decision = authorize(scoped, Operation.SUBSCRIBE, "users.john-doe.>")
        assert not decision.allowed
        assert decision.matched_rule == "users.john-doe.secret"

    def test_rules_are_per_operation(self, scoped: PermissionSet) -> None:
        assert authorize(scoped, Operation.PUBLISH, "users.john-doe.secret").allowed
        assert not authorize(scoped, Operation.PUBLISH, "users.john-doe.audit").allowed
        assert authorize(scoped, Operation.SUBSCRIBE, "users.john-doe.audit").allowed

    def test_empty_permissions_deny_everything(self) -> None:
        assert not authorize(PermissionSet(), Operation.PUBLISH, "anything").allowed
        assert not authorize(PermissionSet(), Operation.SUBSCRIBE, ">").allowed

    def test_publish_to_wildcard_is_denied(self, scoped: PermissionSet) -> None:
        assert not authorize(scoped, Operation.PUBLISH, "users.john-doe.*").allowed

    @pytest.mark.parametrize("topic", ["", "users..x", "users.john-doe.", "users.>.x"])
    def test_malformed_topic_is_denied(self, scoped: PermissionSet, topic: str) -> None:
        decision = authorize(scoped, Operation.SUBSCRIBE, topic)
        assert not decision.allowed
        assert decision.matched_rule is None

    def test_decision_is_deterministic(self, scoped: PermissionSet) -> None:
        decisions = {authorize(scoped, Operation.SUBSCRIBE, "users.john-doe.notifications") for _ in range(50)}
        assert len(decisions) == 1

    def test_deny_subtree_inside_allow_subtree(self) -> None:
        """
        GIVEN allow x.> and deny x.secret.>
        WHEN checking x.secret.1 and x.public.1
        THEN the first is denied and the second allowed.
        """
        permissions = PermissionSet(subscribe=Permission(allow=["x.>"], deny=["x.secret.>"]))
        assert not authorize(permissions, Operation.SUBSCRIBE, "x.secret.1").allowed
        assert authorize(permissions, Operation.SUBSCRIBE, "x.public.1").allowed
