"""
Permission enforcer — allow/deny decision for one publish or subscribe attempt.

Pure function of (PermissionSet, operation, topic); it never fails. An
unauthorized operation is an ordinary EnforcementDecision(allowed=False).

Precedence:
  1. any deny rule hitting the topic   → denied, matched_rule = first such deny
  2. else any allow rule covering it   → allowed, matched_rule = first such allow
  3. else                              → denied, matched_rule = None

For a concrete topic "hitting" and "covering" both mean `matches`. A
subscription pattern with wildcards is denied as soon as it overlaps any deny
rule, and only allowed when one allow rule contains all of it.
"""

from __future__ import annotations

from topic_scope.domain.models import EnforcementDecision, Operation, PermissionSet
from topic_scope.domain.topics import TopicPattern, contains, overlaps


def authorize(permissions: PermissionSet, operation: Operation, topic: str) -> EnforcementDecision:
    """Decide whether `operation` on `topic` is within `permissions`."""
    parsed = TopicPattern.parse(topic)
    if parsed.is_failure():
        return EnforcementDecision(operation=operation, topic=topic, allowed=False)
    if operation is Operation.PUBLISH and not parsed.value().is_literal:
        return EnforcementDecision(operation=operation, topic=topic, allowed=False)

    rules = permissions.for_operation(operation)

    for deny in rules.deny:
        if overlaps(deny, topic):
            return EnforcementDecision(operation=operation, topic=topic, allowed=False, matched_rule=deny)

    for allow in rules.allow:
        if contains(allow, topic):
            return EnforcementDecision(operation=operation, topic=topic, allowed=True, matched_rule=allow)

    return EnforcementDecision(operation=operation, topic=topic, allowed=False)
