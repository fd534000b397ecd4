"""
topic_scope — scoped-credential authorization for publish/subscribe topics.

Issues short-lived signed credentials that confine an identity to a topic
subtree, verifies them, and enforces allow/deny topic patterns for publish
and subscribe, independent of any particular message broker.

Built on the Railway-Oriented Programming primitives in topic_scope.railway
for explicit, composable error handling.
"""

__version__ = "0.1.0"
