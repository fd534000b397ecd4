"""
Topic pattern matcher — hierarchical topics with `*` and `>` wildcards.

Topics are `.`-delimited segments ("users.john-doe.notifications").
Patterns may additionally use:
  - `*`  exactly one arbitrary non-empty segment
  - `>`  one or more trailing segments; only legal as the final segment

Consequences worth spelling out:
  - `a.>` matches `a.b` and `a.b.c` but NOT `a` (at least one segment after `a`)
  - `>` alone matches every non-empty topic
  - wildcards only count as whole segments; `a*` is an ordinary literal
  - matching is case-sensitive

Every function here is total: malformed input yields False, never an exception.
"""

from __future__ import annotations

from dataclasses import dataclass

from topic_scope.railway import ErrorCode, Result

DELIMITER = "."
SINGLE_WILDCARD = "*"
MULTI_WILDCARD = ">"


def _tokens(text: str) -> tuple[str, ...] | None:
    """Split a pattern into segments, or None when it is not well-formed."""
    if not isinstance(text, str) or not text:
        return None
    tokens = tuple(text.split(DELIMITER))
    for position, token in enumerate(tokens):
        if not token or any(ch.isspace() for ch in token):
            return None
        if token == MULTI_WILDCARD and position != len(tokens) - 1:
            return None
    return tokens


def _is_wildcard(token: str) -> bool:
    return token in (SINGLE_WILDCARD, MULTI_WILDCARD)


@dataclass(frozen=True, slots=True)
class TopicPattern:
    """A well-formed topic pattern. Build instances with TopicPattern.parse()."""

    text: str
    tokens: tuple[str, ...]

    @staticmethod
    def parse(text: str) -> Result[TopicPattern]:
        tokens = _tokens(text)
        if tokens is None:
            return Result.failure(
                ErrorCode.INVALID_PERMISSION_PATTERN,
                f"Topic pattern is not well-formed: {text!r}",
            )
        return Result.success(TopicPattern(text=text, tokens=tokens))

    @property
    def is_literal(self) -> bool:
        return not any(_is_wildcard(token) for token in self.tokens)

    def __str__(self) -> str:
        return self.text


def is_well_formed(pattern: str) -> bool:
    """False for empty patterns, empty segments and a non-trailing `>`."""
    return _tokens(pattern) is not None


def is_literal_topic(topic: str) -> bool:
    """A concrete topic: well-formed and free of wildcard segments."""
    tokens = _tokens(topic)
    return tokens is not None and not any(_is_wildcard(token) for token in tokens)


def matches(pattern: str, topic: str) -> bool:
    """
    Whether `pattern` matches the concrete `topic`.

    Topic segments are compared as opaque literals, so a topic segment "*"
    only matches a pattern `*`, `>` or the literal "*" itself.
    """
    pattern_tokens = _tokens(pattern)
    topic_tokens = _tokens(topic) if isinstance(topic, str) else None
    if pattern_tokens is None or topic_tokens is None:
        return False

    for position, token in enumerate(pattern_tokens):
        if token == MULTI_WILDCARD:
            return len(topic_tokens) > position
        if position >= len(topic_tokens):
            return False
        if token != SINGLE_WILDCARD and token != topic_tokens[position]:
            return False
    return len(topic_tokens) == len(pattern_tokens)


def contains(outer: str, inner: str) -> bool:
    """
    Whether every topic matched by `inner` is also matched by `outer`.

    Used to decide if a wildcard subscription stays inside an allow rule:
    contains("users.john-doe.>", "users.john-doe.*") is True,
    contains("users.john-doe.>", "users.>") is False.
    """
    outer_tokens = _tokens(outer)
    inner_tokens = _tokens(inner)
    if outer_tokens is None or inner_tokens is None:
        return False

    for position, token in enumerate(outer_tokens):
        if token == MULTI_WILDCARD:
            return len(inner_tokens) > position
        if position >= len(inner_tokens):
            return False
        candidate = inner_tokens[position]
        if candidate == MULTI_WILDCARD:
            return False
        if token == SINGLE_WILDCARD:
            continue
        if candidate != token:
            return False
    return len(inner_tokens) == len(outer_tokens)


def overlaps(first: str, second: str) -> bool:
    """Whether at least one concrete topic is matched by both patterns."""
    first_tokens = _tokens(first)
    second_tokens = _tokens(second)
    if first_tokens is None or second_tokens is None:
        return False

    for a, b in zip(first_tokens, second_tokens):
        if a == MULTI_WILDCARD or b == MULTI_WILDCARD:
            return True
        if a == SINGLE_WILDCARD or b == SINGLE_WILDCARD:
            continue
        if a != b:
            return False
    return len(first_tokens) == len(second_tokens)
