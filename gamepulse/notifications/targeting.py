# gamepulse/notifications/targeting.py

"""
Notification targeting.

A target says who should receive a notification: one device token, one
topic, any of several topics, or a boolean expression over subscription tags
such as "goal notifications enabled AND (follows team A OR follows team B)".
Channels render these into their own addressing formats.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

GOAL_NOTIFICATIONS_TOPIC = 'goal_notifications'

_ASCII_FOLD = {'å': 'a', 'ä': 'a', 'ö': 'o', 'é': 'e', 'ü': 'u'}
_INVALID_TOPIC_CHARS = re.compile(r'[^a-z0-9_-]')


def sanitize_topic_name(value: Optional[str]) -> str:
    """Lowercase, fold Swedish letters to ASCII and drop anything else invalid."""
    if not value:
        return 'unknown'
    normalized = value.lower()
    for source, target in _ASCII_FOLD.items():
        normalized = normalized.replace(source, target)
    return _INVALID_TOPIC_CHARS.sub('', normalized)


def team_tag(code: Optional[str]) -> Optional[str]:
    """Subscription tag for a team code, or None when the code is unusable."""
    if not code:
        return None
    name = sanitize_topic_name(code)
    if not name or name == 'unknown':
        return None
    return f"team_{name}"


def redact_token(token: str) -> str:
    return f"...{token[-8:]}" if token else ''


@dataclass(frozen=True)
class Tag:
    name: str

    def to_fcm_condition(self) -> str:
        return f"'{self.name}' in topics"

    def to_dnf(self) -> List[List[str]]:
        return [[self.name]]


@dataclass(frozen=True)
class AllOf:
    terms: Tuple['TagExpression', ...]

    def to_fcm_condition(self) -> str:
        return ' && '.join(_nested_condition(term) for term in self.terms)

    def to_dnf(self) -> List[List[str]]:
        clauses: List[List[str]] = [[]]
        for term in self.terms:
            clauses = [left + right for left in clauses for right in term.to_dnf()]
        return [list(dict.fromkeys(clause)) for clause in clauses]


@dataclass(frozen=True)
class AnyOf:
    terms: Tuple['TagExpression', ...]

    def to_fcm_condition(self) -> str:
        return ' || '.join(_nested_condition(term) for term in self.terms)

    def to_dnf(self) -> List[List[str]]:
        clauses = []
        for term in self.terms:
            clauses.extend(term.to_dnf())
        return clauses


TagExpression = Union[Tag, AllOf, AnyOf]


def _nested_condition(term: TagExpression) -> str:
    if isinstance(term, Tag) or len(term.terms) == 1:
        return term.to_fcm_condition()
    return f"({term.to_fcm_condition()})"


def _collect(terms) -> Tuple[TagExpression, ...]:
    collected = []
    for term in terms:
        if term is None:
            continue
        if isinstance(term, str):
            term = Tag(term)
        if term not in collected:
            collected.append(term)
    return tuple(collected)


def all_of(*terms) -> Optional[TagExpression]:
    """AND of the given tags/expressions; strings become Tags, None is skipped."""
    collected = _collect(terms)
    if not collected:
        return None
    return collected[0] if len(collected) == 1 else AllOf(collected)


def any_of(*terms) -> Optional[TagExpression]:
    """OR of the given tags/expressions; strings become Tags, None is skipped."""
    collected = _collect(terms)
    if not collected:
        return None
    return collected[0] if len(collected) == 1 else AnyOf(collected)


@dataclass(frozen=True)
class RecipientTarget:
    token: str


@dataclass(frozen=True)
class TopicTarget:
    topic: str


@dataclass(frozen=True)
class TopicsTarget:
    """Deliver to subscribers of any of the topics, each at most once."""
    topics: Tuple[str, ...]


@dataclass(frozen=True)
class ConditionTarget:
    expression: TagExpression


Targeting = Union[RecipientTarget, TopicTarget, TopicsTarget, ConditionTarget]


def describe_target(target: Targeting) -> Dict[str, object]:
    """Loggable description of a target with recipient tokens truncated."""
    if isinstance(target, RecipientTarget):
        return {'token_preview': redact_token(target.token)}
    if isinstance(target, TopicTarget):
        return {'topic': target.topic}
    if isinstance(target, TopicsTarget):
        return {'topics': list(target.topics)}
    return {'condition': target.expression.to_fcm_condition()}
