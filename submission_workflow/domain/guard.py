from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from submission_workflow.domain.workflow import WorkflowTransition

SYSTEM_ADMIN_SCOPE = "system:admin"
SUBMISSIONS_UPDATE_SCOPE = "site:submissions:update"
SUBMISSIONS_PUBLISHING_SCOPE = "site:submissions:publishing"


@dataclass(frozen=True)
class Actor:
    actor_id: str
    # Scopes granted regardless of venue, e.g. system:admin.
    system_scopes: frozenset[str] = frozenset()
    venue_scopes: Mapping[str, frozenset[str]] = field(default_factory=dict)


@runtime_checkable
class ScopeChecker(Protocol):
    def has_scope(self, actor: Actor, scope: str, venue: str | None) -> bool: ...


class ActorScopeChecker:
    """Answers scope questions from the grants carried on the actor itself.

    A ``None`` venue asks for a system-wide grant.
    """

    def has_scope(self, actor: Actor, scope: str, venue: str | None) -> bool:
        if venue is None:
            return scope in actor.system_scopes
        return scope in actor.venue_scopes.get(venue, frozenset())


def is_allowed(
    actor: Actor | None,
    transition: WorkflowTransition,
    venue: str,
    *,
    scope_checker: ScopeChecker,
) -> bool:
    if actor is None:
        return False
    if scope_checker.has_scope(actor, SYSTEM_ADMIN_SCOPE, None):
        return True
    return all(scope_checker.has_scope(actor, scope, venue) for scope in transition.required_scopes)


def missing_scopes(
    actor: Actor,
    transition: WorkflowTransition,
    venue: str,
    *,
    scope_checker: ScopeChecker,
) -> list[str]:
    if scope_checker.has_scope(actor, SYSTEM_ADMIN_SCOPE, None):
        return []
    return [scope for scope in transition.required_scopes if not scope_checker.has_scope(actor, scope, venue)]
