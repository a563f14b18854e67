"""Authorization collaborators.

The engine never stores roles or permissions; it asks an ``Authorizer``
whether an actor may perform an action on a resource and refuses the
operation when the answer is no.

Action names are dotted verbs, e.g. ``data_point.update_status``,
``generation.mark_final``, ``access_request.resolve``.
"""

from __future__ import annotations

import fnmatch
from typing import Protocol, runtime_checkable

from disclosure_governance.models import Actor


@runtime_checkable
class Authorizer(Protocol):
    """Protocol for permission decision backends."""

    def can_perform(self, actor: Actor, action: str, resource: str) -> bool: ...


class AllowAllAuthorizer:
    """Permits everything. Used when no permissions are configured."""

    def can_perform(self, actor: Actor, action: str, resource: str) -> bool:
        return True


class PatternAuthorizer:
    """Grants actions by glob pattern per actor id.

    The key ``"*"`` applies to every actor::

        PatternAuthorizer({
            "auditor-1": ["*.list*", "*.get", "generation.compare"],
            "*": ["access_request.create"],
        })
    """

    def __init__(self, grants: dict[str, list[str]]) -> None:
        self._grants = {actor: list(patterns) for actor, patterns in grants.items()}

    def can_perform(self, actor: Actor, action: str, resource: str) -> bool:
        patterns = [*self._grants.get(actor.id, []), *self._grants.get("*", [])]
        return _action_matches(action, patterns)


def _action_matches(action: str, patterns: list[str]) -> bool:
    """Check if the action name matches any of the patterns (glob/fnmatch)."""
    return any(fnmatch.fnmatch(action, p) for p in patterns)
