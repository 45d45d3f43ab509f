"""
Feature activation rules.

``enabled`` is the master switch. When a feature also carries a user group
rule, it is only active for requesters presenting at least one group that
appears in the rule's list or matches its pattern.
"""

from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from .models import UserGroups


class Gateable(Protocol):
    """Anything carrying the fields the resolver reads."""

    enabled: bool
    user_groups: Any


def _as_rule(user_groups: Any) -> UserGroups | None:
    if user_groups is None or isinstance(user_groups, UserGroups):
        return user_groups
    if isinstance(user_groups, Mapping):
        # Raw column value; patterns were validated when it was written
        return UserGroups.model_validate(user_groups)
    return None


def _as_identifiers(requester_groups: str | Iterable[str] | None) -> list[str]:
    if requester_groups is None:
        return []
    if isinstance(requester_groups, str):
        return [requester_groups]
    return [group for group in requester_groups if isinstance(group, str)]


def is_active(feature: Gateable, requester_groups: str | Iterable[str] | None = None) -> bool:
    """
    Decide whether ``feature`` is active for a requester.

    Args:
        feature: Feature state (a ``FeatureResponse`` or a stored ``Feature`` row)
        requester_groups: Group identifiers presented by the requester; a
            single string counts as one identifier

    Returns:
        True if the feature is enabled and either ungated or matched by one
        of the requester's groups
    """
    if not feature.enabled:
        return False

    rule = _as_rule(feature.user_groups)
    if rule is None or not rule.is_configured:
        return True

    return any(rule.matches(group) for group in _as_identifiers(requester_groups))
