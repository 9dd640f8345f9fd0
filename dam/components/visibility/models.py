"""
Visibility component models.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal
from uuid import UUID

from dam.domain.entities import Asset, User, VisibilityLevel

if TYPE_CHECKING:
    from .ports import ShareLookupPort, TeamMembershipPort

PermissionAction = Literal["view", "edit", "delete", "approve", "download"]

PERMISSION_ACTIONS: tuple[PermissionAction, ...] = (
    "view",
    "edit",
    "delete",
    "approve",
    "download",
)


# --- Decision (sum type) ---


@dataclass(frozen=True)
class Allowed:
    """Permission granted by the named rule."""

    rule: str

    @property
    def allowed(self) -> bool:
        return True

    def __bool__(self) -> bool:
        return True


@dataclass(frozen=True)
class Denied:
    """Permission refused; ``reason`` names the rule or the fall-through."""

    reason: str

    @property
    def allowed(self) -> bool:
        return False

    def __bool__(self) -> bool:
        return False


Decision = Allowed | Denied


# --- Rule table ---


@dataclass(frozen=True)
class RuleContext:
    user: User
    asset: Asset
    shares: ShareLookupPort | None = None
    teams: TeamMembershipPort | None = None


@dataclass(frozen=True)
class VisibilityRule:
    """
    One row of the view-permission table.

    ``level`` None: the rule applies to every asset and only ever allows;
    a False predicate falls through to the next row.
    ``level`` set: the rule applies only to that visibility level and its
    predicate is final (allow or deny).
    """

    name: str
    level: VisibilityLevel | None
    predicate: Callable[[RuleContext], bool]


# --- List filter ---


@dataclass(frozen=True)
class VisibilityFilter:
    """
    Storage-layer form of ``can_view`` for one user.

    ``sql``/``params`` is a WHERE fragment over the ``assets`` table;
    ``matches`` evaluates the same rules row by row for repositories that
    cannot run SQL.
    """

    user: User
    sql: str
    params: tuple[Any, ...]
    teammate_ids: frozenset[UUID] = field(default_factory=frozenset)

    def matches(self, asset: Asset, shares: ShareLookupPort | None) -> bool:
        from .component import evaluate_view
        from .ports import StaticTeams

        teams = StaticTeams({self.user.id: self.teammate_ids})
        return bool(evaluate_view(self.user, asset, shares=shares, teams=teams))


@dataclass(frozen=True)
class PermissionSummary:
    """All permission flags for one (user, asset) pair."""

    can_view: bool
    can_edit: bool
    can_delete: bool
    can_approve: bool
    can_download: bool
    reason: str | None = None
