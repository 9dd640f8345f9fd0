"""
Visibility component - who may view, edit, delete, approve or download an asset.

View permission is an ordered rule table evaluated top to bottom; the first
rule that applies decides. Administrator and uploader rows come first so no
later visibility level can lock either of them out.

Invariants:
- Administrators can view every asset, whatever its visibility or status.
- Uploaders can view their own assets, whatever their visibility or status.
- No matching rule means Denied("no_rule_matched"), never allow.
- Download permission is view permission; it is not derived separately.
- ``query_filter_for(user)`` selects exactly the rows ``can_view`` allows.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from uuid import UUID

from dam.domain.entities import Asset, AssetStatus, User, VisibilityLevel
from dam.domain.errors import EngineError, NotFound, asset_not_found
from dam.ports.repo import AssetListFilters, UnitOfWorkPort

from .models import (
    PERMISSION_ACTIONS,
    Allowed,
    Decision,
    Denied,
    PermissionAction,
    PermissionSummary,
    RuleContext,
    VisibilityFilter,
    VisibilityRule,
)
from .ports import ShareLookupPort, TeamMembershipPort

logger = logging.getLogger(__name__)


# --- Rule predicates ---


def _is_admin(ctx: RuleContext) -> bool:
    return ctx.user.is_admin


def _is_uploader(ctx: RuleContext) -> bool:
    return ctx.user.id == ctx.asset.uploader_id


def _same_company(ctx: RuleContext) -> bool:
    if ctx.user.company_id is None or ctx.asset.company_id is None:
        return False
    return ctx.user.company_id == ctx.asset.company_id


def _shares_team(ctx: RuleContext) -> bool:
    if ctx.teams is None:
        return False
    return ctx.asset.uploader_id in ctx.teams.teammate_ids(ctx.user.id)


def _role_granted(ctx: RuleContext) -> bool:
    if ctx.asset.allowed_role is not None and ctx.asset.allowed_role == ctx.user.role:
        return True
    if ctx.shares is None:
        return False
    return ctx.shares.has_role_share(ctx.asset.id, ctx.user.role.value)


def _user_granted(ctx: RuleContext) -> bool:
    if ctx.shares is None:
        return False
    return ctx.shares.has_user_share(ctx.asset.id, ctx.user.id)


def _always(ctx: RuleContext) -> bool:
    return True


def _never(ctx: RuleContext) -> bool:
    return False


VIEW_RULES: tuple[VisibilityRule, ...] = (
    VisibilityRule("admin", None, _is_admin),
    VisibilityRule("uploader", None, _is_uploader),
    VisibilityRule("public", VisibilityLevel.PUBLIC, _always),
    VisibilityRule("uploader_only", VisibilityLevel.UPLOADER_ONLY, _never),
    VisibilityRule("admin_only", VisibilityLevel.ADMIN_ONLY, _never),
    VisibilityRule("company", VisibilityLevel.COMPANY, _same_company),
    VisibilityRule("team", VisibilityLevel.TEAM, _shares_team),
    VisibilityRule("role", VisibilityLevel.ROLE, _role_granted),
    VisibilityRule("selected_users", VisibilityLevel.SELECTED_USERS, _user_granted),
)


# --- Evaluation ---


def evaluate_view(
    user: User,
    asset: Asset,
    *,
    shares: ShareLookupPort | None = None,
    teams: TeamMembershipPort | None = None,
    rules: tuple[VisibilityRule, ...] = VIEW_RULES,
) -> Decision:
    """Walk the rule table; the first applicable row decides."""
    ctx = RuleContext(user=user, asset=asset, shares=shares, teams=teams)

    for rule in rules:
        if rule.level is None:
            if rule.predicate(ctx):
                return Allowed(rule.name)
            continue

        if asset.visibility != rule.level:
            continue

        if rule.predicate(ctx):
            return Allowed(rule.name)
        decision = Denied(rule.name)
        logger.debug("view denied user=%s asset=%s rule=%s", user.id, asset.id, rule.name)
        return decision

    logger.debug(
        "view denied user=%s asset=%s visibility=%r: no_rule_matched",
        user.id,
        asset.id,
        asset.visibility,
    )
    return Denied("no_rule_matched")


def can_view(
    user: User,
    asset: Asset,
    *,
    shares: ShareLookupPort | None = None,
    teams: TeamMembershipPort | None = None,
) -> bool:
    return bool(evaluate_view(user, asset, shares=shares, teams=teams))


def can_download(
    user: User,
    asset: Asset,
    *,
    shares: ShareLookupPort | None = None,
    teams: TeamMembershipPort | None = None,
) -> bool:
    return can_view(user, asset, shares=shares, teams=teams)


def can_edit(user: User, asset: Asset) -> bool:
    return user.is_admin or user.id == asset.uploader_id


def can_delete(user: User, asset: Asset) -> bool:
    return user.is_admin or user.id == asset.uploader_id


def can_approve(user: User, asset: Asset) -> bool:
    return user.is_admin and asset.status == AssetStatus.PENDING_REVIEW


def evaluate(
    action: PermissionAction,
    user: User,
    asset: Asset,
    *,
    shares: ShareLookupPort | None = None,
    teams: TeamMembershipPort | None = None,
) -> Decision:
    """Single entry point for every permission action."""
    if action in ("view", "download"):
        return evaluate_view(user, asset, shares=shares, teams=teams)
    if action == "edit":
        return Allowed("owner_or_admin") if can_edit(user, asset) else Denied("not_owner")
    if action == "delete":
        return Allowed("owner_or_admin") if can_delete(user, asset) else Denied("not_owner")
    if action == "approve":
        if not user.is_admin:
            return Denied("not_admin")
        if asset.status != AssetStatus.PENDING_REVIEW:
            return Denied("not_pending_review")
        return Allowed("admin_pending_review")
    return Denied("unknown_action")


def summarize(
    user: User,
    asset: Asset,
    *,
    shares: ShareLookupPort | None = None,
    teams: TeamMembershipPort | None = None,
) -> PermissionSummary:
    view = can_view(user, asset, shares=shares, teams=teams)
    edit = can_edit(user, asset)
    delete = can_delete(user, asset)
    approve = can_approve(user, asset)

    reason: str | None = None
    if not view:
        reason = "User does not have permission to view this asset"
    elif not (edit or delete or approve):
        reason = "User has view-only access to this asset"

    return PermissionSummary(
        can_view=view,
        can_edit=edit,
        can_delete=delete,
        can_approve=approve,
        can_download=view,
        reason=reason,
    )


# --- Query filter ---

_ROLE_SHARE_EXISTS = (
    "EXISTS (SELECT 1 FROM asset_shares s WHERE s.asset_id = assets.id "
    "AND s.target_type = 'ROLE' AND s.target_id = ?)"
)
_USER_SHARE_EXISTS = (
    "EXISTS (SELECT 1 FROM asset_shares s WHERE s.asset_id = assets.id "
    "AND s.target_type = 'USER' AND s.target_id = ?)"
)


def query_filter_for(
    user: User,
    *,
    teams: TeamMembershipPort | None = None,
) -> VisibilityFilter:
    """
    Build the list-query equivalent of ``can_view`` for ``user``.

    Clauses mirror ``VIEW_RULES`` row by row. Rows that can never allow
    (UPLOADER_ONLY, ADMIN_ONLY for non-admins) contribute nothing.
    """
    teammate_ids = teams.teammate_ids(user.id) if teams is not None else frozenset()

    if user.is_admin:
        return VisibilityFilter(user=user, sql="1 = 1", params=(), teammate_ids=teammate_ids)

    clauses: list[str] = ["uploader_id = ?", "visibility = ?"]
    params: list[str] = [str(user.id), VisibilityLevel.PUBLIC.value]

    if user.company_id is not None:
        clauses.append("(visibility = ? AND company_id IS NOT NULL AND company_id = ?)")
        params.extend([VisibilityLevel.COMPANY.value, str(user.company_id)])

    if teammate_ids:
        marks = ", ".join("?" for _ in teammate_ids)
        clauses.append(f"(visibility = ? AND uploader_id IN ({marks}))")
        params.append(VisibilityLevel.TEAM.value)
        params.extend(sorted(str(t) for t in teammate_ids))

    clauses.append(f"(visibility = ? AND (allowed_role = ? OR {_ROLE_SHARE_EXISTS}))")
    params.extend([VisibilityLevel.ROLE.value, user.role.value, user.role.value])

    clauses.append(f"(visibility = ? AND {_USER_SHARE_EXISTS})")
    params.extend([VisibilityLevel.SELECTED_USERS.value, str(user.id)])

    return VisibilityFilter(
        user=user,
        sql="(" + " OR ".join(clauses) + ")",
        params=tuple(params),
        teammate_ids=teammate_ids,
    )


# --- Service ---


class VisibilityService:
    """
    Read-side entry points: permission checks, single fetch, visible lists.

    Stateless; every call opens its own unit of work.
    """

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWorkPort],
        teams: TeamMembershipPort | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._teams = teams

    def check_permission(
        self,
        user_id: UUID,
        asset_id: UUID,
        action: PermissionAction,
    ) -> bool:
        """
        Boolean permission check by id.

        Any failure to load the user or asset is a denial.
        """
        if action not in PERMISSION_ACTIONS:
            return False
        try:
            with self._uow_factory() as uow:
                user = uow.users.get_by_id(user_id)
                asset = uow.assets.get_by_id(asset_id)
                if user is None or asset is None:
                    return False
                decision = evaluate(action, user, asset, shares=uow.shares, teams=self._teams)
        except EngineError as e:
            logger.warning("permission check failed closed: %s", e)
            return False
        except Exception:
            logger.exception("permission check failed closed for asset=%s", asset_id)
            return False
        return bool(decision)

    def get_visible_asset(self, user: User, asset_id: UUID) -> Asset:
        """
        Fetch an asset the user may view.

        Raises:
            NotFound: missing, or not visible (indistinguishable on purpose).
        """
        with self._uow_factory() as uow:
            asset = uow.assets.get_by_id(asset_id)
            if asset is None:
                raise asset_not_found()
            if not evaluate_view(user, asset, shares=uow.shares, teams=self._teams):
                raise asset_not_found()
            return asset

    def permissions(self, user: User, asset_id: UUID) -> PermissionSummary:
        with self._uow_factory() as uow:
            asset = uow.assets.get_by_id(asset_id)
            if asset is None:
                raise asset_not_found()
            summary = summarize(user, asset, shares=uow.shares, teams=self._teams)
        if not summary.can_view:
            raise asset_not_found()
        return summary

    def list_visible(
        self,
        user: User,
        filters: AssetListFilters | None = None,
    ) -> tuple[list[Asset], int]:
        visibility = query_filter_for(user, teams=self._teams)
        with self._uow_factory() as uow:
            return uow.assets.list_visible(visibility, filters or AssetListFilters())

    def load_user(self, user_id: UUID) -> User:
        with self._uow_factory() as uow:
            user = uow.users.get_by_id(user_id)
        if user is None:
            raise NotFound("User not found")
        return user
