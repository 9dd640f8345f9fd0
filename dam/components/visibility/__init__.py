"""
Visibility component - permission decisions and list filters.
"""

from .component import (
    VIEW_RULES,
    VisibilityService,
    can_approve,
    can_delete,
    can_download,
    can_edit,
    can_view,
    evaluate,
    evaluate_view,
    query_filter_for,
    summarize,
)
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
from .ports import ShareLookupPort, StaticTeams, TeamMembershipPort

__all__ = [
    # Entry points
    "can_approve",
    "can_delete",
    "can_download",
    "can_edit",
    "can_view",
    "evaluate",
    "evaluate_view",
    "query_filter_for",
    "summarize",
    "VisibilityService",
    "VIEW_RULES",
    # Models
    "Allowed",
    "Decision",
    "Denied",
    "PERMISSION_ACTIONS",
    "PermissionAction",
    "PermissionSummary",
    "RuleContext",
    "VisibilityFilter",
    "VisibilityRule",
    # Ports
    "ShareLookupPort",
    "StaticTeams",
    "TeamMembershipPort",
]
