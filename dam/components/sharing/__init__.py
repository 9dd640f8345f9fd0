"""
Sharing component - per-user and per-role asset grants.
"""

from .component import ShareService, run_list, run_revoke, run_share
from .models import ListSharesInput, RevokeShareInput, ShareAssetInput, ShareOutput

__all__ = [
    "ShareService",
    "run_list",
    "run_revoke",
    "run_share",
    "ListSharesInput",
    "RevokeShareInput",
    "ShareAssetInput",
    "ShareOutput",
]
