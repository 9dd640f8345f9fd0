"""
Lifecycle component - asset status machine and review decisions.
"""

from .component import (
    LifecycleController,
    approval_changes,
    initial_status,
    initial_visibility,
)
from .models import (
    AssetHistory,
    ContentReplacementInput,
    DecisionInput,
    DecisionOutput,
    NewAsset,
    VisibilityChangeInput,
)
from .ports import ClockPort, NotificationType, NotifierPort, UnitOfWorkFactory

__all__ = [
    # Entry points
    "LifecycleController",
    "approval_changes",
    "initial_status",
    "initial_visibility",
    # Models
    "AssetHistory",
    "ContentReplacementInput",
    "DecisionInput",
    "DecisionOutput",
    "NewAsset",
    "VisibilityChangeInput",
    # Ports
    "ClockPort",
    "NotificationType",
    "NotifierPort",
    "UnitOfWorkFactory",
]
