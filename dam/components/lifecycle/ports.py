"""
Lifecycle component port definitions.
"""

from __future__ import annotations

from collections.abc import Callable

from dam.ports.clock import ClockPort
from dam.ports.notifier import NotificationType, NotifierPort
from dam.ports.repo import UnitOfWorkPort

UnitOfWorkFactory = Callable[[], UnitOfWorkPort]

__all__ = [
    "ClockPort",
    "NotificationType",
    "NotifierPort",
    "UnitOfWorkFactory",
    "UnitOfWorkPort",
]
