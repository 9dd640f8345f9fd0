"""
Visibility component port definitions.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol
from uuid import UUID


class ShareLookupPort(Protocol):
    """Explicit grants backing ROLE and SELECTED_USERS visibility."""

    def has_user_share(self, asset_id: UUID, user_id: UUID) -> bool: ...

    def has_role_share(self, asset_id: UUID, role: str) -> bool: ...


class TeamMembershipPort(Protocol):
    """
    Team membership lives outside this engine.

    Without an implementation TEAM visibility denies everyone except
    administrators and the uploader.
    """

    def teammate_ids(self, user_id: UUID) -> frozenset[UUID]:
        """Users sharing at least one team with ``user_id``."""
        ...


class StaticTeams:
    """Fixed team map; used by list filters and tests."""

    def __init__(self, teams: Mapping[UUID, frozenset[UUID]] | None = None) -> None:
        self._teams = dict(teams or {})

    def teammate_ids(self, user_id: UUID) -> frozenset[UUID]:
        return self._teams.get(user_id, frozenset())
