from dataclasses import dataclass, field
from uuid import UUID

from dam.domain.entities import AssetShare, Role, ShareTargetType, User


@dataclass(frozen=True)
class ShareAssetInput:
    actor: User
    asset_id: UUID
    user_ids: tuple[UUID, ...] = ()
    roles: tuple[Role, ...] = ()


@dataclass(frozen=True)
class RevokeShareInput:
    actor: User
    asset_id: UUID
    target_type: ShareTargetType
    target_id: str


@dataclass(frozen=True)
class ListSharesInput:
    actor: User
    asset_id: UUID


@dataclass(frozen=True)
class ShareOutput:
    shares: tuple[AssetShare, ...] = field(default_factory=tuple)
