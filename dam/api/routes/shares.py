"""
Sharing API routes (mounted under /api/assets).
"""

from uuid import UUID

from fastapi import APIRouter

from dam.api.deps import CurrentUser, EngineDep
from dam.api.schemas import ShareRequest, ShareResponse
from dam.components.sharing import ListSharesInput, RevokeShareInput, ShareAssetInput
from dam.domain.entities import ShareTargetType

router = APIRouter()


@router.get("/{asset_id}/shares", response_model=list[ShareResponse])
def list_shares(
    asset_id: UUID, current_user: CurrentUser, engine: EngineDep
) -> list[ShareResponse]:
    out = engine.sharing.list(ListSharesInput(actor=current_user, asset_id=asset_id))
    return [ShareResponse.model_validate(s) for s in out.shares]


@router.post("/{asset_id}/shares", response_model=list[ShareResponse], status_code=201)
def share_asset(
    asset_id: UUID,
    body: ShareRequest,
    current_user: CurrentUser,
    engine: EngineDep,
) -> list[ShareResponse]:
    out = engine.sharing.share(
        ShareAssetInput(
            actor=current_user,
            asset_id=asset_id,
            user_ids=tuple(body.user_ids),
            roles=tuple(body.roles),
        )
    )
    return [ShareResponse.model_validate(s) for s in out.shares]


@router.delete("/{asset_id}/shares/{target_type}/{target_id}", response_model=list[ShareResponse])
def revoke_share(
    asset_id: UUID,
    target_type: ShareTargetType,
    target_id: str,
    current_user: CurrentUser,
    engine: EngineDep,
) -> list[ShareResponse]:
    """Remove one grant; returns the remaining shares."""
    out = engine.sharing.revoke(
        RevokeShareInput(
            actor=current_user,
            asset_id=asset_id,
            target_type=target_type,
            target_id=target_id,
        )
    )
    return [ShareResponse.model_validate(s) for s in out.shares]
