"""
Assets API routes.

Upload protocol (presign / complete / carousel), review lifecycle,
visibility and permission queries. Engine errors propagate to the
handler registered in ``dam.api.main``.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from dam.api.deps import CurrentUser, EngineDep, require_admin
from dam.api.schemas import (
    ApprovalResponse,
    AssetListResponse,
    AssetResponse,
    CarouselFinalizeRequest,
    CarouselItemCredentialRequest,
    CarouselItemResponse,
    CarouselRequest,
    CompleteUploadRequest,
    CredentialResponse,
    DecisionRequest,
    DecisionResponse,
    HistoryResponse,
    MarkBrokenRequest,
    PermissionActionName,
    PermissionCheckResponse,
    PermissionsResponse,
    PresignRequest,
    PresignResponse,
    ReplaceContentRequest,
    ReservedKeyResponse,
    SubmitRequest,
    VersionPresignRequest,
    VersionResponse,
    VisibilityRequest,
)
from dam.components.lifecycle import (
    ContentReplacementInput,
    DecisionInput,
    VisibilityChangeInput,
)
from dam.components.uploads import (
    CarouselItemInput,
    FinalizeCarouselInput,
    FinalizeUploadInput,
    ReserveCarouselInput,
    ReserveCarouselItemInput,
    ReservedKey,
    ReserveUploadInput,
    ReserveVersionInput,
)
from dam.domain.entities import Asset, AssetStatus, AssetType, UploadType, User
from dam.ports.repo import AssetListFilters
from dam.ports.storage import ObjectStoragePort, UploadCredential

router = APIRouter()


# --- Helpers ---


def asset_to_response(asset: Asset, storage: ObjectStoragePort) -> AssetResponse:
    response = AssetResponse.model_validate(asset)
    locator = asset.url if asset.asset_type == AssetType.LINK else asset.storage_locator
    if locator and asset.finalized_at is not None:
        response.public_url = storage.resolve_public_url(locator)
    return response


def credential_to_response(credential: UploadCredential) -> CredentialResponse:
    return CredentialResponse(
        upload_url=credential.upload_url,
        key=credential.key,
        content_type=credential.content_type,
        expires_at=credential.expires_at,
    )


def reserved_to_response(reserved: ReservedKey) -> ReservedKeyResponse:
    return ReservedKeyResponse(
        locator=reserved.locator,
        credential=credential_to_response(reserved.credential),
    )


# --- Listing & reads ---


@router.get("", response_model=AssetListResponse)
def list_assets(
    current_user: CurrentUser,
    engine: EngineDep,
    status: AssetStatus | None = None,
    asset_type: AssetType | None = None,
    upload_type: UploadType | None = None,
    company_id: UUID | None = None,
    uploader_id: UUID | None = None,
    tag: str | None = None,
    search: str | None = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> AssetListResponse:
    """List the assets the caller may view."""
    filters = AssetListFilters(
        status=status,
        asset_type=asset_type,
        upload_type=upload_type,
        company_id=company_id,
        uploader_id=uploader_id,
        tag=tag,
        search=search,
        limit=limit,
        offset=offset,
    )
    items, total = engine.visibility.list_visible(current_user, filters)
    return AssetListResponse(
        items=[asset_to_response(a, engine.storage) for a in items],
        total=total,
        limit=limit,
        offset=offset,
    )


# --- Upload protocol ---


@router.post("/presign", response_model=PresignResponse, status_code=201)
def presign_upload(
    body: PresignRequest, current_user: CurrentUser, engine: EngineDep
) -> PresignResponse:
    """Reserve an asset id and a credential for its bytes."""
    out = engine.uploads.reserve_upload(
        current_user,
        ReserveUploadInput(
            title=body.title,
            asset_type=body.asset_type,
            upload_type=body.upload_type,
            file_name=body.file_name,
            content_type=body.content_type,
            description=body.description,
            tags=tuple(body.tags),
            company_id=body.company_id,
            url=body.url,
            visibility=body.visibility,
            allowed_role=body.allowed_role,
            file_size=body.file_size,
            submit_for_review=body.submit_for_review,
        ),
    )
    return PresignResponse(
        asset_id=out.asset_id,
        asset=asset_to_response(out.asset, engine.storage),
        credential=credential_to_response(out.credential) if out.credential else None,
    )


@router.post("/carousel", response_model=AssetResponse, status_code=201)
def create_carousel(
    body: CarouselRequest, current_user: CurrentUser, engine: EngineDep
) -> AssetResponse:
    asset = engine.uploads.reserve_carousel(
        current_user,
        ReserveCarouselInput(
            title=body.title,
            upload_type=body.upload_type,
            description=body.description,
            tags=tuple(body.tags),
            company_id=body.company_id,
            visibility=body.visibility,
            allowed_role=body.allowed_role,
        ),
    )
    return asset_to_response(asset, engine.storage)


@router.post("/carousel/{carousel_id}/items", response_model=ReservedKeyResponse)
def presign_carousel_item(
    carousel_id: UUID,
    body: CarouselItemCredentialRequest,
    current_user: CurrentUser,
    engine: EngineDep,
) -> ReservedKeyResponse:
    reserved = engine.uploads.reserve_carousel_item(
        current_user,
        ReserveCarouselItemInput(
            carousel_id=carousel_id, file_name=body.file_name, content_type=body.content_type
        ),
    )
    return reserved_to_response(reserved)


@router.get("/carousel/{carousel_id}/items", response_model=list[CarouselItemResponse])
def list_carousel_items(
    carousel_id: UUID, current_user: CurrentUser, engine: EngineDep
) -> list[CarouselItemResponse]:
    engine.visibility.get_visible_asset(current_user, carousel_id)
    items = engine.uploads.list_carousel_items(carousel_id)
    return [CarouselItemResponse.model_validate(i) for i in items]


@router.post("/carousel/{carousel_id}/finalize", response_model=AssetResponse)
def finalize_carousel(
    carousel_id: UUID,
    body: CarouselFinalizeRequest,
    current_user: CurrentUser,
    engine: EngineDep,
) -> AssetResponse:
    asset = engine.uploads.finalize_carousel(
        current_user,
        FinalizeCarouselInput(
            carousel_id=carousel_id,
            items=tuple(
                CarouselItemInput(
                    storage_locator=i.storage_locator,
                    mime_type=i.mime_type,
                    file_size=i.file_size,
                )
                for i in body.items
            ),
            submit_for_review=body.submit_for_review,
        ),
    )
    return asset_to_response(asset, engine.storage)


@router.post("/{asset_id}/complete", response_model=AssetResponse)
def complete_upload(
    asset_id: UUID,
    body: CompleteUploadRequest,
    current_user: CurrentUser,
    engine: EngineDep,
) -> AssetResponse:
    """Record the transferred file; safe to retry."""
    asset = engine.uploads.finalize_upload(
        current_user,
        FinalizeUploadInput(
            asset_id=asset_id,
            file_size=body.file_size,
            content_sha256=body.content_sha256,
            mime_type=body.mime_type,
            submit_for_review=body.submit_for_review,
        ),
    )
    return asset_to_response(asset, engine.storage)


# --- Lifecycle ---


@router.post("/{asset_id}/submit", response_model=AssetResponse)
def submit_for_review(
    asset_id: UUID,
    current_user: CurrentUser,
    engine: EngineDep,
    body: SubmitRequest | None = None,
) -> AssetResponse:
    asset = engine.lifecycle.submit_for_review(
        current_user,
        asset_id,
        expected_revision=body.expected_revision if body else None,
    )
    return asset_to_response(asset, engine.storage)


@router.post("/{asset_id}/decision", response_model=DecisionResponse)
def decide(
    asset_id: UUID,
    body: DecisionRequest,
    current_user: CurrentUser,
    engine: EngineDep,
) -> DecisionResponse:
    """Approve or reject a pending asset (administrators only)."""
    out = engine.lifecycle.decide(
        current_user,
        DecisionInput(
            asset_id=asset_id,
            action=body.action,
            reason=body.reason,
            visibility=body.visibility,
            allowed_role=body.allowed_role,
            expected_revision=body.expected_revision,
        ),
    )
    return DecisionResponse(
        asset=asset_to_response(out.asset, engine.storage),
        approval=ApprovalResponse.model_validate(out.approval),
    )


@router.put("/{asset_id}/visibility", response_model=AssetResponse)
def change_visibility(
    asset_id: UUID,
    body: VisibilityRequest,
    current_user: CurrentUser,
    engine: EngineDep,
) -> AssetResponse:
    asset = engine.lifecycle.change_visibility(
        current_user,
        VisibilityChangeInput(
            asset_id=asset_id,
            visibility=body.visibility,
            allowed_role=body.allowed_role,
            expected_revision=body.expected_revision,
        ),
    )
    return asset_to_response(asset, engine.storage)


@router.post("/{asset_id}/mark-broken", response_model=AssetResponse)
def mark_broken(
    asset_id: UUID,
    engine: EngineDep,
    admin: Annotated[User, Depends(require_admin)],
    body: MarkBrokenRequest | None = None,
) -> AssetResponse:
    reason = body.reason if body else MarkBrokenRequest().reason
    asset = engine.lifecycle.mark_integrity_failure(admin, asset_id, reason)
    return asset_to_response(asset, engine.storage)


@router.post("/{asset_id}/versions/presign", response_model=ReservedKeyResponse)
def presign_version(
    asset_id: UUID,
    body: VersionPresignRequest,
    current_user: CurrentUser,
    engine: EngineDep,
) -> ReservedKeyResponse:
    reserved = engine.uploads.reserve_version(
        current_user,
        ReserveVersionInput(
            asset_id=asset_id, file_name=body.file_name, content_type=body.content_type
        ),
    )
    return reserved_to_response(reserved)


@router.put("/{asset_id}/content", response_model=AssetResponse)
def replace_content(
    asset_id: UUID,
    body: ReplaceContentRequest,
    current_user: CurrentUser,
    engine: EngineDep,
) -> AssetResponse:
    """Switch to bytes reserved through versions/presign once they are uploaded."""
    asset = engine.uploads.finalize_version(
        current_user,
        ContentReplacementInput(
            asset_id=asset_id,
            storage_locator=body.storage_locator,
            file_size=body.file_size,
            mime_type=body.mime_type,
        ),
    )
    return asset_to_response(asset, engine.storage)


@router.get("/{asset_id}/history", response_model=HistoryResponse)
def history(asset_id: UUID, current_user: CurrentUser, engine: EngineDep) -> HistoryResponse:
    out = engine.lifecycle.history(current_user, asset_id)
    return HistoryResponse(
        approvals=[ApprovalResponse.model_validate(a) for a in out.approvals],
        versions=[VersionResponse.model_validate(v) for v in out.versions],
    )


# --- Permissions ---


@router.get("/{asset_id}/permissions", response_model=PermissionsResponse)
def permissions(
    asset_id: UUID, current_user: CurrentUser, engine: EngineDep
) -> PermissionsResponse:
    summary = engine.visibility.permissions(current_user, asset_id)
    return PermissionsResponse(
        can_view=summary.can_view,
        can_edit=summary.can_edit,
        can_delete=summary.can_delete,
        can_approve=summary.can_approve,
        can_download=summary.can_download,
        reason=summary.reason,
    )


@router.get("/{asset_id}/permissions/{action}", response_model=PermissionCheckResponse)
def check_permission(
    asset_id: UUID,
    action: PermissionActionName,
    current_user: CurrentUser,
    engine: EngineDep,
) -> PermissionCheckResponse:
    allowed = engine.visibility.check_permission(current_user.id, asset_id, action)
    return PermissionCheckResponse(action=action, allowed=allowed)


@router.get("/{asset_id}", response_model=AssetResponse)
def get_asset(asset_id: UUID, current_user: CurrentUser, engine: EngineDep) -> AssetResponse:
    """Single asset; 404 when missing or not visible."""
    asset = engine.visibility.get_visible_asset(current_user, asset_id)
    return asset_to_response(asset, engine.storage)
