"""
Local object storage routes.

Stand-in for a real object store: clients PUT bytes to the signed upload
URL from a credential, and read them back through the object route, which
applies download permission.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import Response

from dam.adapters.local_storage import LocalPresignedStorage
from dam.api.deps import CurrentUser, EngineDep
from dam.api.schemas import UploadReceipt
from dam.domain.errors import asset_not_found

router = APIRouter()


def get_local_storage(engine: EngineDep) -> LocalPresignedStorage:
    if not isinstance(engine.storage, LocalPresignedStorage):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Local object storage is not enabled",
        )
    return engine.storage


LocalStorage = Annotated[LocalPresignedStorage, Depends(get_local_storage)]


@router.put("/upload/{token}", response_model=UploadReceipt)
async def upload_object(token: str, request: Request, storage: LocalStorage) -> UploadReceipt:
    """Accept the bytes for the key the token was issued for."""
    data = await request.body()
    key, _ = storage.verify_upload_token(token)
    digest = storage.accept_upload(token, data, request.headers.get("content-type"))
    return UploadReceipt(key=key, sha256=digest, size=len(data))


def asset_id_from_key(key: str) -> UUID:
    parts = key.split("/")
    if len(parts) < 3 or parts[0] != "assets":
        raise asset_not_found()
    try:
        return UUID(parts[1])
    except ValueError:
        raise asset_not_found() from None


@router.get("/objects/{key:path}")
def read_object(
    key: str, current_user: CurrentUser, engine: EngineDep, storage: LocalStorage
) -> Response:
    asset = engine.visibility.get_visible_asset(current_user, asset_id_from_key(key))
    try:
        data = storage.read(key)
    except FileNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Object not found"
        ) from None
    media_type = asset.mime_type if key == asset.storage_locator else None
    return Response(content=data, media_type=media_type or "application/octet-stream")
