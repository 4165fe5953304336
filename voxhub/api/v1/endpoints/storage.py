import jwt
from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, Response, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse

from voxhub.api.deps import get_current_user, storage_provider, upload_service
from voxhub.core.config import get_settings
from voxhub.core.errors import MissingParameter
from voxhub.core.ratelimit import rate_limit
from voxhub.core.security import OBJECT_TOKEN_TYPE, PART_TOKEN_TYPE, decode_storage_token
from voxhub.integrations.storage.base import StorageError, StorageProvider
from voxhub.integrations.storage.local import LocalStorageProvider
from voxhub.schemas.common import CurrentUser
from voxhub.schemas.uploads import (
    AbortMultipartRequest,
    CompleteMultipartRequest,
    CompleteMultipartResponse,
    DeleteObjectRequest,
    InitiateMultipartRequest,
    InitiateMultipartResponse,
    SignedUploadResponse,
    SignUploadRequest,
    SmallUploadResponse,
    SuccessResponse,
)
from voxhub.services.upload_service import UploadService

router = APIRouter(prefix="/storage", tags=["storage"])


def _throttle(action: str, user: CurrentUser) -> None:
    settings = get_settings()
    rate_limit(
        key=f"{action}:{user.id}",
        limit=settings.upload_rate_limit,
        window_seconds=settings.upload_rate_window_seconds,
    )


@router.post("/uploads/multipart", response_model=InitiateMultipartResponse)
async def initiate_multipart_upload(
    payload: InitiateMultipartRequest,
    user: CurrentUser = Depends(get_current_user),
    service: UploadService = Depends(upload_service),
):
    _throttle("initiate", user)
    return await service.initiate_multipart(user.id, payload)


@router.put("/uploads/multipart", response_model=CompleteMultipartResponse)
async def complete_multipart_upload(
    payload: CompleteMultipartRequest,
    user: CurrentUser = Depends(get_current_user),
    service: UploadService = Depends(upload_service),
):
    return await service.complete_multipart(user.id, payload)


@router.delete("/uploads/multipart", response_model=SuccessResponse)
async def abort_multipart_upload(
    payload: AbortMultipartRequest,
    user: CurrentUser = Depends(get_current_user),
    service: UploadService = Depends(upload_service),
):
    return await service.abort_multipart(user.id, payload)


@router.post("/uploads", response_model=SmallUploadResponse)
async def upload_small_file(
    file: UploadFile | None = File(None),
    category: str = Form("general", alias="type"),
    user: CurrentUser = Depends(get_current_user),
    service: UploadService = Depends(upload_service),
):
    if file is None:
        raise MissingParameter("No file provided")
    _throttle("small", user)
    return await service.upload_small(user.id, file, category)


@router.post("/uploads/sign", response_model=SignedUploadResponse)
async def sign_upload(
    payload: SignUploadRequest,
    user: CurrentUser = Depends(get_current_user),
    service: UploadService = Depends(upload_service),
):
    return await service.sign_upload(user.id, payload)


@router.delete("/objects", response_model=SuccessResponse)
async def delete_object(
    payload: DeleteObjectRequest,
    user: CurrentUser = Depends(get_current_user),
    service: UploadService = Depends(upload_service),
):
    return await service.delete_object(user.id, payload.key)


def _local_provider(provider: StorageProvider) -> LocalStorageProvider:
    if not isinstance(provider, LocalStorageProvider):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    return provider


def _decode_or_403(token: str, token_type: str) -> dict:
    try:
        return decode_storage_token(token, token_type)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired signature") from exc


@router.put("/local-parts/{token}")
async def local_part_upload(token: str, request: Request, provider: StorageProvider = Depends(storage_provider)):
    local = _local_provider(provider)
    claims = _decode_or_403(token, PART_TOKEN_TYPE)
    body = await request.body()
    try:
        etag = await run_in_threadpool(
            local.store_part, claims["sub"], claims["upload_id"], int(claims["part_number"]), body
        )
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.code) from exc
    return Response(status_code=status.HTTP_200_OK, headers={"ETag": etag})


@router.put("/local-upload/{token}")
async def local_upload(token: str, request: Request, provider: StorageProvider = Depends(storage_provider)):
    local = _local_provider(provider)
    claims = _decode_or_403(token, OBJECT_TOKEN_TYPE)
    body = await request.body()
    etag = await run_in_threadpool(local.put_object, claims["sub"], body, claims["mime_type"])
    return Response(status_code=status.HTTP_200_OK, headers={"ETag": etag})


@router.get("/public/{object_key:path}")
async def local_public(object_key: str, provider: StorageProvider = Depends(storage_provider)):
    local = _local_provider(provider)
    try:
        target = local.object_path(object_key)
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid path") from exc
    if not target.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    return FileResponse(target)
