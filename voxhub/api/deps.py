import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from voxhub.core.errors import Unauthorized
from voxhub.core.security import decode_access_token
from voxhub.integrations.storage.base import StorageProvider
from voxhub.integrations.storage.factory import get_storage_provider
from voxhub.schemas.common import CurrentUser
from voxhub.services.upload_service import UploadService

bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> CurrentUser:
    if not credentials:
        raise Unauthorized("Unauthorized")
    try:
        payload = decode_access_token(credentials.credentials)
    except jwt.PyJWTError as exc:
        raise Unauthorized("Unauthorized") from exc
    user_id = str(payload.get("sub") or "")
    if not user_id or "/" in user_id:
        raise Unauthorized("Unauthorized")
    return CurrentUser(id=user_id)


def storage_provider() -> StorageProvider:
    return get_storage_provider()


def upload_service(provider: StorageProvider = Depends(storage_provider)) -> UploadService:
    return UploadService(provider)
