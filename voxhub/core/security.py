from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from voxhub.core.config import get_settings

PART_TOKEN_TYPE = "upload_part"
OBJECT_TOKEN_TYPE = "put_object"


def _build_payload(sub: str, ttl: timedelta, extra: dict[str, Any] | None = None) -> dict[str, Any]:
    now = datetime.now(UTC)
    payload: dict[str, Any] = {
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
    }
    if extra:
        payload.update(extra)
    return payload


def create_access_token(user_id: str, email: str = "", ttl_minutes: int = 60) -> str:
    # Same shape as the tokens issued by Supabase Auth; used by tooling and tests.
    settings = get_settings()
    payload = _build_payload(
        sub=user_id,
        ttl=timedelta(minutes=ttl_minutes),
        extra={"email": email, "aud": settings.supabase_jwt_audience, "role": "authenticated"},
    )
    return jwt.encode(payload, settings.supabase_jwt_secret, algorithm="HS256")


def decode_access_token(token: str) -> dict[str, Any]:
    settings = get_settings()
    return jwt.decode(
        token,
        settings.supabase_jwt_secret,
        algorithms=["HS256"],
        audience=settings.supabase_jwt_audience,
    )


def create_storage_token(key: str, token_type: str, extra: dict[str, Any] | None = None) -> str:
    settings = get_settings()
    payload = _build_payload(
        sub=key,
        ttl=timedelta(seconds=settings.storage_sign_ttl_seconds),
        extra={"type": token_type, **(extra or {})},
    )
    return jwt.encode(payload, settings.storage_signing_key, algorithm="HS256")


def decode_storage_token(token: str, token_type: str) -> dict[str, Any]:
    settings = get_settings()
    payload = jwt.decode(token, settings.storage_signing_key, algorithms=["HS256"])
    if payload.get("type") != token_type:
        raise jwt.InvalidTokenError("invalid token type")
    return payload


def create_part_token(key: str, upload_id: str, part_number: int) -> str:
    return create_storage_token(key, PART_TOKEN_TYPE, {"upload_id": upload_id, "part_number": part_number})


def create_object_token(key: str, mime_type: str) -> str:
    return create_storage_token(key, OBJECT_TOKEN_TYPE, {"mime_type": mime_type})
