from datetime import UTC, datetime, timedelta

import structlog
from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool
from prometheus_client import Counter

from voxhub.core.config import get_settings
from voxhub.core.constants import FileCategory
from voxhub.core.errors import Forbidden, MissingParameter, UploadIncomplete, UpstreamUnavailable
from voxhub.integrations.storage.base import PART_ERROR_CODES, StorageError, StorageProvider, StoredPart
from voxhub.schemas.uploads import (
    AbortMultipartRequest,
    CompletedPart,
    CompleteMultipartRequest,
    CompleteMultipartResponse,
    InitiateMultipartRequest,
    InitiateMultipartResponse,
    PartUrl,
    SignedUploadResponse,
    SignUploadRequest,
    SmallUploadResponse,
    SuccessResponse,
)
from voxhub.services.object_keys import build_object_key, is_owned_by
from voxhub.services.upload_policy import (
    check_content_type,
    check_size,
    check_total_chunks,
    parse_category,
)

logger = structlog.get_logger(__name__)

UPLOAD_EVENTS = Counter("voxhub_upload_events_total", "Upload lifecycle events", ["event"])


def _missing(**fields) -> list[str]:
    return [name for name, value in fields.items() if value is None or value == ""]


def _same_etag(left: str, right: str) -> bool:
    return left.strip().strip('"') == right.strip().strip('"')


def check_part_sequence(parts: list[CompletedPart], total_chunks: int | None = None) -> None:
    numbers = sorted(p.part_number for p in parts)
    if not numbers:
        raise UploadIncomplete("No parts supplied")
    if numbers != list(range(1, len(numbers) + 1)):
        raise UploadIncomplete("Parts must be numbered 1..N without gaps or duplicates")
    if total_chunks is not None and len(numbers) != total_chunks:
        raise UploadIncomplete(f"Expected {total_chunks} parts, got {len(numbers)}")


class UploadService:
    def __init__(self, provider: StorageProvider):
        self.provider = provider
        self.settings = get_settings()

    def _require_owner(self, key: str, owner_id: str) -> None:
        if not is_owned_by(key, owner_id):
            logger.warning("ownership_denied", owner_id=owner_id, key=key)
            raise Forbidden("Permission denied")

    async def initiate_multipart(self, owner_id: str, payload: InitiateMultipartRequest) -> InitiateMultipartResponse:
        missing = _missing(
            fileName=payload.file_name,
            fileType=payload.file_type,
            fileCategory=payload.file_category,
            totalChunks=payload.total_chunks,
        )
        if missing:
            raise MissingParameter(f"Missing required parameters: {', '.join(missing)}")

        category = parse_category(payload.file_category)
        check_content_type(category, payload.file_type)
        if payload.file_size is not None:
            check_size(category, payload.file_size)
        check_total_chunks(payload.total_chunks)

        key = build_object_key(category, owner_id, payload.file_name)
        try:
            upload_id = await run_in_threadpool(self.provider.create_multipart_upload, key, payload.file_type)
        except StorageError as exc:
            logger.error("multipart_initiate_failed", key=key, code=exc.code, error=exc.message)
            raise UpstreamUnavailable("Failed to initialize upload") from exc

        try:
            part_urls = await run_in_threadpool(self._presign_parts, key, upload_id, payload.total_chunks)
        except StorageError as exc:
            logger.error("multipart_presign_failed", key=key, upload_id=upload_id, code=exc.code)
            await self._release(key, upload_id)
            raise UpstreamUnavailable("Failed to initialize upload") from exc

        UPLOAD_EVENTS.labels(event="initiated").inc()
        logger.info(
            "multipart_initiated",
            owner_id=owner_id,
            key=key,
            upload_id=upload_id,
            total_chunks=payload.total_chunks,
        )
        return InitiateMultipartResponse(
            upload_id=upload_id,
            key=key,
            file_name=payload.file_name,
            file_type=payload.file_type,
            endpoint=self.provider.endpoint,
            bucket=self.provider.bucket,
            region=self.provider.region,
            expires_in=self.settings.storage_sign_ttl_seconds,
            part_urls=part_urls,
        )

    def _presign_parts(self, key: str, upload_id: str, total_chunks: int) -> list[PartUrl]:
        return [
            PartUrl(part_number=n, url=self.provider.presign_part(key, upload_id, n))
            for n in range(1, total_chunks + 1)
        ]

    async def complete_multipart(self, owner_id: str, payload: CompleteMultipartRequest) -> CompleteMultipartResponse:
        missing = _missing(uploadId=payload.upload_id, key=payload.key, parts=payload.parts)
        if missing:
            raise MissingParameter(f"Missing required parameters: {', '.join(missing)}")
        self._require_owner(payload.key, owner_id)
        check_part_sequence(payload.parts, payload.total_chunks)

        try:
            stored = await run_in_threadpool(self.provider.list_parts, payload.key, payload.upload_id)
            self._match_stored_parts(payload.parts, stored)
            parts = [StoredPart(part_number=p.part_number, etag=p.etag) for p in payload.parts]
            etag = await run_in_threadpool(
                self.provider.complete_multipart_upload, payload.key, payload.upload_id, parts
            )
        except StorageError as exc:
            logger.error(
                "multipart_complete_failed",
                key=payload.key,
                upload_id=payload.upload_id,
                code=exc.code,
                error=exc.message,
            )
            if exc.code in PART_ERROR_CODES:
                raise UploadIncomplete("Uploaded parts are missing or do not match") from exc
            raise UpstreamUnavailable("Failed to complete upload") from exc

        UPLOAD_EVENTS.labels(event="completed").inc()
        logger.info("multipart_completed", owner_id=owner_id, key=payload.key, parts=len(parts))
        return CompleteMultipartResponse(url=self.provider.public_url(payload.key), key=payload.key, etag=etag)

    def _match_stored_parts(self, parts: list[CompletedPart], stored: list[StoredPart]) -> None:
        by_number = {p.part_number: p for p in stored}
        supplied = {p.part_number for p in parts}
        mismatched = [
            p.part_number
            for p in parts
            if p.part_number not in by_number or not _same_etag(by_number[p.part_number].etag, p.etag)
        ]
        unlisted = sorted(set(by_number) - supplied)
        if mismatched or unlisted:
            logger.warning("multipart_parts_mismatch", mismatched=mismatched, unlisted=unlisted)
            raise UploadIncomplete("Uploaded parts are missing or do not match")

    async def abort_multipart(self, owner_id: str, payload: AbortMultipartRequest) -> SuccessResponse:
        missing = _missing(uploadId=payload.upload_id, key=payload.key)
        if missing:
            raise MissingParameter(f"Missing required parameters: {', '.join(missing)}")
        self._require_owner(payload.key, owner_id)
        await self._release(payload.key, payload.upload_id)
        UPLOAD_EVENTS.labels(event="aborted").inc()
        return SuccessResponse(success=True)

    async def _release(self, key: str, upload_id: str) -> None:
        try:
            await run_in_threadpool(self.provider.abort_multipart_upload, key, upload_id)
        except StorageError as exc:
            if exc.code == "NoSuchUpload":
                logger.info("multipart_already_released", key=key, upload_id=upload_id)
                return
            logger.warning("multipart_abort_failed", key=key, upload_id=upload_id, code=exc.code, error=exc.message)
            return
        logger.info("multipart_aborted", key=key, upload_id=upload_id)

    async def upload_small(self, owner_id: str, file: UploadFile, category_value: str | None) -> SmallUploadResponse:
        category = parse_category(category_value or FileCategory.GENERAL.value)
        content_type = file.content_type or ""
        check_content_type(category, content_type)
        if file.size is not None:
            check_size(category, file.size)

        body = await file.read()
        check_size(category, len(body))

        file_name = file.filename or "file"
        key = build_object_key(category, owner_id, file_name)
        try:
            await run_in_threadpool(
                self.provider.put_object, key, body, content_type or "application/octet-stream"
            )
        except StorageError as exc:
            logger.error("small_upload_failed", key=key, code=exc.code, error=exc.message)
            raise UpstreamUnavailable("Failed to upload file") from exc

        UPLOAD_EVENTS.labels(event="small").inc()
        logger.info("small_upload_stored", owner_id=owner_id, key=key, size=len(body))
        return SmallUploadResponse(
            url=self.provider.public_url(key),
            name=file_name,
            size=len(body),
            type=content_type,
            key=key,
        )

    async def delete_object(self, owner_id: str, key: str | None) -> SuccessResponse:
        if not key:
            raise MissingParameter("File key is required")
        self._require_owner(key, owner_id)
        try:
            await run_in_threadpool(self.provider.delete_object, key)
        except StorageError as exc:
            logger.error("object_delete_failed", key=key, code=exc.code, error=exc.message)
            raise UpstreamUnavailable("Failed to delete file") from exc
        logger.info("object_deleted", owner_id=owner_id, key=key)
        return SuccessResponse(success=True)

    async def sign_upload(self, owner_id: str, payload: SignUploadRequest) -> SignedUploadResponse:
        missing = _missing(filename=payload.filename, contentType=payload.content_type)
        if missing:
            raise MissingParameter("Missing filename or contentType")
        category = parse_category(payload.file_type)
        check_content_type(category, payload.content_type)

        key = build_object_key(category, owner_id, payload.filename)
        try:
            signed = await run_in_threadpool(self.provider.sign_upload, key, payload.content_type, 0)
        except StorageError as exc:
            logger.error("sign_upload_failed", key=key, code=exc.code)
            raise UpstreamUnavailable("Failed to create upload URL") from exc
        return SignedUploadResponse(
            upload_url=signed.upload_url,
            key=signed.object_key,
            public_url=signed.public_url,
            headers=signed.headers,
        )


def sweep_orphaned_uploads(provider: StorageProvider, older_than: timedelta, now: datetime | None = None) -> int:
    cutoff = (now or datetime.now(UTC)) - older_than
    swept = 0
    for pending in provider.list_multipart_uploads():
        initiated = pending.initiated_at
        if initiated.tzinfo is None:
            initiated = initiated.replace(tzinfo=UTC)
        if initiated > cutoff:
            continue
        try:
            provider.abort_multipart_upload(pending.object_key, pending.upload_id)
        except StorageError as exc:
            logger.warning("orphan_abort_failed", key=pending.object_key, upload_id=pending.upload_id, code=exc.code)
            continue
        swept += 1
    if swept:
        UPLOAD_EVENTS.labels(event="swept").inc(swept)
    logger.info("orphan_sweep_finished", swept=swept)
    return swept
