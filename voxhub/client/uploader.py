import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

import httpx
import structlog

from voxhub.client.cancellation import CancellationToken
from voxhub.client.chunking import ChunkPlan, plan_chunks, progress_percent
from voxhub.client.errors import ApiError, FinalizeFailed, InitiationFailed, UploadFailed
from voxhub.client.retry import LinearBackoff, attempt_with_retries
from voxhub.core.constants import CHUNK_SIZE, MIN_PART_SIZE, PART_RETRY_ATTEMPTS, SMALL_FILE_THRESHOLD
from voxhub.schemas.uploads import (
    AbortMultipartRequest,
    CompletedPart,
    CompleteMultipartRequest,
    CompleteMultipartResponse,
    InitiateMultipartRequest,
    InitiateMultipartResponse,
    SmallUploadResponse,
)

logger = structlog.get_logger(__name__)

Source = bytes | Path
ProgressCallback = Callable[[int], None]


class UploadStatus(StrEnum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass
class UploadOutcome:
    status: UploadStatus
    key: str | None = None
    url: str | None = None
    etag: str | None = None
    size: int = 0


class UploadApi:
    """Thin async wrapper over the storage endpoints of the API."""

    def __init__(self, http: httpx.AsyncClient, access_token: str, api_prefix: str = "/api/v1"):
        self.http = http
        self.access_token = access_token
        self.base_path = f"{api_prefix.rstrip('/')}/storage"

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.access_token}"}
        response = await self.http.request(method, f"{self.base_path}{path}", headers=headers, **kwargs)
        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            raise ApiError(
                response.status_code,
                body.get("code", "HTTPError"),
                body.get("error", response.reason_phrase),
            )
        return response

    async def initiate(self, payload: InitiateMultipartRequest) -> InitiateMultipartResponse:
        response = await self._request(
            "POST", "/uploads/multipart", json=payload.model_dump(by_alias=True, exclude_none=True)
        )
        return InitiateMultipartResponse.model_validate(response.json())

    async def finalize(self, payload: CompleteMultipartRequest) -> CompleteMultipartResponse:
        response = await self._request(
            "PUT", "/uploads/multipart", json=payload.model_dump(by_alias=True, exclude_none=True)
        )
        return CompleteMultipartResponse.model_validate(response.json())

    async def abort(self, upload_id: str, key: str) -> None:
        payload = AbortMultipartRequest(upload_id=upload_id, key=key)
        await self._request("DELETE", "/uploads/multipart", json=payload.model_dump(by_alias=True))

    async def upload_small(self, data: bytes, file_name: str, content_type: str, category: str) -> SmallUploadResponse:
        response = await self._request(
            "POST",
            "/uploads",
            files={"file": (file_name, data, content_type)},
            data={"type": category},
        )
        return SmallUploadResponse.model_validate(response.json())


def source_size(source: Source) -> int:
    if isinstance(source, Path):
        return source.stat().st_size
    return len(source)


def _read_path_range(path: Path, start: int, end: int) -> bytes:
    with path.open("rb") as fh:
        fh.seek(start)
        return fh.read(end - start)


async def read_range(source: Source, start: int, end: int) -> bytes:
    if isinstance(source, Path):
        return await asyncio.to_thread(_read_path_range, source, start, end)
    return bytes(source[start:end])


@dataclass
class _PartRun:
    total: int
    completed: list[CompletedPart] = field(default_factory=list)
    cancelled: bool = False
    failure: tuple[int, Exception] | None = None

    @property
    def stopped(self) -> bool:
        return self.cancelled or self.failure is not None


class MultipartUploader:
    def __init__(
        self,
        api: UploadApi,
        storage_http: httpx.AsyncClient,
        *,
        chunk_size: int = CHUNK_SIZE,
        min_part_size: int = MIN_PART_SIZE,
        concurrency: int = 1,
        attempts: int = PART_RETRY_ATTEMPTS,
        backoff: LinearBackoff = LinearBackoff(),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.api = api
        self.storage_http = storage_http
        self.chunk_size = chunk_size
        self.min_part_size = min_part_size
        self.concurrency = concurrency
        self.attempts = attempts
        self.backoff = backoff
        self.sleep = sleep

    async def upload(
        self,
        source: Source,
        *,
        file_name: str,
        content_type: str,
        category: str,
        on_progress: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> UploadOutcome:
        token = cancel_token or CancellationToken()
        size = source_size(source)
        plan = plan_chunks(size, self.chunk_size, self.min_part_size)
        if token.is_cancelled():
            return UploadOutcome(status=UploadStatus.CANCELLED)

        request = InitiateMultipartRequest(
            file_name=file_name,
            file_type=content_type,
            file_category=category,
            file_size=size,
            total_chunks=plan.total_chunks,
        )
        try:
            session = await self.api.initiate(request)
        except (ApiError, httpx.HTTPError) as exc:
            logger.error("multipart_initiate_failed", file_name=file_name, error=str(exc))
            raise InitiationFailed(str(exc)) from exc

        urls = {p.part_number: p.url for p in session.part_urls}
        if set(urls) != set(range(1, plan.total_chunks + 1)):
            await self.abort(session)
            raise InitiationFailed(f"Expected {plan.total_chunks} part URLs, got {len(urls)}")

        run = _PartRun(total=plan.total_chunks)
        numbers = iter(range(1, plan.total_chunks + 1))

        async def worker() -> None:
            for number in numbers:
                if run.stopped:
                    return
                if token.is_cancelled():
                    run.cancelled = True
                    return
                try:
                    etag = await self._upload_part(urls[number], number, plan, source)
                except Exception as exc:
                    run.failure = (number, exc)
                    return
                run.completed.append(CompletedPart(etag=etag, part_number=number))
                if on_progress:
                    on_progress(progress_percent(len(run.completed), run.total))

        await asyncio.gather(*(worker() for _ in range(min(self.concurrency, plan.total_chunks))))

        if run.cancelled or token.is_cancelled():
            logger.info("multipart_cancelled", key=session.key, uploaded=len(run.completed))
            await self.abort(session)
            return UploadOutcome(status=UploadStatus.CANCELLED, key=session.key)

        if run.failure is not None:
            number, exc = run.failure
            logger.error("multipart_part_failed", key=session.key, part_number=number, error=repr(exc))
            await self.abort(session)
            raise UploadFailed(f"Part {number} failed after retries", part_number=number) from exc

        parts = sorted(run.completed, key=lambda p: p.part_number)
        return await self.finalize(session, parts, size)

    async def _upload_part(self, url: str, number: int, plan: ChunkPlan, source: Source) -> str:
        start, end = plan.byte_range(number)
        body = await read_range(source, start, end)

        async def put(attempt: int) -> str:
            response = await self.storage_http.put(url, content=body)
            response.raise_for_status()
            etag = response.headers.get("ETag")
            if not etag:
                raise UploadFailed(f"Part {number} response carried no ETag", part_number=number)
            return etag

        def log_retry(attempt: int, exc: Exception, delay: float) -> None:
            logger.warning("part_retry", part_number=number, attempt=attempt, delay=delay, error=repr(exc))

        return await attempt_with_retries(
            put,
            attempts=self.attempts,
            backoff=self.backoff,
            sleep=self.sleep,
            on_retry=log_retry,
        )

    async def finalize(
        self, session: InitiateMultipartResponse, parts: list[CompletedPart], size: int = 0
    ) -> UploadOutcome:
        request = CompleteMultipartRequest(
            upload_id=session.upload_id,
            key=session.key,
            parts=parts,
            total_chunks=len(session.part_urls),
        )
        try:
            result = await self.api.finalize(request)
        except (ApiError, httpx.HTTPError) as exc:
            logger.error("multipart_finalize_failed", key=session.key, error=str(exc))
            raise FinalizeFailed(str(exc), session, parts) from exc
        logger.info("multipart_uploaded", key=result.key, parts=len(parts))
        return UploadOutcome(
            status=UploadStatus.COMPLETED, key=result.key, url=result.url, etag=result.etag, size=size
        )

    async def abort(self, session: InitiateMultipartResponse) -> None:
        # Single attempt; the store's lifecycle rules reap what this misses.
        try:
            await self.api.abort(session.upload_id, session.key)
        except (ApiError, httpx.HTTPError) as exc:
            logger.warning("multipart_abort_failed", key=session.key, upload_id=session.upload_id, error=str(exc))


async def upload_file(
    uploader: MultipartUploader,
    source: Source,
    *,
    file_name: str,
    content_type: str,
    category: str = "general",
    on_progress: ProgressCallback | None = None,
    cancel_token: CancellationToken | None = None,
    threshold: int = SMALL_FILE_THRESHOLD,
) -> UploadOutcome:
    size = source_size(source)
    if size >= threshold:
        return await uploader.upload(
            source,
            file_name=file_name,
            content_type=content_type,
            category=category,
            on_progress=on_progress,
            cancel_token=cancel_token,
        )

    if cancel_token and cancel_token.is_cancelled():
        return UploadOutcome(status=UploadStatus.CANCELLED)
    data = await read_range(source, 0, size)
    try:
        result = await uploader.api.upload_small(data, file_name, content_type, category)
    except (ApiError, httpx.HTTPError) as exc:
        raise UploadFailed(str(exc)) from exc
    if on_progress:
        on_progress(100)
    return UploadOutcome(status=UploadStatus.COMPLETED, key=result.key, url=result.url, size=result.size)
