from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest

from voxhub.api.deps import storage_provider
from voxhub.core.errors import UpstreamUnavailable
from voxhub.integrations.storage.base import StorageError, StorageProvider

router = APIRouter(tags=["health"])
REQUEST_COUNTER = Counter("voxhub_api_requests_total", "Total API requests", ["path"])


@router.get("/health/live")
async def health_live():
    REQUEST_COUNTER.labels(path="/health/live").inc()
    return {"status": "ok"}


@router.get("/health/ready")
async def health_ready(provider: StorageProvider = Depends(storage_provider)):
    REQUEST_COUNTER.labels(path="/health/ready").inc()
    try:
        await run_in_threadpool(provider.ping)
    except StorageError as exc:
        raise UpstreamUnavailable("Storage unavailable", status_code=503) from exc
    return {"status": "ready", "storage": provider.name}


@router.get("/metrics", response_class=PlainTextResponse)
async def metrics():
    return PlainTextResponse(generate_latest().decode("utf-8"), media_type=CONTENT_TYPE_LATEST)
