from contextlib import asynccontextmanager
from time import perf_counter
from uuid import uuid4

import structlog
import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from voxhub.api.v1.router import api_router
from voxhub.core.config import get_settings
from voxhub.core.errors import InvalidArgument, MissingParameter, UploadError
from voxhub.core.logging import bind_request_context, configure_logging
from voxhub.schemas.common import ErrorBody

logger = structlog.get_logger()

CORS_ALLOW_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
CORS_ALLOW_HEADERS = ["Content-Type", "Authorization"]
CORS_EXPOSE_HEADERS = ["ETag", "X-Request-ID"]


def cors_headers() -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": get_settings().cors_allow_origin,
        "Access-Control-Allow-Methods": ", ".join(CORS_ALLOW_METHODS),
        "Access-Control-Allow-Headers": ", ".join(CORS_ALLOW_HEADERS),
        "Access-Control-Expose-Headers": ", ".join(CORS_EXPOSE_HEADERS),
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.debug)
    logger.info("startup", env=settings.app_env, storage=settings.storage_provider)
    yield
    logger.info("shutdown")


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)
    app.add_middleware(GZipMiddleware, minimum_size=500)

    # CORSMiddleware only answers OPTIONS that carry preflight headers
    @app.middleware("http")
    async def options_middleware(request: Request, call_next):
        if request.method == "OPTIONS" and "access-control-request-method" not in request.headers:
            return Response(status_code=200, headers=cors_headers())
        return await call_next(request)

    @app.middleware("http")
    async def request_log_middleware(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid4().hex
        bind_request_context(request_id, method=request.method, path=request.url.path)
        started = perf_counter()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request",
            status=response.status_code,
            duration_ms=round((perf_counter() - started) * 1000, 1),
        )
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_allow_origin],
        allow_methods=CORS_ALLOW_METHODS,
        allow_headers=CORS_ALLOW_HEADERS,
        expose_headers=CORS_EXPOSE_HEADERS,
    )

    @app.exception_handler(UploadError)
    async def upload_error_handler(_: Request, exc: UploadError):
        body = ErrorBody(error=exc.detail, code=exc.code)
        return JSONResponse(status_code=exc.status_code, content=body.model_dump())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(_: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorBody(error=str(exc.detail), code="HTTPError").model_dump(),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_: Request, exc: RequestValidationError):
        errors = exc.errors()
        if any(err["type"] == "missing" and tuple(err["loc"]) == ("body",) for err in errors):
            error: UploadError = MissingParameter("Missing request body")
        else:
            fields = sorted({".".join(str(p) for p in err["loc"][1:]) for err in errors})
            error = InvalidArgument(f"Invalid request body: {', '.join(fields) or 'malformed'}")
        body = ErrorBody(error=error.detail, code=error.code)
        return JSONResponse(status_code=error.status_code, content=body.model_dump())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(_: Request, exc: Exception):
        logger.exception("unhandled_exception", error=str(exc))
        return JSONResponse(
            status_code=500,
            content=ErrorBody(error="Internal server error", code="InternalError").model_dump(),
            # rendered outside CORSMiddleware
            headers={"Access-Control-Allow-Origin": settings.cors_allow_origin},
        )

    app.include_router(api_router, prefix=settings.api_prefix)
    return app


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "voxhub.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_config=None,
    )
