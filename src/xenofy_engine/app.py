"""FastAPI application factory for Xenofy-Engine."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from xenofy_engine.common.config import get_settings
from xenofy_engine.common.exceptions import XenofyError
from xenofy_engine.common.logging import setup_logging
from xenofy_engine.common.schemas import ErrorResponse, HealthResponse

logger = logging.getLogger(__name__)

_STATUS_CODES = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHENTICATED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    502: "UPSTREAM_ERROR",
}


def _error(status_code: int, error: str, code: str | None = None, detail: str = "") -> JSONResponse:
    body = ErrorResponse(
        error=error, code=code or _STATUS_CODES.get(status_code, "INTERNAL_ERROR"), detail=detail
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        from xenofy_engine.deps import get_db, get_ingestion_service, get_scheduler
        db = get_db()
        await db.init()
        await db.create_all()
        if settings.seed_demo:
            from xenofy_engine.auth.demo import provision_demo_account
            async with db.get_session() as session:
                await provision_demo_account(session, settings)
        scheduler = get_scheduler()
        if settings.scheduler_enabled:
            scheduler.start()
        yield
        # Shutdown
        scheduler.shutdown()
        await get_ingestion_service().wait_for_background()
        await db.close()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
            for err in exc.errors()
        )
        return _error(400, "Invalid request", detail=problems)

    @app.exception_handler(XenofyError)
    async def domain_error(request: Request, exc: XenofyError):
        return _error(exc.status_code, exc.message, code=exc.code)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "Internal server error")

    @app.get("/", response_model=dict)
    async def root():
        return {"message": f"{settings.api_title} API", "version": settings.api_version}

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(version=settings.api_version)

    # Mount routers
    from xenofy_engine.auth.router import router as auth_router
    from xenofy_engine.analytics.router import router as analytics_router
    from xenofy_engine.ingestion.router import router as ingestion_router

    prefix = settings.api_prefix
    app.include_router(auth_router, prefix=prefix, tags=["auth"])
    app.include_router(analytics_router, prefix=prefix, tags=["analytics"])
    app.include_router(ingestion_router, prefix=prefix, tags=["ingestion"])

    return app
