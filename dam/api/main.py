import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dam.adapters.sqlite.migrator import SQLiteMigrator
from dam.api.deps import get_rules, get_settings
from dam.api.schemas import ErrorResponse
from dam.domain.errors import EngineError, ValidationFailed

logger = logging.getLogger(__name__)

STATUS_BY_CODE = {
    "not_found": 404,
    "forbidden": 403,
    "immutability_violation": 403,
    "validation_failed": 422,
    "invalid_state": 409,
    "conflict": 409,
    "storage_unavailable": 503,
    "commit_failed": 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Load rules and validate on startup (fail-fast)
    try:
        get_rules()
        logger.info("Rules loaded from %s", settings.rules_path)
    except (FileNotFoundError, ValueError) as e:
        logger.critical("Rules load failed: %s", e)
        sys.exit(1)

    settings.data_dir.mkdir(parents=True, exist_ok=True)
    SQLiteMigrator(settings.db_path, str(settings.migrations_dir)).run_migrations()

    yield


async def engine_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, EngineError)
    status_code = STATUS_BY_CODE.get(exc.code, 500)
    if status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    body = ErrorResponse(
        code=exc.code,
        message=exc.message,
        field=exc.field if isinstance(exc, ValidationFailed) else None,
        retryable=getattr(exc, "retryable", None),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EngineError, engine_error_handler)


def include_routers(app: FastAPI) -> None:
    from dam.api.routes import assets, audit, shares, storage

    app.include_router(assets.router, prefix="/api/assets", tags=["Assets"])
    app.include_router(shares.router, prefix="/api/assets", tags=["Sharing"])
    app.include_router(audit.router, prefix="/api/audit", tags=["Audit"])
    app.include_router(storage.router, prefix="/api/storage", tags=["Storage"])


def create_app(*, with_lifespan: bool = True) -> FastAPI:
    app = FastAPI(
        title="DAM Asset Engine API",
        version="0.1.0",
        lifespan=lifespan if with_lifespan else None,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    include_routers(app)
    register_error_handlers(app)

    # CORS (Allow Frontend)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health_check() -> dict[str, Any]:
        """Health check endpoint."""
        return {"status": "ok", "service": "dam-engine"}

    return app


app = create_app()
