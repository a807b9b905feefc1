import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lemonade.api.router import admin_router, api_router
from lemonade.core.config import Settings, get_settings
from lemonade.core.db import init_database, test_database_connection
from lemonade.core.exceptions import InvalidCredential, LemonadeError
from lemonade.middleware.security import setup_security_middleware
from lemonade.routers import health

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("[LIFESPAN] Starting application initialization...")
    app.state.db_ready = False
    if await test_database_connection():
        try:
            await init_database()
            app.state.db_ready = True
        except Exception as e:
            logger.error(f"[LIFESPAN] Error initializing database: {e}")
    else:
        logger.error("[LIFESPAN] Database connection failed; serving without a ready database")

    yield

    logger.info("[LIFESPAN] Shutdown complete")


async def lemonade_error_handler(request: Request, exc: LemonadeError) -> JSONResponse:
    """Translate a domain error into its status code and a single message."""
    request_id = getattr(request.state, "request_id", "-")
    if isinstance(exc, InvalidCredential):
        logger.warning(f"[{request_id}] Credential rejected on {request.url.path}: reason={exc.reason} {exc.message}")
    elif exc.status_code in (401, 403):
        logger.warning(f"[{request_id}] {exc.status_code} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"[{request_id}] {exc.status_code} on {request.url.path}: {exc.message}")

    return JSONResponse(status_code=exc.status_code, content={"detail": exc.public_message})


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    if settings is None:
        settings = get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.project_name,
        debug=settings.debug,
        lifespan=lifespan,
    )
    # Every dependency reads the same immutable settings instance
    app.dependency_overrides[get_settings] = lambda: settings

    app.add_exception_handler(LemonadeError, lemonade_error_handler)
    setup_security_middleware(app, settings)

    logger.info(f"[CORS] Configured origins: {settings.backend_cors_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.backend_cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "Authorization",
            "Accept",
            "Origin",
            "X-Requested-With",
            "X-Request-ID",
            settings.api_key_header,
        ],
        expose_headers=["X-Request-ID"],
    )

    app.include_router(api_router, prefix=f"/api/{settings.api_version}")
    app.include_router(admin_router, prefix="/admin")
    app.include_router(health.router, tags=["Health"])
    return app


app = create_app()
