"""
FastAPI application factory.

Assembles the app, registers all routers & exception handlers, and
wires up lifecycle events.  Database schema is managed by Alembic —
NOT create_all.

Every response, success or failure, is a `{code, message, data}`
envelope whose `code` matches the HTTP status.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from account_service.controllers.auth_controller import router as auth_router
from account_service.controllers.user_controller import router as user_router
from account_service.core.cache import close_redis
from account_service.core.config import settings
from account_service.core.database import SessionLocal, engine
from account_service.core.errors import ServiceError
from account_service.core.security import TokenCodec
from account_service.models import Base  # noqa: F401  registers all models

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


def _envelope(status_code: int, message: str, data=None) -> JSONResponse:
    body = {"code": status_code, "message": message}
    if data is not None:
        body["data"] = data
    return JSONResponse(status_code=status_code, content=body)


def _first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return f"{location}: {message}" if location else message


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _envelope(exc.status_code, exc.message, exc.data)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _envelope(400, _first_validation_message(exc))

    @app.exception_handler(SQLAlchemyError)
    async def storage_error_handler(request: Request, exc: SQLAlchemyError):
        logger.exception("Storage failure on %s %s", request.method, request.url.path)
        return _envelope(500, "Internal storage error")

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        # Only 400/401/403/500 exist in the envelope vocabulary.
        code = exc.status_code
        if code not in (400, 401, 403) and code < 500:
            code = 400
        elif code >= 500:
            code = 500
        return _envelope(code, str(exc.detail))


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Built once; a bad SECRET_KEY / JWT_ALGORITHM fails here, not per request.
    app.state.token_codec = TokenCodec.from_settings(settings)

    register_exception_handlers(app)

    # ── Register routers ─────────────────────────────────────────────
    app.include_router(auth_router)
    app.include_router(user_router)

    # ── Startup / Shutdown ───────────────────────────────────────────
    @app.on_event("startup")
    async def on_startup() -> None:
        """Seed the role catalog on startup.

        NOTE: Database schema is managed by Alembic migrations.
        Run `alembic upgrade head` before starting the app.
        """
        from account_service.services import role_service

        async with SessionLocal() as session:
            await role_service.seed(session)
        logger.info("Role seed complete.")

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await close_redis()
        await engine.dispose()
        logger.info("Database engine disposed, Redis connection closed.")

    # ── Health check ─────────────────────────────────────────────────
    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
