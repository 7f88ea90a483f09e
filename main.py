import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import schemas
from config import CORS_ALLOW_ORIGINS, LOG_LEVEL, PUSH_TRANSPORT, TOKEN_STORE
from container import Container
from database import create_all
from errors import AllFailedError, ConfigurationError, NotFoundError, ValidationError
from routes import devices, email, notifications, proxy

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


def _error(status_code: int, error: str, details: Any = None) -> JSONResponse:
    body = schemas.ErrorResponse(error=error, details=details)
    return JSONResponse(body.model_dump(), status_code=status_code)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def _validation(request: Request, exc: ValidationError):
        logger.warning("[http] 400 %s: %s", request.url.path, exc)
        return _error(400, str(exc))

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError):
        logger.warning("[http] 404 %s: %s", request.url.path, exc)
        return _error(404, str(exc))

    @app.exception_handler(AllFailedError)
    async def _all_failed(request: Request, exc: AllFailedError):
        logger.error("[http] 500 %s: all %d sends failed", request.url.path, exc.report.total_tokens)
        report = schemas.DeliveryReportResponse.from_report(exc.report, message=str(exc))
        return _error(500, "Failed to send notification", report.model_dump())

    @app.exception_handler(ConfigurationError)
    async def _configuration(request: Request, exc: ConfigurationError):
        logger.error("[http] 500 %s: %s", request.url.path, exc)
        return _error(500, "Service not configured", str(exc))

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception):
        logger.exception("[http] 500 %s", request.url.path)
        return _error(500, "Internal server error", str(exc))


def create_app(container: Optional[Container] = None) -> FastAPI:
    from_env = container is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if from_env and TOKEN_STORE == "sql":
            try:
                await create_all()
            except Exception as exc:
                logger.error("[Startup] Could not create token tables: %s", exc)
        yield

    app = FastAPI(title="Push Fan-out Service", lifespan=lifespan)
    app.state.container = container or Container.from_env()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(notifications.router)
    app.include_router(devices.router)
    app.include_router(proxy.router)
    app.include_router(email.router)

    @app.get("/healthz")
    async def healthz():
        c: Container = app.state.container
        return {"ok": True, "push": c.dispatcher is not None, "store": c.store is not None}

    @app.get("/diag/echo")
    async def diag_echo():
        return {"echo": "ok", "utc": datetime.utcnow().isoformat() + "Z"}

    @app.get("/push/diag")
    async def push_diag():
        """Server-side FCM configuration visibility. NEVER returns secrets; only presence flags."""
        c: Container = app.state.container
        return {
            "has_v1_config": bool(
                os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON")
                or os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON_B64")
                or os.getenv("FIREBASE_SERVICE_ACCOUNT")
                or (os.getenv("FIREBASE_PRIVATE_KEY") and os.getenv("FIREBASE_CLIENT_EMAIL"))
            ),
            "has_legacy_key": bool(os.getenv("FCM_SERVER_KEY")),
            "project_id_set": bool(os.getenv("FIREBASE_PROJECT_ID")),
            "push_transport_mode": PUSH_TRANSPORT,
            "transport": getattr(c.transport, "name", None),
            "transport_error": c.transport_error,
            "token_store": type(c.store).__name__ if c.store is not None else None,
        }

    return app


app = create_app()
