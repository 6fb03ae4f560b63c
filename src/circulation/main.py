# src/circulation/main.py
from __future__ import annotations

import logging
import logging.config
from contextlib import asynccontextmanager

import sqlalchemy as sa
from fastapi import FastAPI, Request
from fastapi.routing import APIRoute
from sqlalchemy.exc import IntegrityError
from starlette.responses import JSONResponse

from circulation.api.routers.borrow_requests import router as borrow_router
from circulation.api.routers.cards import router as cards_router
from circulation.api.routers.copies import router as copies_router
from circulation.api.routers.fines import router as fines_router
from circulation.api.routers.health import router as health_router
from circulation.core.config import settings
from circulation.exceptions import (
    CardInvalidError,
    CirculationError,
    ConflictError,
    InvalidOperationError,
    InvalidStateError,
    LimitExceededError,
    NoAvailableCopyError,
    NotFoundError,
)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {
            "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
            "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s %(process)d %(module)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "stream": "ext://sys.stdout",
        },
    },
    "loggers": {
        "":               {"handlers": ["console"], "level": "INFO"},
        "circulation":    {"handlers": ["console"], "level": settings.CIRCULATION_LOG_LEVEL.upper(), "propagate": False},
        "uvicorn":        {"handlers": ["console"], "level": "INFO", "propagate": False},
        "uvicorn.error":  {"handlers": ["console"], "level": "INFO", "propagate": False},
        "uvicorn.access": {"handlers": ["console"], "level": "INFO", "propagate": False},
        "startup":        {"handlers": ["console"], "level": "DEBUG", "propagate": False},
    },
}

logging.config.dictConfig(LOGGING)
log = logging.getLogger("main")

# Most specific class first; the first isinstance match wins.
ERROR_STATUS: tuple[tuple[type[CirculationError], int], ...] = (
    (NotFoundError, 404),
    (ConflictError, 409),
    (InvalidStateError, 409),
    (LimitExceededError, 422),
    (NoAvailableCopyError, 422),
    (CardInvalidError, 422),
    (InvalidOperationError, 400),
)


def status_for(exc: CirculationError) -> int:
    for cls, code in ERROR_STATUS:
        if isinstance(exc, cls):
            return code
    return 400


def generate_unique_id(route: APIRoute) -> str:
    methods = "_".join(sorted((route.methods or []), key=str.lower)).lower()
    path = route.path_format.replace("/", "_").replace("{", "").replace("}", "").strip("_")
    tag = (route.tags[0] if route.tags else "default").lower().replace(" ", "_").replace("-", "_")
    return f"{tag}__{methods}__{path}"


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # ---------------- STARTUP ----------------
        from circulation.db.session import get_engine

        engine = get_engine()
        if not settings.TESTING:
            try:
                async with engine.connect() as conn:
                    await conn.execute(sa.text("SELECT 1"))
            except Exception as e:
                logging.getLogger("startup").warning("[db] ping failed: %s", e)

        logging.getLogger("startup").info(
            "[startup] mounted routes: %s",
            sorted(r.path for r in app.routes if isinstance(r, APIRoute)),
        )

        yield

        # ---------------- SHUTDOWN ----------------
        await engine.dispose()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        generate_unique_id_function=generate_unique_id,
        lifespan=lifespan,
    )

    @app.exception_handler(CirculationError)
    async def circulation_error_handler(request: Request, exc: CirculationError):
        """
        Map circulation errors to 4xx responses.
        Conflicts carry retry_policy="immediate": reallocate and retry.
        """
        status_code = status_for(exc)
        level = logging.WARNING if status_code == 409 else logging.INFO
        log.log(
            level,
            "%s on %s %s -> %s: %s",
            exc.error_code, request.method, request.url.path, status_code, exc.message,
        )
        return JSONResponse(status_code=status_code, content={"detail": exc.to_dict()})

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        """
        Map DB integrity errors to clear 4xx responses instead of 500.
        - Unique constraint -> 409 Conflict
        - Not-null / FK / Check -> 422 Unprocessable Entity
        - Otherwise -> 400 Bad Request
        """
        orig = getattr(exc, "orig", None)
        message = str(orig or exc)
        low = message.lower()

        status_code = 400
        detail = "Integrity error"
        if "unique constraint" in low or "duplicate key" in low:
            status_code = 409
            detail = "Unique constraint violation"
        elif "foreign key" in low:
            status_code = 422
            detail = "Foreign key constraint failed"
        elif "not null" in low or "null value in column" in low:
            status_code = 422
            detail = "Missing required field (NOT NULL violation)"
        elif "check constraint" in low:
            status_code = 422
            detail = "Check constraint failed"

        log.exception(
            "IntegrityError on %s %s -> %s: %s",
            request.method, request.url.path, status_code, message,
        )
        return JSONResponse(
            status_code=status_code,
            content={"detail": {"error": "integrity_error", "reason": detail}},
        )

    app.include_router(health_router)
    app.include_router(borrow_router)
    app.include_router(fines_router)
    app.include_router(cards_router)
    app.include_router(copies_router)

    return app
