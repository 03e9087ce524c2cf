from __future__ import annotations

import logging
import time
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.exception_handlers import (
    http_exception_handler,
    request_validation_exception_handler,
)
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from starlette.middleware.trustedhost import TrustedHostMiddleware

from peakhabit_api.core.config import Settings
from peakhabit_api.core.logging import configure_logging, request_id_var
from peakhabit_api.db import Base, create_db_engine, create_session_factory
from peakhabit_api.errors import PeakHabitError, StorageUnavailable
from peakhabit_api.metrics import observe_http_request, render_prometheus_metrics
from peakhabit_api.progression import day_clock


logger = logging.getLogger(__name__)
access_logger = logging.getLogger("peakhabit_api.access")


def _parse_csv(value: str) -> list[str]:
    raw = str(value or "").strip()
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def _error_response(request: Request, exc: PeakHabitError) -> JSONResponse:
    resp = JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.code, "error": exc.to_dict()},
    )
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        resp.headers["X-Request-Id"] = str(request_id)
    return resp


def create_app(
    *,
    settings: Settings | None = None,
    session_factory: sessionmaker[Session] | None = None,
) -> FastAPI:
    settings = settings or Settings()
    configure_logging(settings)

    if session_factory is None:
        session_factory = create_session_factory(create_db_engine(settings.db_url))

    app = FastAPI(
        title="PeakHabit API",
        version="0.1.0",
        openapi_url="/api/openapi.json",
        docs_url="/docs",
    )
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.clock = day_clock(settings)

    allowed_hosts = _parse_csv(settings.allowed_hosts) or ["*"]
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=allowed_hosts)

    cors_origins = _parse_csv(settings.cors_allowed_origins)
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def _request_context(request: Request, call_next):
        start = time.perf_counter()
        request_id = request.headers.get("x-request-id") or f"req_{uuid4().hex}"
        request.state.request_id = request_id
        token = request_id_var.set(request_id)

        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000.0
            _observe_http(request=request, status_code=500, duration_ms=duration_ms)
            access_logger.exception(
                "request failed",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": 500,
                    "duration_ms": round(duration_ms, 2),
                },
            )
            raise
        finally:
            request_id_var.reset(token)

        duration_ms = (time.perf_counter() - start) * 1000.0
        _observe_http(request=request, status_code=response.status_code, duration_ms=duration_ms)
        response.headers["X-Request-Id"] = request_id
        access_logger.info(
            "%s %s %s",
            request.method,
            request.url.path,
            response.status_code,
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
        return response

    @app.exception_handler(PeakHabitError)
    async def _domain_error(request: Request, exc: PeakHabitError):
        if exc.status_code >= 500:
            logger.warning("domain error %s", exc.code, extra={"code": exc.code})
        return _error_response(request, exc)

    @app.exception_handler(OperationalError)
    async def _storage_error(request: Request, exc: OperationalError):
        logger.error("storage unavailable", exc_info=exc)
        return _error_response(request, StorageUnavailable())

    @app.exception_handler(HTTPException)
    async def _with_request_id_http_exception(request: Request, exc: HTTPException):
        resp = await http_exception_handler(request, exc)
        request_id = getattr(request.state, "request_id", None)
        if request_id:
            resp.headers["X-Request-Id"] = str(request_id)
        return resp

    @app.exception_handler(RequestValidationError)
    async def _with_request_id_validation_error(
        request: Request, exc: RequestValidationError
    ):
        resp = await request_validation_exception_handler(request, exc)
        request_id = getattr(request.state, "request_id", None)
        if request_id:
            resp.headers["X-Request-Id"] = str(request_id)
        return resp

    @app.get("/api/health")
    def health() -> dict[str, object]:
        return {
            "status": "ok",
            "day_boundary_utc_offset_hours": settings.day_boundary_utc_offset_hours,
        }

    @app.get("/api/ready")
    def ready() -> dict[str, object]:
        db_err: str | None = None
        try:
            with session_factory() as session:
                session.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            db_err = str(exc)[:400]
        return {
            "status": "ok" if db_err is None else "fail",
            "db": {"ok": db_err is None, "error": db_err},
        }

    @app.get("/api/metrics", response_class=PlainTextResponse)
    def metrics() -> Response:
        with session_factory() as session:
            text_out = render_prometheus_metrics(db=session)
        return PlainTextResponse(content=text_out, media_type="text/plain; version=0.0.4")

    if settings.seed_on_boot:

        @app.on_event("startup")
        def _seed_startup() -> None:
            from peakhabit_api.completions import seed_daily_challenges
            from peakhabit_api.dungeons import seed_dungeon

            with session_factory() as session:
                Base.metadata.create_all(session.get_bind())
                seed_daily_challenges(session)
                seed_dungeon(session)
                session.commit()
            logger.info("seeded default content")

    from peakhabit_api.routers import auth, daily, dungeon, guilds, pets, profile, raids, tasks

    app.include_router(auth.router)
    app.include_router(profile.router)
    app.include_router(tasks.router)
    app.include_router(daily.router)
    app.include_router(dungeon.router)
    app.include_router(guilds.router)
    app.include_router(raids.router)
    app.include_router(pets.router)

    return app


def _observe_http(*, request: Request, status_code: int, duration_ms: float | None = None) -> None:
    route = request.scope.get("route")
    template = getattr(route, "path", None) if route is not None else None
    observe_http_request(
        path=str(template or request.url.path),
        method=request.method,
        status=str(status_code),
        duration_ms=duration_ms,
    )


app = create_app()
