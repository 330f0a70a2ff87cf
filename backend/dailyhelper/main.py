"""FastAPI application factory for the DailyHelper notes / to-do backend.

Request pipeline, outermost first:
    CORS -> request logging -> metrics -> unhandled-error capture ->
    route dependencies
    (bearer authentication, then role authorization) -> handler

Run (locally):
    uvicorn dailyhelper.main:app --reload
"""
import sys
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from loguru import logger
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

from .api import health as health_api
from .api import identity, notes, todos
from .errors import (
    DailyHelperError,
    dailyhelper_exception_handler,
    request_validation_exception_handler,
    unhandled_exception_handler,
)
from .models import Database
from .settings import Settings, load_settings

REQUEST_COUNT = Counter('dh_requests_total', 'Total HTTP requests', ['method', 'path', 'status'])
REQUEST_LATENCY = Histogram('dh_request_latency_seconds', 'Request latency', ['method', 'path'])

_log_config: tuple | None = None


def configure_logging(settings: Settings) -> None:
    """Structured logging (loguru): stderr at LOG_LEVEL, optional rotating file sink."""
    global _log_config
    wanted = (settings.LOG_LEVEL, settings.LOG_FILE)
    if _log_config == wanted:
        return
    logger.remove()
    logger.add(sys.stderr, level=settings.LOG_LEVEL)
    if settings.LOG_FILE:
        logger.add(settings.LOG_FILE, level=settings.LOG_LEVEL, rotation="5 MB", retention="7 days",
                   enqueue=True, serialize=False)
    _log_config = wanted


def _route_path(request) -> str:
    # label by route template so ids don't explode metric cardinality
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings)

    database = Database(settings.db)
    database.create_all()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info("Shutting down DailyHelper API")
        database.dispose()

    app = FastAPI(
        title="DailyHelper.Server",
        version="v1",
        debug=False,
        docs_url="/swagger" if settings.DEV_MODE else None,
        redoc_url=None,
        openapi_url="/swagger/v1/swagger.json" if settings.DEV_MODE else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = database

    handle_unhandled = unhandled_exception_handler(settings.DEV_MODE)
    app.add_exception_handler(DailyHelperError, dailyhelper_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    # last resort; runs in ServerErrorMiddleware, outside CORS and request logging
    app.add_exception_handler(Exception, handle_unhandled)

    app.include_router(identity.router, prefix="/api")
    app.include_router(notes.router, prefix="/api")
    app.include_router(todos.router, prefix="/api")
    app.include_router(health_api.router, prefix="/api")

    @app.get("/health", include_in_schema=False)
    async def health():
        return {"status": "ok"}

    @app.get('/metrics', include_in_schema=False)
    def metrics():  # plaintext Prometheus exposition
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.middleware("http")
    async def _unhandled_errors_mw(request, call_next):
        # innermost, so 500s still get CORS headers, a request id and a metrics sample
        try:
            return await call_next(request)
        except Exception as exc:
            return await handle_unhandled(request, exc)

    @app.middleware("http")
    async def _metrics_mw(request, call_next):
        start = time.time()
        response = await call_next(request)
        path = _route_path(request)
        REQUEST_COUNT.labels(request.method, path, response.status_code).inc()
        REQUEST_LATENCY.labels(request.method, path).observe(time.time() - start)
        return response

    @app.middleware("http")
    async def _logging_mw(request, call_next):
        rid = request.headers.get('X-Request-ID') or uuid.uuid4().hex
        start = time.time()
        with logger.contextualize(request_id=rid):
            logger.info("request {} {}", request.method, request.url.path)
            resp = await call_next(request)
            resp.headers['X-Request-ID'] = rid
            logger.info("response {} {}ms", resp.status_code, round((time.time() - start) * 1000, 2))
        return resp

    # outermost; preflight requests are answered here before reaching the app
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.ALLOWED_ORIGINS),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    logger.info("DailyHelper API ready (dev_mode={}, db={})", settings.DEV_MODE,
                database.engine.url.render_as_string(hide_password=True))
    return app


app = create_app()
