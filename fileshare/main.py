from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, settings
from .deps import ServerContext
from .logs import configure_logging
from .routers import browse, files, upload

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    context: ServerContext = app.state.context
    if not context.root.exists():
        raise RuntimeError(f'Root directory does not exist: {context.root}')
    if not context.root.is_dir():
        raise RuntimeError(f'Root path is not a directory: {context.root}')

    logger.info('Serving files from: %s', context.root)
    if context.mime.enabled:
        logger.info('Intelligent MIME recognition enabled')
    yield


async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    client = request.client.host if request.client else 'unknown'
    logger.info('[%s] %s %s', request.method, request.url.path, client)
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.info('[%s] %s completed in %.1fms', request.method, request.url.path, elapsed_ms)
    return response


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return PlainTextResponse('Bad request', status_code=400)


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error('Unhandled error on %s %s', request.method, request.url.path, exc_info=exc)
    return PlainTextResponse('Internal server error', status_code=500)


def create_app(app_settings: Settings | None = None) -> FastAPI:
    app_settings = app_settings or settings
    app = FastAPI(title=app_settings.app_name, lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)
    app.state.context = ServerContext.from_settings(app_settings)

    app.middleware('http')(log_requests)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # browse is a catch-all and must come last
    app.include_router(files.router)
    app.include_router(upload.router)
    app.include_router(browse.router)
    return app


configure_logging(settings.log_level)
app = create_app()
