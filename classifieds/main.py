# classifieds/main.py
"""Application factory.

Request handling runs through fixed stages: the logging middleware, identity
resolution (a route dependency), the handler, then the typed error mapping
below. The core components never see HTTP objects.
"""
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .api.routes import router as api_router
from .db import AppContext
from .errors import MarketplaceError, ValidationError
from .schemas import describe_errors
from .services import Marketplace
from .utils import logger


def create_app(ctx: AppContext | None = None, start_jobs: bool = False) -> FastAPI:
    ctx = ctx or AppContext()
    app = FastAPI(title="Classifieds API", version="1.0.0")
    app.state.ctx = ctx
    app.state.marketplace = Marketplace(ctx)
    app.state.scheduler = None

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
        return response

    @app.exception_handler(MarketplaceError)
    async def marketplace_error(request: Request, exc: MarketplaceError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        err = ValidationError(describe_errors(exc.errors()))
        return JSONResponse(status_code=err.status_code, content=err.to_dict())

    app.include_router(api_router)

    @app.on_event("startup")
    def on_startup():
        # Ensure database tables are created on startup
        ctx.create_all()
        if start_jobs:
            from .scheduler import start_scheduler

            app.state.scheduler = start_scheduler(ctx)

    @app.on_event("shutdown")
    def on_shutdown():
        if app.state.scheduler is not None:
            app.state.scheduler.shutdown(wait=False)
        ctx.dispose()

    return app
