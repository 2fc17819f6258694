"""HTTP Entrypoint — FastAPI application factory.

Invariants:
    - Pipeline order is fixed: CORS → unexpected-error guard → body parser →
      health → route table → not-found → error formatter
    - Every response, 500s included, passes back through CORS
    - CORS allows the configured origins with credentials; no route bypasses it
    - Error handlers are registered last, with not-found ahead of the catch-all

Design Decisions:
    - create_app(settings) factory: tests build isolated apps with their own settings
    - Settings stored on app.state so routes read the instance the app was built with
    - Starlette runs the last-added middleware first, so CORS is added last
    - serve() is the console entry point; importing app.server alone never builds
      this app
"""

import logging
from contextlib import asynccontextmanager
from functools import partial
from typing import NoReturn

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.body_parser import BodyParserMiddleware
from app.api.error_handlers import UnexpectedErrorMiddleware, register_error_handlers
from app.api.router import API_PREFIX, build_api_router
from app.api.routes import health
from app.config import Settings, get_settings
from app.infrastructure.observability import setup_logging
from app.server import run

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings: Settings = app.state.settings
    if not settings.database_url:
        logger.warning("DATABASE_URL is not set; running without a database")
    logger.info(
        "API started", extra={"state": "running", "environment": settings.node_env},
    )
    yield
    logger.info("API shutting down", extra={"state": "closing"})


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI app with its full middleware and handler chain."""
    settings = settings or get_settings()

    app = FastAPI(title="Scaffold API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        BodyParserMiddleware,
        limit_bytes=settings.json_body_limit_bytes,
        environment=settings.node_env,
    )
    app.add_middleware(UnexpectedErrorMiddleware, environment=settings.node_env)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(build_api_router(), prefix=API_PREFIX)

    register_error_handlers(app, settings)
    return app


app = create_app()


def serve() -> NoReturn:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    run(partial(create_app, settings), settings)


if __name__ == "__main__":
    serve()
