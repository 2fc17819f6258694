"""Minimal Entrypoint — bare "Hello" server for smoke-testing a deployment.

Invariants:
    - GET / returns 200 text/plain "Hello"
    - No CORS, body parsing or error formatting; only the process lifecycle is shared
"""

from typing import NoReturn

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from app.config import get_settings
from app.infrastructure.observability import setup_logging
from app.server import run


def create_minimal_app() -> FastAPI:
    app = FastAPI(title="Scaffold API (minimal)")

    @app.get("/", response_class=PlainTextResponse)
    async def hello() -> str:
        return "Hello"

    return app


def main() -> NoReturn:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    run(create_minimal_app, settings)


if __name__ == "__main__":
    main()
