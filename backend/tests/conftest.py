"""Root conftest — shared settings and HTTP client fixtures.

Invariants:
    - Settings never read a developer's .env file (_env_file=None)
    - Every client gets a freshly built app, so settings never leak between tests
    - raise_app_exceptions=False: the formatted 500 is what the test sees even if
      a failure escapes to Starlette's outermost error middleware
"""

import os

# Keep the import-time app out of development mode
os.environ.setdefault("NODE_ENV", "test")

import pytest
from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient

from app.config import Settings
from app.core.errors import AppError
from app.main import create_app


class SocketLike:
    """Stand-in for a non-serializable attribute (e.g. a live socket)."""


def _add_test_routes(app: FastAPI) -> None:
    """Routes that raise or echo, used only by tests."""

    @app.get("/testing/app-error")
    async def raise_app_error():
        raise AppError(
            422, "Unprocessable thing", errors=[{"field": "name"}], code="BAD_THING",
        )

    @app.get("/testing/runtime-error")
    async def raise_runtime_error():
        err = RuntimeError("kaput")
        err.connection = SocketLike()
        raise err

    @app.get("/testing/bare-error")
    async def raise_bare_error():
        raise RuntimeError()

    @app.get("/testing/items/{item_id}")
    async def read_item(item_id: int):
        return {"item_id": item_id}

    @app.post("/testing/echo")
    async def echo_body(request: Request):
        return {"body": request.state.body}

    @app.post("/testing/raw-echo")
    async def echo_raw_body(request: Request):
        return {"parsed": request.state.body, "raw": (await request.body()).decode()}


@pytest.fixture
def make_settings():
    def _make(**overrides) -> Settings:
        overrides.setdefault("node_env", "test")
        return Settings(_env_file=None, **overrides)
    return _make


@pytest.fixture
def make_client(make_settings):
    """Factory: AsyncClient over a fresh app built with the given overrides."""
    def _make(**overrides) -> AsyncClient:
        app = create_app(make_settings(**overrides))
        _add_test_routes(app)
        client = AsyncClient(
            transport=ASGITransport(app=app, raise_app_exceptions=False),
            base_url="http://test",
        )
        return client

    return _make


@pytest.fixture
async def client(make_client):
    async with make_client() as c:
        yield c
