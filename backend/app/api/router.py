"""Route Table — static mapping of URL prefixes to feature routers.

Invariants:
    - MODULE_ROUTES is built once at import and never mutated (tuple of frozen entries)
    - Registration order is match precedence
    - Every entry is mounted under API_PREFIX

Design Decisions:
    - Explicit list over auto-discovery: a new feature adds one RouteEntry here
"""

from dataclasses import dataclass

from fastapi import APIRouter

API_PREFIX = "/api/v1"


@dataclass(frozen=True)
class RouteEntry:
    path: str
    route: APIRouter


# No feature modules yet; health is registered directly by create_app.
MODULE_ROUTES: tuple[RouteEntry, ...] = ()


def build_api_router(entries: tuple[RouteEntry, ...] = MODULE_ROUTES) -> APIRouter:
    """Aggregate the route table into a single router."""
    router = APIRouter()
    for entry in entries:
        router.include_router(entry.route, prefix=entry.path)
    return router
