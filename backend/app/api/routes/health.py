"""Health Probe — liveness endpoint for load balancers and uptime checks.

Invariants:
    - GET /api/v1/health always returns 200 with success=true while the process is up
    - timeStamp is ISO-8601 UTC with millisecond precision and a "Z" suffix
    - environment echoes NODE_ENV as loaded into settings
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Request, status

router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("", status_code=status.HTTP_200_OK)
async def health_check(request: Request):
    """Basic liveness check. Returns 200 if the process is up."""
    settings = request.app.state.settings
    return {
        "success": True,
        "message": "Server is running",
        "environment": settings.node_env,
        "timeStamp": _iso_timestamp(datetime.now(timezone.utc)),
    }


def _iso_timestamp(moment: datetime) -> str:
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")
