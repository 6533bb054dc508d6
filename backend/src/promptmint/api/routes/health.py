"""Liveness endpoint used by clients to check network reachability."""

from fastapi import APIRouter

router = APIRouter(prefix="/api", tags=["health"])


@router.api_route("/health", methods=["GET", "HEAD"])
async def health_check():
    """Returns 200 {"status": "healthy"} while the server is up."""
    return {"status": "healthy"}
