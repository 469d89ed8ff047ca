"""
Health router: GET /health endpoint.

Used by liveness probes. Reports the configured model and how many chat
sessions are currently held in memory.
"""

from fastapi import APIRouter, Request

from docchat.core.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request) -> dict:
    sessions = getattr(request.app.state, "sessions", None)
    return {
        "status": "healthy",
        "service": "docchat",
        "model": get_settings().gemini_model,
        "active_sessions": len(sessions) if sessions is not None else 0,
    }
