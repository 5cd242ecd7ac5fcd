"""
Health check endpoint.

WHAT: Liveness and session count for the local facade
WHY: Presentation shell can check the facade is up before opening chats
HOW: App metadata plus registry size
"""

from fastapi import APIRouter, Depends

from ....core.config import settings
from ....core.session_registry import SessionRegistry
from ....models.api_schemas import HealthResponse
from .sessions import get_registry

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(registry: SessionRegistry = Depends(get_registry)):
    """Overall application health."""
    return HealthResponse(
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        status="healthy",
        active_sessions=len(registry),
    )
