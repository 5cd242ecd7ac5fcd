"""
API v1 router aggregation.

WHAT: Combine all v1 endpoint routers
WHY: Single place to register all API routes
HOW: Include routers from endpoints with prefixes
"""

from fastapi import APIRouter

from .endpoints import status, sessions, conversations

api_router = APIRouter()

api_router.include_router(
    status.router,
    prefix="/api/v1",
    tags=["status"]
)

api_router.include_router(
    sessions.router,
    prefix="/api/v1",
    tags=["sessions"]
)

api_router.include_router(
    conversations.router,
    prefix="/api/v1",
    tags=["conversations"]
)
