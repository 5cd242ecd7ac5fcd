"""
FastAPI application entry point.

WHAT: Local chat facade for presentation shells
WHY: Drive conversation sessions over HTTP without embedding Python objects
HOW: App factory wiring CORS, exception handlers and the v1 router;
     the lifespan disposes every live session on shutdown
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .core.session_registry import session_registry
from .utils.logger import setup_logging, get_logger
from .middleware.error_handler import register_exception_handlers
from .api.v1.router import api_router

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Stop refresh timers and close backend clients before the loop goes away."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION} (backend: {settings.API_BASE_URL})")

    yield

    logger.info(f"Shutting down, closing {len(session_registry)} live sessions")
    await session_registry.close_all()


async def root():
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


def create_app() -> FastAPI:
    """Build the facade application."""
    application = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Conversation sessions, offers and reviews for the marketplace chat",
        lifespan=lifespan
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_cors_origins_list(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    register_exception_handlers(application)
    application.include_router(api_router)
    application.add_api_route("/", root, methods=["GET"])
    return application


app = create_app()


def run():
    """Console entry point: serve the facade with uvicorn."""
    import uvicorn
    uvicorn.run(
        "marketchat.main:app",
        host=settings.FACADE_HOST,
        port=settings.FACADE_PORT,
        reload=settings.DEBUG
    )


if __name__ == "__main__":
    run()
