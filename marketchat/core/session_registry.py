"""
Registry of live conversation sessions for the local facade.

WHAT: Create, look up and dispose ConversationSession objects by id
WHY: HTTP callers cannot hold Python objects between requests
HOW: In-memory dict with last-access times; idle sessions are reaped
     whenever the registry is touched
"""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Dict, Optional
from uuid import uuid4

from .config import settings
from ..client.backend import MarketplaceBackend
from ..client.http_client import HttpMarketplaceClient
from ..models.chat import AuthContext
from ..services.conversation_session import ConversationSession
from ..services.conversations import ConversationDirectory
from ..utils.exceptions import ConversationNotFoundError
from ..utils.logger import get_logger

logger = get_logger(__name__)

BackendFactory = Callable[[AuthContext], MarketplaceBackend]


class SessionRegistry:
    """
    Own every session opened through the facade.

    WHAT: Central hub for session open/get/close
    WHY: Sessions hold a refresh timer that must be stopped explicitly
    HOW: Map session id -> (session, last access); reap past the idle TTL
    """

    def __init__(
        self,
        backend_factory: Optional[BackendFactory] = None,
        idle_minutes: Optional[int] = None,
        session_options: Optional[dict] = None
    ):
        """
        Args:
            backend_factory: Builds the backend for a user (default: HTTP client)
            idle_minutes: TTL for untouched sessions (default settings.SESSION_IDLE_MINUTES)
            session_options: Extra keyword arguments for every ConversationSession
        """
        self.backend_factory = backend_factory or (lambda auth: HttpMarketplaceClient(auth))
        if idle_minutes is None:
            idle_minutes = settings.SESSION_IDLE_MINUTES
        self.idle_ttl = timedelta(minutes=idle_minutes)
        self.session_options = session_options or {}
        self._sessions: Dict[str, ConversationSession] = {}
        self._last_access: Dict[str, datetime] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    async def open(self, conversation_id: str, auth: AuthContext) -> tuple[str, ConversationSession]:
        """
        Open a new session and register it.

        Returns:
            (session_id, session)
        """
        await self.reap_idle()

        backend = self.backend_factory(auth)
        session = ConversationSession(conversation_id, auth, backend, **self.session_options)
        try:
            await session.open()
        except Exception:
            await self._close_backend(backend)
            raise

        session_id = str(uuid4())
        self._sessions[session_id] = session
        self._last_access[session_id] = datetime.now(timezone.utc)
        logger.info(f"Registered session {session_id} for conversation {conversation_id}")
        return session_id, session

    def get(self, session_id: str) -> ConversationSession:
        """
        Look up a live session.

        Raises:
            ConversationNotFoundError: Unknown or already closed session id
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise ConversationNotFoundError(session_id)
        self._last_access[session_id] = datetime.now(timezone.utc)
        return session

    async def close(self, session_id: str) -> bool:
        """Dispose a session. Returns False if it was not registered."""
        session = self._sessions.pop(session_id, None)
        self._last_access.pop(session_id, None)
        if session is None:
            return False
        await session.close()
        await self._close_backend(session.backend)
        logger.info(f"Closed session {session_id}")
        return True

    async def reap_idle(self) -> int:
        """Close sessions untouched for longer than the idle TTL."""
        cutoff = datetime.now(timezone.utc) - self.idle_ttl
        stale = [sid for sid, seen in self._last_access.items() if seen < cutoff]
        for session_id in stale:
            await self.close(session_id)
        if stale:
            logger.info(f"Reaped {len(stale)} idle sessions")
        return len(stale)

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.close(session_id)

    @asynccontextmanager
    async def directory(self, auth: AuthContext) -> AsyncIterator[ConversationDirectory]:
        """Short-lived conversation lists for one request; the backend is closed afterwards."""
        backend = self.backend_factory(auth)
        try:
            yield ConversationDirectory(
                backend,
                auth,
                max_retries=self.session_options.get("max_retries"),
                retry_delay=self.session_options.get("retry_delay"),
            )
        finally:
            await self._close_backend(backend)

    @staticmethod
    async def _close_backend(backend: MarketplaceBackend) -> None:
        close = getattr(backend, "close", None)
        if close is not None:
            await close()


# Global registry instance used by the API
session_registry = SessionRegistry()
