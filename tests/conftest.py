"""
Pytest configuration and shared fixtures.

WHAT: Markers, a fake marketplace and per-role auth contexts
WHY: Keep tests fast, deterministic and free of network access
HOW: Register markers, build FakeMarketplace/AuthContext fixtures
"""

import pytest
from unittest.mock import MagicMock

from marketchat.models.chat import AuthContext
from marketchat.services.conversation_session import ConversationSession
from tests.fixtures.fake_backend import BUYER, SELLER, FakeMarketplace


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (isolated component tests)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (session + fake backend or facade)"
    )


@pytest.fixture
def server():
    """Fresh in-memory marketplace with one conversation about listing p1."""
    return FakeMarketplace()


@pytest.fixture
def buyer_auth():
    return AuthContext(
        user_id=BUYER.id,
        access_token="buyer-token",
        nickname=BUYER.nickname,
        on_auth_required=MagicMock(),
    )


@pytest.fixture
def seller_auth():
    return AuthContext(
        user_id=SELLER.id,
        access_token="seller-token",
        nickname=SELLER.nickname,
        on_auth_required=MagicMock(),
    )


@pytest.fixture
def make_session(server):
    """
    Build sessions against the fake server.

    No refresh timer and no retry delay unless a test asks for them.
    """
    def _make(auth, **options):
        participant = BUYER if auth.user_id == BUYER.id else SELLER
        options.setdefault("refresh_interval", 0)
        options.setdefault("retry_delay", 0)
        return ConversationSession(server.conversation.id, auth, server.client(participant), **options)

    return _make
