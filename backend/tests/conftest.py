"""
ClimbApp Backend — Test Configuration (conftest.py)
===================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Environment overrides are applied before any climbapp import, so the
       settings singleton never sees a production database or GCP project.

Fixtures (function-scoped):
    ├── mock_db_session: AsyncMock standing in for AsyncSession
    ├── sample_image_bytes / sample_image_base64: a real 8x8 PNG
    ├── sample_site / sample_route: transient ORM objects
    ├── test_client: HTTPX AsyncClient against the app
    └── api_client: test_client with get_db_session overridden by mock_db_session
"""

import base64
import io
import os
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from PIL import Image


# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["GCP_PROJECT_ID"] = "climbapp-test"
os.environ["GOOGLE_CREDENTIALS_FILE"] = ""
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"

from climbapp.models.climbing import ClimbingRoute, ClimbingSite  # noqa: E402

SITE_ID = "9a2f6c1e-0d3b-4c55-9e44-7f1b2a3c4d5e"
ROUTE_ID = "4c1e8b7a-2f3d-4e5a-8b6c-1d2e3f4a5b6c"


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_db_session():
    """
    Provides a mock async database session.

    Usage:
        async def test_get_site(mock_db_session, sample_site):
            mock_db_session.get.return_value = sample_site
            site = await site_service.get_site(mock_db_session, sample_site.id)
    """
    session = AsyncMock()
    session.get = AsyncMock(return_value=None)
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.delete = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def sample_image_bytes():
    """A tiny but real PNG that Pillow can identify."""
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), color=(200, 30, 30)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def sample_image_base64(sample_image_bytes):
    return base64.b64encode(sample_image_bytes).decode("ascii")


@pytest.fixture
def sample_route():
    return ClimbingRoute(
        id=ROUTE_ID,
        site_id=SITE_ID,
        name="Black Slab",
        description="Thin crimps on a slab",
        difficulty="6b",
        target_id="product-1",
        created_at=datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def sample_site(sample_route):
    """A site holding sample_route; not attached to any session."""
    return ClimbingSite(
        id=SITE_ID,
        name="Fontainebleau",
        description="Sandstone boulders south of Paris",
        created_at=datetime(2024, 4, 1, 9, 0, tzinfo=timezone.utc),
        routes=[sample_route],
    )


@pytest_asyncio.fixture
async def test_client():
    """
    Provides an async HTTP test client for endpoint testing.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
    """
    from climbapp.main import app
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def api_client(mock_db_session):
    """test_client whose handlers receive mock_db_session."""
    from climbapp.database import get_db_session
    from climbapp.main import app

    async def override_db_session():
        yield mock_db_session

    app.dependency_overrides[get_db_session] = override_db_session
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.pop(get_db_session, None)
