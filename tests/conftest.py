"""Pytest configuration and shared fixtures for backend tests."""
import os
import random

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set required environment variables for testing
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOAD_SIMULATION_ENABLED", "false")
os.environ.setdefault("AUTO_ACTIVATION_ENABLED", "false")
os.environ.setdefault("BECKN_GATEWAY", "mock")


@pytest_asyncio.fixture
async def test_engine():
    """Create in-memory test database engine."""
    from grid_command_center.models import Base

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def test_session(test_engine):
    """Create test database session."""
    async_session = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with async_session() as session:
        yield session


@pytest.fixture
def session_factory(test_engine):
    """Session factory used by background services."""
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def test_settings():
    from grid_command_center.core.config import Settings

    return Settings(
        load_simulation_enabled=False,
        auto_activation_enabled=False,
        beckn_timeout_s=2.0,
        journey_compensate_on_failure=False,
    )


@pytest.fixture
def grid(test_settings):
    """Seeded grid with a deterministic random walk."""
    from grid_command_center.data.seed import seed_feeders
    from grid_command_center.grid.state import GridState

    return GridState(
        seed_feeders(),
        rng=random.Random(42),
        warning_pct=test_settings.low_threshold_pct,
        critical_pct=test_settings.high_threshold_pct,
        max_load_pct=test_settings.max_load_pct,
    )


@pytest.fixture
def gateway():
    from grid_command_center.beckn.gateway import MockGateway

    return MockGateway()


@pytest_asyncio.fixture
async def client(test_session, grid, gateway):
    """Create test HTTP client with database, grid and gateway overrides."""
    from grid_command_center.main import app
    from grid_command_center.dependencies import get_gateway, get_grid_state, get_session

    async def override_get_session():
        yield test_session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_grid_state] = lambda: grid
    app.dependency_overrides[get_gateway] = lambda: gateway
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
