"""Shared test fixtures."""

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from mcp_oauth.core.db import Base, get_session
from mcp_oauth.main import create_app
from mcp_oauth.models.persistance.oauth import OAuthClient
from mcp_oauth.services.oauth import client_registry

ACME_REDIRECT = "https://acme.test/cb"
ACME_UPSTREAM = "strapi-acme-token"


@pytest.fixture(name="engine")
async def engine_fixture(tmp_path):
    """Create a file-backed SQLite database so separate sessions really are separate connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'oauth.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture(name="session_factory")
def session_factory_fixture(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(name="session")
async def session_fixture(session_factory):
    """Create a new database session for each test."""
    async with session_factory() as session:
        yield session


@pytest.fixture(name="app")
def app_fixture(session_factory):
    """Build the app against the test database, without the background scheduler."""
    app = create_app(session_factory=session_factory, use_lifespan=False)

    async def get_session_override():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = get_session_override
    yield app
    app.dependency_overrides.clear()


@pytest.fixture(name="client")
async def client_fixture(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture(name="acme")
async def acme_fixture(session) -> OAuthClient:
    """Confidential client with a single exact redirect URI."""
    return await client_registry.create_client(
        session,
        client_id="acme",
        client_secret="s3cret",
        name="Acme",
        redirect_uris=[ACME_REDIRECT],
        upstream_token=ACME_UPSTREAM,
    )


@pytest.fixture(name="chat_client")
async def chat_client_fixture(session) -> OAuthClient:
    """Public client registered with wildcard redirect patterns."""
    return await client_registry.create_client(
        session,
        client_id="chat-assistant",
        client_secret=None,
        name="Chat Assistant",
        redirect_uris=["https://chat.example.com/aip/g-*/oauth/callback"],
        upstream_token="strapi-chat-token",
    )
