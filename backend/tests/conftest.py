"""
RestBase Tests: Test Configuration (conftest.py)
=================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all
       tests. Each test gets its own SQLite database file under tmp_path.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── db_engine:        Async engine on a temp SQLite file, tables created
    ├── session_factory:  async_sessionmaker bound to db_engine
    ├── db_session:       One open session for direct controller tests
    ├── seed_books:       Five books (two owners) and one author
    ├── deleted:          Ids recorded by the books delete-hook
    ├── resources:        Fresh (books, authors) controllers
    ├── app:              FastAPI app with the session dependency overridden
    ├── test_client:      HTTPX AsyncClient for API endpoint testing
    ├── make_request:     Builds a starlette Request with a JSON body
    └── mock_db_session:  Mock async session (no real DB needed)
"""

import json
import os

# Override settings for testing BEFORE any restbase imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LOG_LEVEL"] = "WARNING"  # Reduce noise during tests
os.environ.pop("UPDATE_STATUS_CODE", None)

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from starlette.requests import Request

from restbase.database import Base, build_engine, build_session_factory, get_db_session, session_scope
from sample_resources import Author, Book, build_resources


# ══════════════════════════════════════════════════════════════════════════
# Database Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'restbase_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seed_books(session_factory):
    """
    Inserts one author and five books, ids 1..5 in title order A..E.

    Books 1-3 belong to "ann", books 4-5 to "bob". Only book 1 has an author.
    """
    async with session_scope(session_factory) as session:
        author = Author(id=1, name="Ursula")
        session.add(author)
        for book_id, (title, pages, owner) in enumerate(
            [
                ("A Wizard", 180, "ann"),
                ("B Tombs", 150, "ann"),
                ("C Shore", 250, "ann"),
                ("D Tehanu", 260, "bob"),
                ("E Wind", None, "bob"),
            ],
            start=1,
        ):
            session.add(
                Book(
                    id=book_id,
                    title=title,
                    pages=pages,
                    owner=owner,
                    author_id=1 if book_id == 1 else None,
                )
            )
    return list(range(1, 6))


# ══════════════════════════════════════════════════════════════════════════
# Application Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def deleted():
    return []


@pytest.fixture
def resources(deleted):
    return build_resources(deleted)


@pytest.fixture
def app(resources, session_factory):
    from restbase.main import create_app

    application = create_app(resources=resources)

    async def override_session():
        async with session_scope(session_factory) as session:
            yield session

    application.dependency_overrides[get_db_session] = override_session
    return application


@pytest_asyncio.fixture
async def test_client(app):
    """
    Provides an async HTTP test client for endpoint testing.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# ══════════════════════════════════════════════════════════════════════════
# Unit Test Helpers
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def make_request():
    """
    Factory for bare starlette Requests, for calling controller operations
    directly.

    Usage:
        request = make_request({"title": "Dune"}, headers={"X-Owner": "ann"})
    """

    def _make(body=None, headers=None, raw=None):
        payload = raw if raw is not None else (b"" if body is None else json.dumps(body).encode())

        async def receive():
            return {"type": "http.request", "body": payload, "more_body": False}

        scope = {
            "type": "http",
            "method": "POST",
            "path": "/",
            "query_string": b"",
            "headers": [
                (key.lower().encode("latin-1"), value.encode("latin-1"))
                for key, value in (headers or {}).items()
            ],
        }
        return Request(scope, receive)

    return _make


@pytest.fixture
def mock_db_session():
    """
    Provides a mock async database session.

    Usage:
        mock_db_session.execute.return_value.scalar_one_or_none.return_value = None
        with pytest.raises(NotFoundError):
            await books.get_one(request, mock_db_session, 42)
    """
    session = AsyncMock()
    session.execute = AsyncMock(return_value=MagicMock())
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.delete = AsyncMock()
    session.add = MagicMock()
    return session
