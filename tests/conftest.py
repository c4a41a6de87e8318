"""
Shared fixtures.

Every test gets its own SQLite file (aiosqlite, NullPool) so sessions opened
from different tasks or event loops run real, independent transactions.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./.pytest-chat.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-0123456789-abcdefghijklmnop")
os.environ.setdefault("ENV", "development")

from typing import Any, List
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.pool import NullPool

from app.core.security import get_password_hash
from app.infra.db import build_engine, build_session_factory, get_db, get_session_factory
from app.main import create_app
from app.models import Base, User
from app.services.connection_manager import ConnectionManager

# one real hash shared by fixture users; bcrypt is slow on purpose
TEST_PASSWORD = "secret-pass"
_TEST_PASSWORD_HASH = get_password_hash(TEST_PASSWORD)


class FakeChannel:
    """Stands in for a WebSocket: records every JSON event pushed to it."""

    def __init__(self, name: str = "", fail: bool = False):
        self.name = name
        self.fail = fail
        self.sent: List[Any] = []

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise ConnectionResetError("channel closed")
        self.sent.append(data)

    def __repr__(self):
        return f"FakeChannel({self.name!r})"


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'chat.db'}"


@pytest.fixture
async def engine(db_url):
    engine = build_engine(db_url, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def immediate_session_factory(db_url):
    """
    Sessions whose transactions start with BEGIN IMMEDIATE, so concurrent
    writers queue on SQLite's busy timeout instead of failing on lock upgrade.
    """
    engine = build_engine(db_url, poolclass=NullPool)

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    yield build_session_factory(engine)
    await engine.dispose()


# =============================================================================
# Users
# =============================================================================


async def make_user(session_factory, username: str, display_name: str = None) -> User:
    async with session_factory() as session:
        user = User(
            id=str(uuid4()),
            username=username,
            display_name=display_name or username.capitalize(),
            hashed_password=_TEST_PASSWORD_HASH,
        )
        session.add(user)
        await session.commit()
        return user


@pytest.fixture
async def alice(session_factory) -> User:
    return await make_user(session_factory, "alice")


@pytest.fixture
async def bob(session_factory) -> User:
    return await make_user(session_factory, "bob")


@pytest.fixture
async def carol(session_factory) -> User:
    return await make_user(session_factory, "carol")


# =============================================================================
# Registry / app
# =============================================================================


@pytest.fixture
def registry() -> ConnectionManager:
    return ConnectionManager()


@pytest.fixture
def app(session_factory):
    app = create_app()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    return app


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


async def login(client: AsyncClient, username: str, password: str = TEST_PASSWORD) -> dict:
    response = await client.post("/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return response.json()


def auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
