"""
tests/conftest.py
Shared fixtures: the app client, a scripted fake of the backend REST API,
an in-memory audit database and fake Redis.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import fakeredis
import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import shared.models.models  # noqa: F401
from config.database import Base, get_db
from config.redis_client import get_redis
from main import app
from shared.clients.backend import BackendClient, build_breaker, get_backend
from shared.utils.fetching import LatestOnlyFetcher, get_fetcher

BACKEND_URL = "http://backend.test"
TEST_TOKEN = "test-operator-token"


def auth_headers(token: str = TEST_TOKEN) -> dict:
    return {"Authorization": f"Bearer {token}"}


# ── Fake Backend ──────────────────────────────────────────────

@dataclass
class Call:
    method: str
    path: str
    params: dict
    json: Any
    content: bytes
    headers: dict = field(default_factory=dict)


Handler = Callable[[httpx.Request], tuple[int, Any]]


class FakeBackend:
    """
    Scripted stand-in for the backend REST API, used as an
    httpx.MockTransport handler. Every request is recorded in `calls`.
    Unscripted paths answer 404; GET /api/admin/me answers with `admin`.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], Handler] = {}
        self.calls: list[Call] = []
        self.admin = {
            "_id": "admin-1",
            "username": "root",
            "email": "root@example.com",
            "role": "SUPER_ADMIN",
        }

    def on(
        self,
        method: str,
        path: str,
        response: Any = None,
        status: int = 200,
        handler: Optional[Handler] = None,
    ) -> None:
        body = {} if response is None else response
        self.routes[(method.upper(), path)] = handler or (lambda request: (status, body))

    def requests(self, method: Optional[str] = None, path: Optional[str] = None) -> list[Call]:
        return [
            c for c in self.calls
            if (method is None or c.method == method.upper()) and (path is None or c.path == path)
        ]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        try:
            body = json.loads(request.content) if request.content else None
        except ValueError:
            body = None
        self.calls.append(Call(
            method=request.method,
            path=request.url.path,
            params=dict(request.url.params),
            json=body,
            content=request.content,
            headers=dict(request.headers),
        ))

        key = (request.method, request.url.path)
        if key not in self.routes and key == ("GET", "/api/admin/me"):
            return httpx.Response(200, json={"success": True, "admin": self.admin})
        handler = self.routes.get(key)
        if handler is None:
            return httpx.Response(404, json={"message": f"No route {request.method} {request.url.path}"})
        status, payload = handler(request)
        return httpx.Response(status, json=payload)


# ── Fixtures ──────────────────────────────────────────────────

@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest_asyncio.fixture
async def backend_client(backend: FakeBackend):
    client = BackendClient(
        base_url=BACKEND_URL,
        transport=httpx.MockTransport(backend),
        breaker=build_breaker(fail_max=3, reset_timeout=60, name="test-backend"),
    )
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db(db_engine) -> AsyncSession:
    factory = async_sessionmaker(db_engine, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest_asyncio.fixture
async def redis():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest_asyncio.fixture
async def client(db_engine, redis, backend_client: BackendClient):
    factory = async_sessionmaker(db_engine, expire_on_commit=False)

    async def override_get_db():
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: redis
    app.dependency_overrides[get_backend] = lambda: backend_client
    app.dependency_overrides[get_fetcher] = lambda: LatestOnlyFetcher(0)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
