"""
Shared fixtures.

The server runs in-process: the gateway talks to the FastAPI app through
``httpx.ASGITransport`` and the storage dependency points at ``tmp_path``.
The local store uses an in-memory SQLite database per test.
"""

from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from client.gateway import RemoteGateway
from client.local_store import LocalStore
from client.session import Credentials
from client.sync import SyncCoordinator
from core.config import settings
from core.rate_limit import rate_limiter
from database import init_models, make_engine, make_session_factory
from main import app
from vault.service import VaultFileService, get_file_service

PASSWORD = "Tr0ub4dor&3"
BASE_URL = "http://test"


@pytest.fixture(autouse=True)
def fresh_rate_limit():
    """Every test starts with an empty request count and the configured limit."""
    rate_limiter.reset()
    yield
    rate_limiter.configure(settings.rate_limit_requests, settings.rate_limit_window, settings.rate_limit_block)
    rate_limiter.reset()


@pytest.fixture
def password() -> str:
    return PASSWORD


@pytest.fixture
def service(tmp_path) -> VaultFileService:
    return VaultFileService(tmp_path / "storage", retry_delay=0)


@pytest.fixture
def server(service):
    """The FastAPI app bound to this test's storage root."""
    app.dependency_overrides[get_file_service] = lambda: service
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def api(server) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=server), base_url=BASE_URL) as client:
        yield client


@pytest.fixture
def auth(password) -> dict:
    return {"X-Master-Password": password}


@pytest_asyncio.fixture
async def session_factory():
    engine = make_engine("sqlite+aiosqlite:///:memory:")
    await init_models(engine)
    yield make_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def credentials(password) -> Credentials:
    return Credentials(password)


@pytest.fixture
def store(session_factory, credentials) -> LocalStore:
    return LocalStore(session_factory, credentials=credentials)


@pytest_asyncio.fixture
async def gateway(server, credentials) -> AsyncGenerator[RemoteGateway, None]:
    gw = RemoteGateway(BASE_URL, credentials=credentials, transport=ASGITransport(app=server))
    yield gw
    await gw.aclose()


def _refuse(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


@pytest_asyncio.fixture
async def offline_gateway(credentials) -> AsyncGenerator[RemoteGateway, None]:
    gw = RemoteGateway(BASE_URL, credentials=credentials, transport=httpx.MockTransport(_refuse))
    yield gw
    await gw.aclose()


@pytest_asyncio.fixture
async def coordinator(store, gateway) -> AsyncGenerator[SyncCoordinator, None]:
    sync = SyncCoordinator(store, gateway)
    yield sync
    await sync.flush()
