import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from fake_backend import FakeBackend, FakeClock

from jobconsole.cache import QueryCache
from jobconsole.client import get_queries
from jobconsole.gateway import JobGateway
from jobconsole.main import app as fastapi_app
from jobconsole.queries import JobQueries


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def gateway(backend):
    async with httpx.AsyncClient(transport=backend.transport(), base_url="http://backend") as http:
        yield JobGateway(client=http)


@pytest.fixture
def queries(gateway, clock):
    return JobQueries(gateway, QueryCache(clock=clock))


@pytest.fixture
async def client(queries):
    fastapi_app.dependency_overrides[get_queries] = lambda: queries
    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://testserver") as ac:
        yield ac
    fastapi_app.dependency_overrides.clear()
