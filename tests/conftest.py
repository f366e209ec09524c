from typing import AsyncGenerator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from session_bridge.core.config import Settings
from session_bridge.main import create_app
from tests.helpers import TEST_ORIGIN, FakeBackend


@pytest.fixture
def settings() -> Settings:
    return Settings(
        ENVIRONMENT="local",
        BACKEND_URL="http://backend.test",
        AUTH_PROXY_PATH="/api/auth",
        AUTH_VERBOSE=True,
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def app(settings: Settings, backend: FakeBackend) -> FastAPI:
    return create_app(settings=settings, backend=backend)


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url=TEST_ORIGIN) as c:
        yield c
