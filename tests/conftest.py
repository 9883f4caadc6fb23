"""Pytest configuration and fixtures for the automation engine.

Tests run on the in-memory backend. `harness` wires the real services over
in-memory repositories and collaborators (see tests/helpers.py); `client`
drives a fresh app, lifespan included, through httpx ASGITransport.
"""

import os

import pytest
from httpx import ASGITransport, AsyncClient

# Must be set before app.main is imported (it builds the app at import time).
os.environ["DATABASE_BACKEND"] = "memory"

from app.core.config import get_settings  # noqa: E402
from app.main import create_app  # noqa: E402
from tests.helpers import TENANT, Harness, build_harness, sample_lead  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_settings():
    """Each test reads settings from the current environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def harness() -> Harness:
    return build_harness()


@pytest.fixture
def lead() -> dict:
    return sample_lead()


@pytest.fixture
async def app():
    """Fresh FastAPI app with its lifespan running (services on app.state)."""
    application = create_app()
    async with application.router.lifespan_context(application):
        yield application


@pytest.fixture
async def client(app) -> AsyncClient:
    """Async HTTP client against the app, sending the test tenant header."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-Tenant-ID": TENANT},
    ) as ac:
        yield ac
