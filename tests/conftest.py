"""Test configuration and fixtures."""

import os

import aiohttp
import pytest
import pytest_asyncio
from aiohttp.test_utils import TestServer

from registry_rootfs.utils.security import SecurityLogger
from tests.helpers import FakeRegistry


@pytest_asyncio.fixture
async def fake_registry():
    """Start an in-process registry and token endpoint."""
    registry = FakeRegistry()
    server = TestServer(registry.make_app())
    await server.start_server()
    registry.host = f"{server.host}:{server.port}"
    yield registry
    await server.close()


@pytest.fixture
def registry_config(fake_registry, tmp_path):
    """Configuration pointing at the fake registry."""
    return fake_registry.config(tmp_path)


@pytest_asyncio.fixture
async def session():
    """Plain aiohttp session."""
    async with aiohttp.ClientSession() as s:
        yield s


@pytest.fixture
def audit(tmp_path):
    """Security logger writing into the test directory."""
    return SecurityLogger(tmp_path / "security.log")


# Pytest configuration
def pytest_configure(config):
    """Configure pytest markers and settings."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test requiring registry"
    )


def pytest_collection_modifyitems(config, items):
    """Skip tests against a real registry unless explicitly enabled."""
    skip_integration = pytest.mark.skip(reason="Real registry access not enabled")

    for item in items:
        if (
            "integration" in item.keywords
            and os.getenv("REGISTRY_AVAILABLE", "false").lower() != "true"
        ):
            item.add_marker(skip_integration)
