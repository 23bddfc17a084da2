"""
tests/conftest.py

Pytest configuration and shared fixtures for the HERA Universal API test
suite.

No test talks to Supabase: the RPC gateway (``hera_api.db.call_rpc``) is
patched per test, and the environment is filled with dummy credentials
before anything under ``hera_api`` is imported.
"""

from __future__ import annotations

import os
import uuid
from typing import Generator
from unittest.mock import AsyncMock, patch

import pytest

TEST_API_KEY = "test-hera-api-key-12345"
TEST_ORG_ID = "3df8cc52-3d81-42d5-b088-7736ae26cc7c"
TEST_ACTOR_ID = "9a1f6d2e-4c0b-4f53-8e7a-2b5c8d1e0f34"


# =============================================================================
# GLOBAL TEST CONFIGURATION
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """
    Global pytest configuration.

    Runs BEFORE any test collection, so settings built at import time see
    these values. Real env files are ignored.
    """
    config.addinivalue_line(
        "markers",
        "integration: marks tests as requiring a live Supabase project",
    )

    os.environ["ENV_FILE"] = os.path.join(os.path.dirname(__file__), ".env.does-not-exist")
    os.environ.setdefault("SUPABASE_URL", "https://hera-test.supabase.co")
    os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-" + "x" * 120)
    os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-with-enough-length-0123456789")
    os.environ["HERA_API_KEY"] = TEST_API_KEY
    os.environ["ENVIRONMENT"] = "dev"
    os.environ["LOG_LEVEL"] = "WARNING"
    os.environ["RPC_MAX_ATTEMPTS"] = "2"


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def _fresh_settings() -> Generator[None, None, None]:
    """Settings and the Supabase client are cached; rebuild them per test."""
    from hera_api.config import reset_settings
    from hera_api.db import reset_supabase_client

    reset_settings()
    reset_supabase_client()
    yield
    reset_settings()
    reset_supabase_client()


@pytest.fixture
def org_id() -> str:
    return TEST_ORG_ID


@pytest.fixture
def actor_id() -> str:
    return TEST_ACTOR_ID


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """API key auth with an actor and organization."""
    return {
        "X-API-Key": TEST_API_KEY,
        "X-Actor-User-Id": TEST_ACTOR_ID,
        "X-Organization-Id": TEST_ORG_ID,
    }


@pytest.fixture
def client():
    """TestClient over a fresh app; server errors come back as 500 responses."""
    from fastapi.testclient import TestClient

    from hera_api.main import create_app

    return TestClient(create_app(), raise_server_exceptions=False)


@pytest.fixture
def rpc() -> Generator[AsyncMock, None, None]:
    """Patch the RPC gateway; returns the mock so tests can inspect calls."""
    with patch("hera_api.db.call_rpc", new_callable=AsyncMock) as mock:
        mock.return_value = {"success": True, "entity_id": str(uuid.uuid4())}
        yield mock

