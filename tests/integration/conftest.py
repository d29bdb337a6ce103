"""Pytest fixtures for integration tests.

This module provides shared fixtures for integration testing the awards API
against a running stack (API, PostgreSQL, Redis). Tests are skipped when the
API is not reachable at API_BASE_URL.
"""

import os
import uuid
from typing import AsyncGenerator, Callable, Dict, List

import asyncpg
import httpx
import pytest
import pytest_asyncio
import redis


@pytest.fixture(scope="session")
def base_url() -> str:
    """Base URL for the awards API."""
    return os.getenv("API_BASE_URL", "http://localhost:8000")


@pytest.fixture(scope="session")
def live_stack(base_url: str) -> Dict:
    """Skip unless the API answers its health check.

    Returns the voting status reported by the running service.
    """
    try:
        response = httpx.get(f"{base_url}/api/v1/health", timeout=2.0)
    except (httpx.ConnectError, httpx.ReadTimeout):
        pytest.skip(f"Awards API not reachable at {base_url}")
    if response.status_code != 200:
        pytest.skip(f"Awards API unhealthy: {response.text}")

    return httpx.get(f"{base_url}/api/v1/voting/status", timeout=2.0).json()


@pytest.fixture
def voting_open(live_stack: Dict):
    """Skip tests that need the public voting phase."""
    if live_stack["phase"] != "open":
        pytest.skip(f"Voting phase is {live_stack['phase']}, not open")


@pytest_asyncio.fixture
async def api_client(base_url: str, live_stack) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client for making API requests."""
    async with httpx.AsyncClient(base_url=base_url, timeout=10.0) as client:
        yield client


@pytest.fixture
def new_user() -> Callable[[], Dict[str, str]]:
    """Factory for identity headers of a fresh user.

    Every test votes as new users so no database cleanup is needed.
    """
    def _new_user(name: str = "Integration Tester") -> Dict[str, str]:
        return {
            "X-User-Id": f"it-{uuid.uuid4()}",
            "X-User-Name": name
        }

    return _new_user


@pytest_asyncio.fixture
async def categories(api_client: httpx.AsyncClient) -> List[Dict]:
    """Active categories with nominees, as served by the API."""
    response = await api_client.get("/api/v1/categories", params={"include_nominees": "true"})
    assert response.status_code == 200
    data = response.json()["categories"]
    if not data or not data[0]["nominees"]:
        pytest.skip("No categories seeded; run scripts/seed_awards.py first")
    return data


@pytest_asyncio.fixture
async def postgres_connection() -> AsyncGenerator[asyncpg.Connection, None]:
    """PostgreSQL connection for direct assertions and setup."""
    try:
        conn = await asyncpg.connect(
            host=os.getenv("POSTGRES_HOST", "localhost"),
            port=int(os.getenv("POSTGRES_PORT", "5432")),
            database=os.getenv("POSTGRES_DB", "awards_db"),
            user=os.getenv("POSTGRES_USER", "awards_user"),
            password=os.getenv("POSTGRES_PASSWORD", "awards_pass")
        )
    except (OSError, asyncpg.PostgresError) as e:
        pytest.skip(f"PostgreSQL not available: {e}")

    yield conn

    await conn.close()


@pytest.fixture(scope="session")
def redis_client():
    """Redis client for inspecting the results cache."""
    client = redis.Redis(
        host=os.getenv("REDIS_HOST", "localhost"),
        port=int(os.getenv("REDIS_PORT", "6379")),
        db=int(os.getenv("REDIS_DB", "0")),
        decode_responses=True
    )

    try:
        client.ping()
    except redis.ConnectionError:
        pytest.skip("Redis not available")

    yield client

    client.close()


@pytest_asyncio.fixture
async def admin_user(new_user, api_client, postgres_connection) -> Dict[str, str]:
    """Headers of a fresh user promoted to administrator in the database."""
    headers = new_user("Integration Admin")
    # First request creates the user row
    await api_client.get("/api/v1/ballot/status", headers=headers)
    await postgres_connection.execute(
        "UPDATE users SET is_admin = TRUE WHERE id = $1",
        headers["X-User-Id"]
    )
    return headers
