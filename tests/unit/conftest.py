"""Pytest fixtures for in-process tests.

The environment is set before the application is imported so that settings
select the in-memory store and skip Redis.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Dict

os.environ["STORE_BACKEND"] = "memory"
os.environ["REDIS_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient

from services.shared import (
    Category,
    Nominee,
    UserProfile,
    VotingWindowConfig,
    get_current_timestamp,
)
from services.awards_api.store import InMemoryStore
from services.awards_api.voting import VotingService


# Voting window used throughout: deadline 2026-01-07 23:59:59 and live
# voting from 2025-10-01 00:00:00, both in UTC+8.
WINDOW = VotingWindowConfig.from_wall_clock(
    deadline="2026-01-07 23:59:59",
    live_voting_start="2025-10-01 00:00:00",
    lock_enabled=True,
    utc_offset_hours=8
)

BEFORE_LIVE = datetime(2025, 9, 15, 12, 0, tzinfo=timezone.utc)
DURING_LIVE = datetime(2025, 11, 15, 12, 0, tzinfo=timezone.utc)
AFTER_DEADLINE = datetime(2026, 1, 8, 0, 0, tzinfo=timezone.utc)

ADMIN_ID = "admin-1"


@pytest.fixture
def window() -> VotingWindowConfig:
    return WINDOW


@pytest.fixture
def store() -> InMemoryStore:
    """In-memory store with three active categories, one inactive, and an admin.

    Categories (slug -> nominees):
    - game-of-the-year: nom-goty-1, nom-goty-2, nom-goty-3
    - best-indie: nom-indie-1, nom-indie-2
    - community-creator: nom-creator-1, nom-creator-2
    - retired-award (inactive): nom-retired-1
    """
    store = InMemoryStore()

    layout = [
        ("cat-goty", "game-of-the-year", "Game of the Year", True, ["nom-goty-1", "nom-goty-2", "nom-goty-3"]),
        ("cat-indie", "best-indie", "Best Indie Game", True, ["nom-indie-1", "nom-indie-2"]),
        ("cat-creator", "community-creator", "Community Creator", True, ["nom-creator-1", "nom-creator-2"]),
        ("cat-retired", "retired-award", "Retired Award", False, ["nom-retired-1"]),
    ]
    for order, (category_id, slug, name, active, nominee_ids) in enumerate(layout):
        store.categories[category_id] = Category(
            id=category_id,
            slug=slug,
            name=name,
            is_active=active,
            display_order=order
        )
        for position, nominee_id in enumerate(nominee_ids):
            store.nominees[nominee_id] = Nominee(
                id=nominee_id,
                category_id=category_id,
                name=f"Nominee {nominee_id}",
                display_order=position
            )

    store.users[ADMIN_ID] = UserProfile(user_id=ADMIN_ID, display_name="Admin", is_admin=True)
    return store


@pytest.fixture
def service(store: InMemoryStore, window: VotingWindowConfig) -> VotingService:
    return VotingService(store, window)


@pytest.fixture
def alice() -> UserProfile:
    return UserProfile(user_id="user-alice", display_name="Alice")


@pytest.fixture
def bob() -> UserProfile:
    return UserProfile(user_id="user-bob", display_name="Bob")


@pytest.fixture
def admin(store: InMemoryStore) -> UserProfile:
    return store.users[ADMIN_ID]


# HTTP fixtures

@pytest.fixture
def open_window() -> VotingWindowConfig:
    """Window in live voting at the real current time."""
    now = get_current_timestamp()
    return VotingWindowConfig(
        deadline=now + timedelta(days=30),
        live_voting_start=now - timedelta(days=1),
        lock_enabled=True
    )


@pytest.fixture
def client(store: InMemoryStore, open_window: VotingWindowConfig):
    """Test client over the seeded store, with voting open.

    Tests can replace app.state.voting_config to move the window.
    """
    from services.awards_api.main import app, limiter

    limiter.reset()
    original_config = app.state.voting_config
    app.state.store = store
    app.state.voting_config = open_window
    app.state.results_cache = None

    with TestClient(app) as test_client:
        yield test_client

    app.state.voting_config = original_config
    app.state.store = None
    app.state.results_cache = None


def user_headers(user_id: str, name: str = "Test User") -> Dict[str, str]:
    return {"X-User-Id": user_id, "X-User-Name": name}


@pytest.fixture
def alice_headers() -> Dict[str, str]:
    return user_headers("user-alice", "Alice")


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return user_headers(ADMIN_ID, "Admin")
