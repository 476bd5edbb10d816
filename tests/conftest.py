"""Test configuration and fixtures for Shutterlink.

This module provides isolated test environments:
- Temporary database (SQLite) per test
- A controllable clock shared by every service
- Fast bcrypt and a fixed encryption key
"""
import io
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from shutterlink.container import AppContainer, ServiceSet, build_container
from shutterlink.database import connect, init_db
from shutterlink.domain.models import Principal
from shutterlink.infrastructure.services import (
    BcryptHasher, FieldEncryptor, InMemoryBroadcaster, LoggingNotifier,
)

TEST_ENCRYPTION_KEY = "test-encryption-key-0123456789abcdef"
TEST_JWT_SECRET = "test-jwt-secret-0123456789abcdef"
START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

ADMIN_PASSWORD = "AdminPass123!"
PHOTOGRAPHER_PASSWORD = "StudioPass123!"


class FakeClock:
    """Clock that only moves when a test tells it to."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> datetime:
        self.now = now
        return now


def make_image_bytes(color: str = "red", size: tuple[int, int] = (64, 48), fmt: str = "JPEG") -> bytes:
    """Create a small valid image in memory."""
    from PIL import Image

    img = Image.new("RGB", size, color=color)
    img_bytes = io.BytesIO()
    img.save(img_bytes, format=fmt)
    return img_bytes.getvalue()


@pytest.fixture(scope="function")
def db_path(tmp_path: Path) -> Path:
    """Fresh database file with schema for each test."""
    path = tmp_path / "test.db"
    conn = connect(path)
    try:
        init_db(conn)
    finally:
        conn.close()
    return path


@pytest.fixture(scope="function")
def conn(db_path: Path):
    connection = connect(db_path)
    yield connection
    connection.close()


@pytest.fixture(scope="function")
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="function")
def container(clock: FakeClock) -> AppContainer:
    """Container with fast hashing and deterministic keys."""
    container = build_container(
        hasher=BcryptHasher(rounds=4),
        encryptor=FieldEncryptor(TEST_ENCRYPTION_KEY),
        notifier=LoggingNotifier(),
        broadcaster=InMemoryBroadcaster(),
        clock=clock,
        jwt_secret=TEST_JWT_SECRET,
    )
    container.broadcaster.start()
    yield container
    container.broadcaster.stop()


@pytest.fixture(scope="function")
def services(container: AppContainer, conn) -> ServiceSet:
    return container.services(conn)


@pytest.fixture(scope="function")
def admin(services: ServiceSet) -> Principal:
    return services.identity.create_admin("root-admin", ADMIN_PASSWORD)


@pytest.fixture(scope="function")
def photographer(services: ServiceSet, admin: Principal) -> Principal:
    return services.identity.create_photographer(
        admin, "studio-north", PHOTOGRAPHER_PASSWORD, "Studio North", "studio@example.com"
    )


@pytest.fixture(scope="function")
def other_photographer(services: ServiceSet, admin: Principal) -> Principal:
    return services.identity.create_photographer(
        admin, "studio-south", PHOTOGRAPHER_PASSWORD, "Studio South"
    )


@pytest.fixture(scope="function")
def client_account(services: ServiceSet, photographer: Principal) -> tuple[Principal, str]:
    """A client of ``photographer`` with its generated secret."""
    return services.identity.create_client(photographer, "Alice", "alice@example.com")


@pytest.fixture(scope="function")
def image_bytes() -> bytes:
    return make_image_bytes()


@pytest.fixture(scope="function")
def collection(services: ServiceSet, photographer: Principal) -> dict:
    return services.catalog.create_collection(photographer, "Wedding", "Summer wedding")


@pytest.fixture(scope="function")
def photo(services: ServiceSet, photographer: Principal, collection: dict, image_bytes: bytes) -> dict:
    return services.catalog.create_photo(
        photographer, collection["id"], image_bytes, "image/jpeg", ["ceremony"], "First dance"
    )


@pytest.fixture(scope="function")
def api_client(db_path: Path, container: AppContainer, monkeypatch) -> Generator[TestClient, None, None]:
    """Create test client bound to the isolated database.

    Usage:
        def test_something(api_client):
            response = api_client.get("/share/...")
    """
    import shutterlink.database as db_module
    from shutterlink.main import create_app

    monkeypatch.setattr(db_module, "DATABASE_PATH", db_path)
    app = create_app(container, scheduler_enabled=False)

    with TestClient(app) as test_client:
        yield test_client
