"""
Pytest fixtures for VidShare tests.
Provides a test database, a test client, and sample users and videos.

Uses a temporary SQLite database through the same `databases` layer as
production. Environment variables are set before anything imports config.
"""

import os
import tempfile
from pathlib import Path
from typing import AsyncGenerator

import pytest
import sqlalchemy as sa

# Set up test paths BEFORE importing config
_test_temp_dir = tempfile.mkdtemp()
TEST_DB_PATH = Path(_test_temp_dir) / "vidshare_test.db"
TEST_UPLOADS_DIR = Path(_test_temp_dir) / "uploads"

os.environ["VIDSHARE_TEST_MODE"] = "1"
os.environ["VIDSHARE_DATABASE_URL"] = f"sqlite:///{TEST_DB_PATH}"
os.environ["VIDSHARE_UPLOADS_DIR"] = str(TEST_UPLOADS_DIR)
os.environ["VIDSHARE_RATE_LIMIT_ENABLED"] = "false"
os.environ["VIDSHARE_AUDIT_LOG_ENABLED"] = "false"
os.environ["VIDSHARE_DB_CONNECT_MAX_ATTEMPTS"] = "1"
os.environ.pop("VIDSHARE_ADMIN_API_SECRET", None)

from api.database import (  # noqa: E402
    create_tables,
    database,
    metadata,
    new_id,
    notifications,
    users,
    utcnow,
    video_chapters,
    videos,
)
from api.identity import hash_password  # noqa: E402

create_tables()

ADMIN_HEADERS = {"X-Admin": "true"}


def auth_headers(user_id: str) -> dict:
    return {"X-User-Id": user_id}


@pytest.fixture(autouse=True)
def clean_tables():
    """Empty every table after each test."""
    yield
    engine = sa.create_engine(f"sqlite:///{TEST_DB_PATH}")
    with engine.begin() as conn:
        for table in reversed(metadata.sorted_tables):
            conn.execute(table.delete())
    engine.dispose()


@pytest.fixture(scope="function")
def test_storage() -> Path:
    """The uploads directory the app writes to, emptied after each test."""
    TEST_UPLOADS_DIR.mkdir(parents=True, exist_ok=True)
    yield TEST_UPLOADS_DIR
    for path in TEST_UPLOADS_DIR.iterdir():
        if path.is_file():
            path.unlink()


@pytest.fixture(scope="function")
async def test_database() -> AsyncGenerator:
    """Connect the shared database for store-level tests."""
    await database.connect()
    yield database
    await database.disconnect()


async def insert_user(db, email="creator@example.com", name="Creator", password="secret123", logo=""):
    user_id = new_id()
    await db.execute(
        users.insert().values(
            id=user_id,
            email=email,
            name=name,
            password_hash=hash_password(password),
            logo=logo,
            created_at=utcnow(),
        )
    )
    return {"id": user_id, "email": email, "name": name, "password": password, "logo": logo}


async def insert_video(db, creator_id, title="Test Video", **overrides):
    video_id = new_id()
    values = {
        "id": video_id,
        "title": title,
        "media_url": "http://testserver/uploads/1_test.mp4",
        "banner_url": None,
        "creator_id": creator_id,
        "creator_name": "Creator",
        "creator_logo": "",
        "description": "",
        "category": "other",
        "is_muted": False,
        "is_approved": True,
        "admin_mute_override": False,
        "visibility": "public",
        "views": 0,
        "created_at": utcnow(),
    }
    values.update(overrides)
    await db.execute(videos.insert().values(**values))
    return values


@pytest.fixture(scope="function")
async def sample_user(test_database) -> dict:
    """Create a sample creator account."""
    return await insert_user(test_database, logo="http://testserver/uploads/1_logo.png")


@pytest.fixture(scope="function")
async def other_user(test_database) -> dict:
    return await insert_user(test_database, email="other@example.com", name="Other")


@pytest.fixture(scope="function")
async def sample_video(test_database, sample_user) -> dict:
    """Create a sample approved public video owned by sample_user."""
    return await insert_video(test_database, sample_user["id"])


async def count_notifications(db, user_id: str) -> int:
    rows = await db.fetch_all(notifications.select().where(notifications.c.user_id == user_id))
    return len(rows)


async def count_chapters(db, video_id: str) -> int:
    rows = await db.fetch_all(video_chapters.select().where(video_chapters.c.video_id == video_id))
    return len(rows)


# ============================================================================
# Test Client Fixtures
# ============================================================================


@pytest.fixture(scope="function")
def client(test_storage):
    """
    Create a test client for the API.
    The app manages its own database connection through its lifespan.
    """
    from fastapi.testclient import TestClient

    from api.public import app

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client


@pytest.fixture(scope="function")
def registered_user(client) -> dict:
    """Register a creator through the API and return its summary plus password."""
    response = client.post(
        "/api/auth/register",
        json={"email": "creator@example.com", "name": "Creator", "password": "secret123"},
    )
    assert response.status_code == 201
    return {**response.json(), "password": "secret123"}


@pytest.fixture(scope="function")
def created_video(client, registered_user) -> dict:
    """Create a video through the API owned by registered_user."""
    response = client.post(
        "/api/videos",
        json={"title": "My First Video", "videoUrl": "http://testserver/uploads/1_first.mp4"},
        headers=auth_headers(registered_user["userId"]),
    )
    assert response.status_code == 201
    return response.json()
