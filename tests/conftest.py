"""Shared fixtures: a throwaway SQLite pool per test and helpers to populate it."""

import os

os.environ.setdefault("JWT_SECRET", "test-jwt-secret-that-is-at-least-32-chars")
os.environ.setdefault("ADMIN_SECRET", "test-admin-secret-0123")
os.environ.setdefault("API_KEY", "sk-test")

import sqlite3
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import pytest

from promptpool.db import database
from promptpool.db.pool_store import PoolStore
from promptpool.db.users import UserSources
from promptpool.models.prompt import normalize_text

USER_ID = "user-1"
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "pool.db"
    conn = sqlite3.connect(path)
    conn.executescript(database.SCHEMA_PATH.read_text())
    conn.execute(
        "INSERT INTO users (id, full_name, timezone, onboard_complete, created_at) VALUES (?, ?, ?, ?, ?)",
        (USER_ID, "Pat Doe", "UTC", 1, NOW.isoformat()),
    )
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def connect(db_path):
    @asynccontextmanager
    async def _connect():
        db = await database.connect_sqlite(str(db_path))
        try:
            yield db
        finally:
            await db.close()

    return _connect


@pytest.fixture
def store(connect):
    return PoolStore(connect)


@pytest.fixture
def users(connect):
    return UserSources(connect)


@pytest.fixture
def add_item(db_path):
    """Insert a pool row directly, bypassing generation. Returns the new id."""

    def _add(
        text,
        difficulty=50.0,
        category="genericVocab",
        times_used=0,
        last_used_at=None,
        last_score=None,
        user_id=USER_ID,
    ):
        item_id = uuid.uuid4().hex
        conn = sqlite3.connect(db_path)
        conn.execute(
            """INSERT INTO prompt_pool
               (id, owner_uid, text, normalized_text, category, difficulty,
                freq_norm, abstractness, length_scale, response_type_scale,
                semantic_distance_scale, times_used, last_used_at, last_score, created_at)
               VALUES (?, ?, ?, ?, ?, ?, 1, 2, 1, 1, 2, ?, ?, ?, ?)""",
            (
                item_id, user_id, text, normalize_text(text), category, difficulty,
                times_used,
                last_used_at.isoformat() if last_used_at else None,
                last_score,
                NOW.isoformat(),
            ),
        )
        conn.commit()
        conn.close()
        return item_id

    return _add


@pytest.fixture
def set_skill(db_path):
    def _set(category, score, user_id=USER_ID):
        conn = sqlite3.connect(db_path)
        conn.execute(
            "INSERT OR REPLACE INTO skill_scores (user_id, category, score, updated_at) VALUES (?, ?, ?, ?)",
            (user_id, category, score, NOW.isoformat()),
        )
        conn.commit()
        conn.close()

    return _set
