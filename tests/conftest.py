"""테스트 인프라 — 임시 SQLite DB, 엔진, 레포지토리 픽스처.

Test infrastructure — Temporary SQLite DB, engine, and repository fixtures.
Each test gets its own database file under tmp_path, accessed through aiosqlite.
"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from query_repository import Repository, dispose_engines

SCHEMA = [
    """
    CREATE TABLE users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        email TEXT,
        payload TEXT,
        created_at TEXT
    )
    """,
    """
    CREATE TABLE posts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        title TEXT NOT NULL
    )
    """,
]


class UserRepository(Repository):
    """테스트용 사용자 레포지토리."""

    table_name = "users"


class PostRepository(Repository):
    """테스트용 게시글 레포지토리 — 기본 별칭 사용."""

    table_name = "posts"
    table_alias = "p"


# ---------------------------------------------------------------------------
# DB 파일, 엔진
# ---------------------------------------------------------------------------
@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """테스트별 SQLite 파일 경로."""
    return tmp_path / "test.db"


@pytest_asyncio.fixture
async def engine(db_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """스키마가 생성된 테스트용 async 엔진."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    async with eng.begin() as conn:
        for statement in SCHEMA:
            await conn.execute(text(statement))
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture(autouse=True)
async def _dispose_cached_engines() -> AsyncGenerator[None, None]:
    """테스트 후 캐시된 엔진을 정리합니다."""
    yield
    await dispose_engines()


# ---------------------------------------------------------------------------
# 헬퍼 픽스처: 레포지토리, 테스트 데이터
# ---------------------------------------------------------------------------
@pytest.fixture
def users(engine: AsyncEngine) -> UserRepository:
    """엔진이 연결된 사용자 레포지토리."""
    repo = UserRepository()
    repo.set_connection(engine)
    return repo


@pytest.fixture
def posts(engine: AsyncEngine) -> PostRepository:
    """엔진이 연결된 게시글 레포지토리."""
    repo = PostRepository()
    repo.set_connection(engine)
    return repo


@pytest_asyncio.fixture
async def seeded(engine: AsyncEngine) -> None:
    """사용자 3명과 게시글 2개를 생성합니다."""
    async with engine.begin() as conn:
        await conn.execute(
            text("INSERT INTO users (name, email) VALUES (:name, :email)"),
            [
                {"name": "Alice", "email": "alice@example.com"},
                {"name": "Bob", "email": "bob@example.com"},
                {"name": "Carol", "email": None},
            ],
        )
        await conn.execute(
            text("INSERT INTO posts (user_id, title) VALUES (:user_id, :title)"),
            [
                {"user_id": 1, "title": "Hello"},
                {"user_id": 1, "title": "Again"},
            ],
        )
