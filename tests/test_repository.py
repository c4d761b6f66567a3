"""레포지토리 CRUD 테스트.

Repository CRUD tests — read/create/modify/destroy entry points, value binding
helpers, result fetching, and connection handling against SQLite.
"""

import json
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from query_repository import (
    ConnectionNotSetError,
    Repository,
    TableNotDefinedError,
    UnknownTypeError,
    transaction,
)
from query_repository.query_builder import QueryType
from tests.conftest import PostRepository, UserRepository


class TestRepositoryCreate:
    """레코드 생성 테스트."""

    async def test_create_inserts_row(self, users):
        """create + execute로 한 행 생성."""
        affected = await users.create({"name": "Dave", "email": "dave@example.com"}).execute()
        assert affected == 1

        rows = await users.read(["name", "email"]).get()
        assert rows == [{"name": "Dave", "email": "dave@example.com"}]

    async def test_add_values_one_placeholder_per_key(self):
        """키마다 플레이스홀더 하나와 바인딩 값 하나."""
        repo = UserRepository()
        repo.create({"name": "Dave", "email": "dave@example.com"})

        assert repo.statement_params == {"name": "Dave", "email": "dave@example.com"}
        assert repo.get_sql() == "INSERT INTO users (name, email) VALUES (:name, :email)"

    async def test_add_values_positional(self, users):
        """use_colon=False이면 값을 직접 담은 위치 기반 파라미터로 바인딩."""
        users.insert("users").add_values({"name": "Eve"}, use_colon=False)
        assert users.statement_params == {"name": "Eve"}
        # 이름 있는 파라미터 없이도 문장이 값을 보유
        assert users.get_parameters() == {}
        assert users.get_statement().compile().params == {"name": "Eve"}

        affected = await users.execute()
        assert affected == 1
        assert await users.read(["name"]).get_first() == {"name": "Eve"}

    async def test_add_values_named_needs_parameters(self, users):
        """use_colon=True이면 execute 전까지 값이 바인딩되지 않음."""
        users.create({"name": "Eve"})
        assert users.get_statement().compile().params == {"name": None}

        assert await users.execute() == 1
        assert users.get_statement().compile().params == {"name": "Eve"}

    async def test_positional_types_set_afterwards(self, users):
        """위치 기반 값 추가 후 set_types로 지정한 타입도 적용."""
        users.create({"name": "Late"})
        users.add_values({"payload": {"a": 1}}, use_colon=False)
        users.set_types({"payload": "json"})
        assert await users.execute() == 1

        row = await users.read(["name", "payload"]).get_first()
        assert row is not None
        assert row["name"] == "Late"
        assert json.loads(row["payload"]) == {"a": 1}

    async def test_create_with_json_type(self, users):
        """set_types로 지정한 JSON 타입으로 직렬화."""
        affected = await (
            users.set_types({"payload": "json"})
            .create({"name": "Json", "payload": {"a": 1, "tags": ["x"]}})
            .execute()
        )
        assert affected == 1

        row = await users.read(["payload"]).get_first()
        assert row is not None
        assert json.loads(row["payload"]) == {"a": 1, "tags": ["x"]}

    async def test_execute_forwards_params_and_types(self, users):
        """execute가 누적된 파라미터/타입을 그대로 전달."""
        users.set_types({"name": "string", "payload": "json"})
        users.create({"name": "Typed", "payload": [1, 2]})
        await users.execute()

        assert users.get_parameters() == {"name": "Typed", "payload": [1, 2]}
        assert set(users.get_parameter_types()) == {"name", "payload"}

    async def test_create_without_table(self):
        """table_name 없이 create 시 예외."""
        with pytest.raises(TableNotDefinedError):
            Repository().create({"name": "x"})


class TestRepositoryRead:
    """레코드 조회 테스트."""

    async def test_get_all_rows(self, users, seeded):
        """모든 행을 딕셔너리 목록으로 조회."""
        rows = await users.read(["id", "name"]).order_by("id").get()
        assert rows == [
            {"id": 1, "name": "Alice"},
            {"id": 2, "name": "Bob"},
            {"id": 3, "name": "Carol"},
        ]

    async def test_get_default_columns(self, users, seeded):
        """컬럼 미지정 시 전체 컬럼 조회."""
        row = await users.read().where("id = :id").set_parameter("id", 2).get_first()
        assert row is not None
        assert row["name"] == "Bob"
        assert row["email"] == "bob@example.com"

    async def test_get_with_where_parameter(self, users, seeded):
        """WHERE 조건과 파라미터 바인딩."""
        rows = await (
            users.read(["name"])
            .where("email IS NOT NULL")
            .and_where("name <> :excluded")
            .set_parameter("excluded", "Alice")
            .get()
        )
        assert rows == [{"name": "Bob"}]

    async def test_get_first(self, users, seeded):
        """첫 번째 행만 반환."""
        row = await users.read(["name"]).order_by("name", "DESC").get_first()
        assert row == {"name": "Carol"}

    async def test_get_first_empty(self, users):
        """결과가 없으면 None."""
        assert await users.read(["name"]).get_first() is None

    async def test_read_with_default_alias(self, posts, seeded):
        """클래스 기본 별칭으로 조회."""
        rows = await (
            posts.read(["title"])
            .where("p.user_id = :user_id")
            .set_parameter("user_id", 1)
            .order_by("p.id")
            .get()
        )
        assert rows == [{"title": "Hello"}, {"title": "Again"}]
        assert "FROM posts AS p" in posts.get_sql()

    async def test_read_with_join(self, users, seeded):
        """별칭 기반 JOIN 조회."""
        rows = await (
            users.read(["title"], "u")
            .inner_join("u", "posts", "p", "p.user_id = u.id")
            .where("u.name = :name")
            .set_parameter("name", "Alice")
            .order_by("p.id")
            .get()
        )
        assert rows == [{"title": "Hello"}, {"title": "Again"}]

    async def test_read_resets_previous_statement(self, users):
        """read가 이전 문장의 구성과 바인딩 값을 초기화."""
        users.create({"name": "Old"}).where("ignored = 1")
        users.read(["name"])

        assert users.statement_params == {}
        assert users.get_type() is QueryType.SELECT
        assert "WHERE" not in users.get_sql()

    async def test_read_without_connection(self):
        """연결 없이 실행 시 예외."""
        with pytest.raises(ConnectionNotSetError):
            await UserRepository().read(["name"]).get()


class TestRepositoryModify:
    """레코드 수정 테스트."""

    async def test_modify_with_where(self, users, seeded):
        """WHERE로 제한된 UPDATE."""
        affected = await (
            users.modify({"email": "bob@new.example.com"})
            .where("id = :id")
            .set_parameter("id", 2)
            .execute()
        )
        assert affected == 1

        row = await users.read(["email"]).where("id = :id").set_parameter("id", 2).get_first()
        assert row == {"email": "bob@new.example.com"}

    async def test_modify_multiple_rows(self, users, seeded):
        """여러 행 UPDATE 시 영향받은 행 수 반환."""
        affected = await users.modify({"email": None}).where("id < 3").execute()
        assert affected == 2

    async def test_set_values_sql(self):
        """set_values가 SET 절에 플레이스홀더를 추가."""
        repo = UserRepository()
        repo.modify({"name": "Zed"}).where("id = :id")

        assert repo.statement_params == {"name": "Zed"}
        assert repo.get_sql() == "UPDATE users SET name=:name WHERE id = :id"

    async def test_set_values_positional(self, users, seeded):
        """위치 기반 SET 바인딩."""
        users.modify({"name": "Robert"}).where("id = 2")
        users.set_values({"email": "robert@example.com"}, use_colon=False)
        assert await users.execute() == 1

        row = await users.read(["name", "email"]).where("id = 2").get_first()
        assert row == {"name": "Robert", "email": "robert@example.com"}

    async def test_modify_with_alias_sql(self):
        """별칭이 있는 UPDATE 구성."""
        sql = PostRepository().modify({"title": "T"}).where("p.id = :id").get_sql()
        assert "posts AS p" in sql
        assert "title=:title" in sql

    async def test_modify_with_default_alias(self, posts, seeded):
        """클래스 기본 별칭으로 UPDATE 실행."""
        affected = await posts.modify({"title": "Edited"}).where("p.id = :id").set_parameter("id", 2).execute()
        assert affected == 1

        rows = await posts.read(["title"]).order_by("p.id").get()
        assert rows == [{"title": "Hello"}, {"title": "Edited"}]


class TestRepositoryDestroy:
    """레코드 삭제 테스트."""

    async def test_destroy_with_where(self, users, seeded):
        """WHERE로 제한된 DELETE."""
        affected = await users.destroy().where("name = :name").set_parameter("name", "Carol").execute()
        assert affected == 1
        assert len(await users.read(["id"]).get()) == 2

    async def test_destroy_with_default_alias(self, posts, seeded):
        """클래스 기본 별칭으로 DELETE 실행."""
        affected = await posts.destroy().where("p.id = :id").set_parameter("id", 1).execute()
        assert affected == 1

        assert await posts.read(["id"]).get() == [{"id": 2}]

    async def test_destroy_sql(self):
        """DELETE 문 구성."""
        assert UserRepository().destroy().where("id = :id").get_sql() == "DELETE FROM users WHERE id = :id"


class TestRepositoryTypes:
    """데이터 타입 지정 테스트."""

    async def test_set_types_replaces(self, users):
        """set_types는 기존 타입을 대체."""
        users.set_types({"name": "string"}).set_types({"created_at": "datetime"})
        assert users.data_types == {"created_at": "datetime"}

    async def test_set_types_unknown(self, users):
        """알 수 없는 타입 이름은 즉시 예외."""
        with pytest.raises(UnknownTypeError):
            users.set_types({"name": "strng"})

    async def test_types_survive_new_statement(self, users):
        """새 문장 시작 시 타입 선언은 유지."""
        users.set_types({"payload": "json"}).create({"name": "A"})
        assert users.data_types == {"payload": "json"}

    async def test_reset_clears_everything(self, users):
        """reset은 타입까지 모두 초기화."""
        users.set_types({"payload": "json"}).create({"name": "A"}).set_parameter("x", 1)
        users.reset()

        assert users.data_types == {}
        assert users.statement_params == {}
        assert users.get_parameters() == {}


class TestRepositoryPagination:
    """카운트/페이지네이션 테스트."""

    async def test_count(self, users, seeded):
        """조건에 맞는 행 수."""
        assert await users.read(["id"]).count() == 3
        assert await users.read(["id"]).where("email IS NULL").count() == 1

    async def test_paginate(self, users, seeded):
        """페이지 단위 조회."""
        page = await users.read(["name"]).order_by("id").paginate(page=1, per_page=2)
        assert page.total == 3
        assert page.pages == 2
        assert page.items == [{"name": "Alice"}, {"name": "Bob"}]

        page = await users.read(["name"]).order_by("id").paginate(page=2, per_page=2)
        assert page.items == [{"name": "Carol"}]


class TestRepositoryConnection:
    """연결 처리 테스트."""

    async def test_connection_params(self, engine, db_path: Path, seeded):
        """연결 파라미터로 엔진 생성."""
        repo = UserRepository({"driver": "pdo_sqlite", "path": str(db_path)})

        assert isinstance(repo.connection, AsyncEngine)
        assert repo.connection_params == {"driver": "pdo_sqlite", "path": str(db_path)}
        assert len(await repo.read(["id"]).get()) == 3

    async def test_no_connection_params(self):
        """파라미터 없으면 연결 미설정."""
        assert UserRepository().connection is None

    async def test_transaction_commit(self, engine, users):
        """트랜잭션 연결 공유 후 커밋."""
        async with transaction(engine) as conn:
            repo = UserRepository().set_connection(conn)
            await repo.create({"name": "Tx"}).execute()

        assert await users.read(["name"]).get() == [{"name": "Tx"}]

    async def test_transaction_rollback(self, engine, users):
        """예외 발생 시 롤백."""
        with pytest.raises(RuntimeError):
            async with transaction(engine) as conn:
                repo = UserRepository().set_connection(conn)
                await repo.create({"name": "Lost"}).execute()
                raise RuntimeError("abort")

        assert await users.read(["name"]).get() == []

    async def test_async_session(self, engine, seeded):
        """AsyncSession으로 조회."""
        async with AsyncSession(engine) as session:
            repo = UserRepository().set_connection(session)
            rows = await repo.read(["name"]).where("id = 1").get()
            assert repo.get_sql() == "SELECT name \nFROM users \nWHERE id = 1"

        assert rows == [{"name": "Alice"}]
