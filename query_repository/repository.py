"""기본 레포지토리 — 테이블별 레포지토리의 부모 클래스.

Base Repository — Parent class for per-table repositories.
Extends QueryBuilder with helpers that bind a mapping of column values in one
call and execute CRUD statements, plus read/create/modify/destroy entry points
bound to the subclass's table.

Usage:
    class UserRepository(Repository):
        table_name = "users"
        table_alias = "u"

    repo = UserRepository({"driver": "pdo_pgsql", "host": "localhost", "dbname": "app"})
    await repo.create({"name": "Alice", "email": "alice@example.com"}).execute()
    rows = await repo.read(["id", "name"]).where("u.name = :name").set_parameter("name", "Alice").get()
"""

from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy.sql.elements import BindParameter

from query_repository.data_types import resolve_type
from query_repository.database import get_connection
from query_repository.query_builder import Connection, QueryBuilder
from query_repository.utils.exceptions import TableNotDefinedError
from query_repository.utils.pagination import Page, paginate


class Repository(QueryBuilder):
    """쿼리 빌더 기반 CRUD 레포지토리.

    CRUD repository built on the query builder. Subclasses define the table
    they manage through the table_name (and optionally table_alias) class
    attributes.

    Attributes:
        table_name: 관리 대상 테이블 이름 (Name of the table in use)
        table_alias: JOIN 등에 사용할 기본 테이블 별칭 (Default table alias for joins)
        connection_params: 연결 파라미터 묶음 (Connection parameter bag)
        data_types: 컬럼별 데이터 타입 이름 (Column → data type name)
        statement_params: 내부 바인딩용 키-값 (Key → value used for internal binds)
    """

    table_name: str | None = None
    table_alias: str | None = None

    def __init__(self, connection_params: Mapping[str, Any] | None = None) -> None:
        """레포지토리를 초기화합니다.

        Initialize the repository. Without connection parameters no connection
        is set; provide one later with set_connection().

        Args:
            connection_params: 연결 파라미터, 예: {"url": "sqlite+aiosqlite:///app.db"}
                               (Connection parameters, e.g. {"url": "sqlite+aiosqlite:///app.db"})
        """
        self.connection_params: dict[str, Any] = dict(connection_params or {})
        self.data_types: dict[str, Any] = {}
        self.statement_params: dict[str, Any] = {}
        # use_colon=False로 만든 바인드 — Positional binds by column, typed at execute()
        self._positional_binds: dict[str, BindParameter[Any]] = {}

        connection: Connection | None = None
        if self.connection_params:
            connection = get_connection(self.connection_params)
        super().__init__(connection)

    def set_connection(self, connection: Connection) -> "Repository":
        """기존 연결을 지정합니다.

        Use a pre-existing engine, connection or session. With a connection or
        session the caller owns the transaction.
        """
        self.connection = connection
        return self

    async def get(self) -> list[dict[str, Any]]:
        """쿼리를 실행하고 모든 행을 반환합니다.

        Execute the query and return all rows.

        Returns:
            list[dict[str, Any]]: 컬럼→값 딕셔너리 목록 (List of column → value dicts)
        """
        result = await self.execute_query()
        return [dict(row) for row in result.mappings().all()]

    async def get_first(self) -> dict[str, Any] | None:
        """쿼리를 실행하고 첫 번째 행만 반환합니다.

        Execute the query and return only the first row.

        Returns:
            dict[str, Any] | None: 첫 번째 행 또는 None (First row, or None when empty)
        """
        result = await self.execute_query()
        row = result.mappings().first()
        return dict(row) if row is not None else None

    async def execute(self) -> int:
        """create/modify/destroy로 시작한 문장을 실행합니다.

        Execute a statement initialized by create, modify or destroy. The
        accumulated statement_params and data_types are bound before execution,
        to named and positional placeholders alike, so set_types() may be
        called before or after the values are added.

        Returns:
            int: 영향받은 행 수 (Number of affected rows)
        """
        self.set_parameters(self.statement_params, self.data_types)
        for key, bind in self._positional_binds.items():
            if key in self.data_types:
                bind.type = resolve_type(self.data_types[key])
        return await self.execute_statement()

    def set_types(self, types: Mapping[str, Any]) -> "Repository":
        """바인딩할 데이터의 타입을 지정합니다.

        Set the types of the values bound by execute(), replacing earlier ones,
        e.g. {"name": "string", "created_at": "datetime"}.

        Raises:
            UnknownTypeError: 등록되지 않은 타입 이름 (Unregistered type name)
        """
        # 잘못된 타입 이름은 실행 시점이 아닌 지금 검출 — Reject unknown names up front
        for type_ in types.values():
            resolve_type(type_)
        self.data_types = dict(types)
        return self

    def add_values(self, data: Mapping[str, Any], use_colon: bool = True) -> "Repository":
        """INSERT 문에 컬럼 값을 일괄 바인딩합니다.

        Prepare the values of an INSERT statement, one placeholder and one
        bound parameter per key.

        Args:
            data: 컬럼→값 매핑 (Column → value mapping)
            use_colon: True면 ":컬럼" 이름 있는 플레이스홀더, False면 위치 기반
                       (True for ":column" named placeholders, False for positional ones)
        """
        for key, val in data.items():
            self.statement_params[key] = val
            self.set_value(key, self._placeholder(key, val, use_colon))
        return self

    def set_values(self, data: Mapping[str, Any], use_colon: bool = True) -> "Repository":
        """UPDATE 문의 SET 절에 컬럼 값을 일괄 바인딩합니다.

        Prepare the SET clause of an UPDATE statement, one placeholder and one
        bound parameter per key. Should not be used within updates with joins.

        Args:
            data: 컬럼→값 매핑 (Column → value mapping)
            use_colon: True면 ":컬럼" 이름 있는 플레이스홀더, False면 위치 기반
                       (True for ":column" named placeholders, False for positional ones)
        """
        for key, val in data.items():
            self.statement_params[key] = val
            self.set(key, self._placeholder(key, val, use_colon))
        return self

    def _placeholder(self, key: str, value: Any, use_colon: bool) -> Any:
        if use_colon:
            return f":{key}"
        bind = self.create_positional_parameter(value, self.data_types.get(key))
        self._positional_binds[key] = bind
        return bind

    def read(self, columns: Sequence[str] = ("*",), table_alias: str | None = None) -> "Repository":
        """테이블에서 데이터를 조회하는 SELECT를 시작합니다.

        Start a SELECT on the repository's table.

        Args:
            columns: 조회할 컬럼 목록 (Columns to select, default: all)
            table_alias: 테이블 별칭, None이면 클래스 기본값 (Table alias; class default when None)

        Raises:
            TableNotDefinedError: table_name이 없는 경우 (table_name not defined)
        """
        table_name: str = self._require_table()
        if isinstance(columns, str):
            columns = [columns]
        self._start_statement()
        self.select(*columns).from_(table_name, table_alias or self.table_alias)
        return self

    def create(self, data: Mapping[str, Any]) -> "Repository":
        """새 레코드를 생성하는 INSERT를 준비합니다.

        Prepare an INSERT of a new record into the repository's table.
        Run it with execute().

        Raises:
            TableNotDefinedError: table_name이 없는 경우 (table_name not defined)
        """
        table_name: str = self._require_table()
        self._start_statement()
        self.insert(table_name)
        return self.add_values(data)

    def modify(self, data: Mapping[str, Any], table_alias: str | None = None) -> "Repository":
        """컬럼 값을 수정하는 UPDATE를 준비합니다.

        Prepare an UPDATE of a set of columns. Always narrow it with where
        clauses before execute(), otherwise every row is updated.

        Raises:
            TableNotDefinedError: table_name이 없는 경우 (table_name not defined)
        """
        table_name: str = self._require_table()
        self._start_statement()
        self.update(table_name, table_alias or self.table_alias)
        return self.set_values(data)

    def destroy(self, table_alias: str | None = None) -> "Repository":
        """레코드를 삭제하는 DELETE를 준비합니다.

        Prepare a DELETE on the repository's table. Always narrow it with
        where clauses before execute(), otherwise every row is deleted.

        Raises:
            TableNotDefinedError: table_name이 없는 경우 (table_name not defined)
        """
        table_name: str = self._require_table()
        self._start_statement()
        self.delete(table_name, table_alias or self.table_alias)
        return self

    async def paginate(self, page: int = 1, per_page: int = 20) -> Page:
        """현재 SELECT를 페이지 단위로 조회 — Fetch one page of the current SELECT."""
        return await paginate(self, page=page, per_page=per_page)

    def reset(self) -> "Repository":
        """쿼리 구성, 파라미터, 바인딩 값과 타입을 모두 초기화합니다.

        Clear query parts, parameters, statement_params and data_types.
        """
        self._start_statement()
        self.data_types = {}
        return self

    def _start_statement(self) -> None:
        # 새 문장 시작 — 이전 문장의 구성/바인딩 제거 (data_types는 유지)
        # Start a new statement; data_types carry over
        super().reset()
        self.statement_params = {}
        self._positional_binds = {}

    def _require_table(self) -> str:
        if not self.table_name:
            raise TableNotDefinedError(f"{type(self).__name__}.table_name is not defined")
        return self.table_name
