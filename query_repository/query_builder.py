"""SQL 쿼리 빌더 — SQLAlchemy Core 위의 가변 플루언트 빌더.

SQL Query Builder — A mutable, fluent builder on top of SQLAlchemy Core.

Builder calls only record query parts (columns, FROM entries, joins, WHERE
fragments, values, ...). The parts are assembled into a SQLAlchemy Core
statement when the statement is requested or executed, so SQL generation,
parameter binding and execution all stay with SQLAlchemy.

Conditions and column lists are SQL fragments; values are bound through named
placeholders (":name") whose values are supplied with set_parameter().

Usage:
    qb = QueryBuilder(engine)
    result = await (
        qb.select("id", "name")
        .from_("users", "u")
        .where("u.status = :status")
        .order_by("u.name")
        .set_max_results(10)
        .set_parameter("status", "active")
        .execute_query()
    )
"""

import logging
import re
from collections.abc import Mapping, MutableSet
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

import sqlalchemy as sa
from sqlalchemy.engine import Dialect, Result
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncSession
from sqlalchemy.sql import visitors
from sqlalchemy.sql.elements import BindParameter, ClauseElement
from sqlalchemy.types import TypeEngine

from query_repository.config import settings
from query_repository.data_types import resolve_type
from query_repository.utils.exceptions import ConnectionNotSetError, QueryBuilderError
from query_repository.utils.masking import mask_parameters

logger = logging.getLogger(__name__)

# 쿼리를 실행할 수 있는 연결 객체 — Objects the builder can execute statements on
Connection = Union[AsyncEngine, AsyncConnection, AsyncSession]

# ":name" 형태의 이름 있는 플레이스홀더 — Named placeholder such as ":email"
_NAMED_PLACEHOLDER = re.compile(r"^:(\w+)$")


class QueryType(Enum):
    """지원하는 쿼리 종류 — Supported statement types."""

    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class CompositeExpression:
    """AND/OR로 결합된 조건 묶음.

    A list of SQL condition fragments joined by AND or OR.
    Rendered with every part parenthesized when there is more than one,
    so mixing AND and OR keeps the intended precedence.
    """

    TYPE_AND = "AND"
    TYPE_OR = "OR"

    def __init__(self, type_: str, parts: list[Union[str, "CompositeExpression"]]) -> None:
        self.type: str = type_
        self.parts: list[Union[str, CompositeExpression]] = parts

    @classmethod
    def and_(cls, *parts: Union[str, "CompositeExpression"]) -> "CompositeExpression":
        return cls(cls.TYPE_AND, list(parts))

    @classmethod
    def or_(cls, *parts: Union[str, "CompositeExpression"]) -> "CompositeExpression":
        return cls(cls.TYPE_OR, list(parts))

    def with_(self, *parts: Union[str, "CompositeExpression"]) -> "CompositeExpression":
        """같은 결합 방식으로 조건을 추가한 새 묶음 — Copy with extra parts appended."""
        return CompositeExpression(self.type, [*self.parts, *parts])

    def __len__(self) -> int:
        return len(self.parts)

    def __str__(self) -> str:
        if len(self.parts) == 1:
            return str(self.parts[0])
        return "(" + f") {self.type} (".join(str(part) for part in self.parts) + ")"


@dataclass
class _Join:
    """JOIN 절 구성 요소 — One recorded JOIN clause."""

    kind: str
    table: str
    alias: str
    condition: str | None


def _table_clause(name: str, alias: str | None = None, columns: list[str] | None = None) -> Any:
    """경량 테이블 구성 — Lightweight table (optionally aliased) for statement assembly."""
    table = sa.table(name, *(sa.column(c) for c in columns or []))
    return table.alias(alias) if alias else table


def _value_expression(value: Any) -> Any:
    """값을 SQL 표현식으로 변환합니다.

    Convert a value given to set_value()/set() into a SQL expression:
    ":name" becomes a named bind parameter, any other string is a raw SQL
    fragment, clause elements pass through, and plain Python values become
    anonymous bind parameters.
    """
    if isinstance(value, ClauseElement):
        return value
    if isinstance(value, str):
        match = _NAMED_PLACEHOLDER.match(value)
        if match:
            return sa.bindparam(match.group(1))
        return sa.literal_column(value)
    return sa.literal(value)


def _require_conditions(
    method: str, conditions: tuple[Union[str, CompositeExpression], ...]
) -> tuple[Union[str, CompositeExpression], ...]:
    """빈 조건 거부 — An empty condition list would render as "()"."""
    if not conditions:
        raise QueryBuilderError(f"{method}() requires at least one condition")
    return conditions


def _predicate(
    method: str, conditions: tuple[Union[str, CompositeExpression], ...]
) -> Union[str, CompositeExpression]:
    """조건 하나는 그대로, 여럿은 AND로 결합 — One condition as is, several joined with AND."""
    conditions = _require_conditions(method, conditions)
    return conditions[0] if len(conditions) == 1 else CompositeExpression.and_(*conditions)


def _combine(
    current: Union[str, CompositeExpression, None],
    type_: str,
    conditions: tuple[Union[str, CompositeExpression], ...],
) -> Union[str, CompositeExpression]:
    """기존 조건에 새 조건을 AND/OR로 결합 — Fold conditions into an existing predicate."""
    if isinstance(current, CompositeExpression) and current.type == type_:
        return current.with_(*conditions)
    parts = (current, *conditions) if current is not None else conditions
    return CompositeExpression(type_, list(parts))


class QueryBuilder:
    """가변 플루언트 SQL 쿼리 빌더.

    Mutable fluent SQL query builder. Every builder method records a query
    part and returns self; parts persist until reset() or until they are
    replaced, so one instance can be adjusted and re-executed.

    Attributes:
        connection: 실행에 사용할 엔진/연결/세션 (Engine, connection or session used for execution)
    """

    def __init__(self, connection: Connection | None = None) -> None:
        """쿼리 빌더를 초기화합니다.

        Initialize the builder.

        Args:
            connection: 실행에 사용할 엔진/연결/세션, 나중에 지정 가능
                        (Engine, connection or session; may be provided later)
        """
        self.connection: Connection | None = connection
        self._parameters: dict[str, Any] = {}
        self._parameter_types: dict[str, TypeEngine[Any]] = {}
        self._bound_counter: int = 0
        self._reset_parts()

    def _reset_parts(self) -> None:
        self._type: QueryType = QueryType.SELECT
        self._select: list[str] = []
        self._distinct: bool = False
        self._from: list[tuple[str, str | None]] = []
        self._joins: dict[str, list[_Join]] = {}
        self._where: Union[str, CompositeExpression, None] = None
        self._group_by: list[str] = []
        self._having: Union[str, CompositeExpression, None] = None
        self._order_by: list[tuple[str, str | None]] = []
        self._table: str | None = None
        self._table_alias: str | None = None
        self._values: dict[str, Any] = {}
        self._set: dict[str, Any] = {}
        self._first_result: int = 0
        self._max_results: int | None = None

    def reset(self) -> "QueryBuilder":
        """모든 쿼리 구성 요소와 파라미터를 초기화합니다.

        Clear every query part and all bound parameters. The connection is kept.
        """
        self._reset_parts()
        self._parameters = {}
        self._parameter_types = {}
        return self

    def get_type(self) -> QueryType:
        return self._type

    # ------------------------------------------------------------------
    # SELECT 구성 — SELECT parts
    # ------------------------------------------------------------------
    def select(self, *columns: str) -> "QueryBuilder":
        """SELECT 컬럼을 지정합니다 (기존 컬럼 대체).

        Start a SELECT statement, replacing any previously selected columns.

        Args:
            columns: 컬럼 또는 SQL 표현식 (Column names or SQL expressions, e.g. "COUNT(*)")
        """
        self._type = QueryType.SELECT
        self._select = list(columns)
        return self

    def add_select(self, *columns: str) -> "QueryBuilder":
        self._type = QueryType.SELECT
        self._select.extend(columns)
        return self

    def distinct(self, flag: bool = True) -> "QueryBuilder":
        self._distinct = flag
        return self

    def from_(self, table: str, alias: str | None = None) -> "QueryBuilder":
        """FROM 테이블을 추가합니다.

        Add a FROM entry. Calling it again adds another table to the FROM list.

        Args:
            table: 테이블 이름 (Table name)
            alias: 테이블 별칭, JOIN 기준으로 사용 (Table alias, used as join anchor)
        """
        self._from.append((table, alias))
        return self

    def join(self, from_alias: str, join: str, alias: str, condition: str | None = None) -> "QueryBuilder":
        """INNER JOIN을 추가합니다 — Alias of inner_join()."""
        return self.inner_join(from_alias, join, alias, condition)

    def inner_join(
        self, from_alias: str, join: str, alias: str, condition: str | None = None
    ) -> "QueryBuilder":
        """INNER JOIN을 추가합니다.

        Add an INNER JOIN attached to the FROM entry (or earlier join) whose
        alias is from_alias.

        Args:
            from_alias: 기준 FROM/JOIN 별칭 (Alias the join attaches to)
            join: 조인할 테이블 (Table to join)
            alias: 조인 테이블 별칭 (Alias of the joined table)
            condition: ON 조건, 없으면 항상 참 (ON condition; always true when omitted)
        """
        return self._add_join("INNER", from_alias, join, alias, condition)

    def left_join(
        self, from_alias: str, join: str, alias: str, condition: str | None = None
    ) -> "QueryBuilder":
        return self._add_join("LEFT", from_alias, join, alias, condition)

    def _add_join(
        self, kind: str, from_alias: str, join: str, alias: str, condition: str | None
    ) -> "QueryBuilder":
        self._joins.setdefault(from_alias, []).append(_Join(kind, join, alias, condition))
        return self

    def where(self, *conditions: Union[str, CompositeExpression]) -> "QueryBuilder":
        """WHERE 조건을 지정합니다 (기존 조건 대체).

        Replace the WHERE clause. Several conditions are joined with AND.

        Raises:
            QueryBuilderError: 조건이 없는 경우 (No condition given)
        """
        self._where = _predicate("where", conditions)
        return self

    def and_where(self, *conditions: Union[str, CompositeExpression]) -> "QueryBuilder":
        conditions = _require_conditions("and_where", conditions)
        self._where = _combine(self._where, CompositeExpression.TYPE_AND, conditions)
        return self

    def or_where(self, *conditions: Union[str, CompositeExpression]) -> "QueryBuilder":
        conditions = _require_conditions("or_where", conditions)
        self._where = _combine(self._where, CompositeExpression.TYPE_OR, conditions)
        return self

    def group_by(self, *columns: str) -> "QueryBuilder":
        self._group_by = list(columns)
        return self

    def add_group_by(self, *columns: str) -> "QueryBuilder":
        self._group_by.extend(columns)
        return self

    def having(self, *conditions: Union[str, CompositeExpression]) -> "QueryBuilder":
        self._having = _predicate("having", conditions)
        return self

    def and_having(self, *conditions: Union[str, CompositeExpression]) -> "QueryBuilder":
        conditions = _require_conditions("and_having", conditions)
        self._having = _combine(self._having, CompositeExpression.TYPE_AND, conditions)
        return self

    def or_having(self, *conditions: Union[str, CompositeExpression]) -> "QueryBuilder":
        conditions = _require_conditions("or_having", conditions)
        self._having = _combine(self._having, CompositeExpression.TYPE_OR, conditions)
        return self

    def order_by(self, sort: str, order: str | None = None) -> "QueryBuilder":
        """정렬 기준을 지정합니다 (기존 정렬 대체).

        Replace the ORDER BY clause.

        Args:
            sort: 정렬 컬럼 (Column or expression to sort by)
            order: "ASC" 또는 "DESC" (Sort direction, optional)
        """
        self._order_by = [(sort, order)]
        return self

    def add_order_by(self, sort: str, order: str | None = None) -> "QueryBuilder":
        self._order_by.append((sort, order))
        return self

    def set_first_result(self, first_result: int) -> "QueryBuilder":
        """OFFSET 지정 — Position of the first row to fetch (0-based)."""
        self._first_result = first_result
        return self

    def get_first_result(self) -> int:
        return self._first_result

    def set_max_results(self, max_results: int | None) -> "QueryBuilder":
        """LIMIT 지정, None이면 제한 없음 — Maximum rows to fetch; None removes the limit."""
        self._max_results = max_results
        return self

    def get_max_results(self) -> int | None:
        return self._max_results

    # ------------------------------------------------------------------
    # INSERT / UPDATE / DELETE 구성 — DML parts
    # ------------------------------------------------------------------
    def insert(self, table: str) -> "QueryBuilder":
        """INSERT 문을 시작합니다 — Start an INSERT statement into table."""
        self._type = QueryType.INSERT
        self._table = table
        self._table_alias = None
        return self

    def set_value(self, column: str, value: Any) -> "QueryBuilder":
        """INSERT 컬럼 값을 지정합니다.

        Set the value of one column of an INSERT statement.

        Args:
            column: 컬럼 이름 (Column name)
            value: ":name" 플레이스홀더, SQL 조각, 또는 SQLAlchemy 표현식
                   (":name" placeholder, SQL fragment or SQLAlchemy expression)
        """
        self._values[column] = value
        return self

    def values(self, values: Mapping[str, Any]) -> "QueryBuilder":
        """INSERT 값을 일괄 지정합니다 (기존 값 대체) — Replace all INSERT values."""
        self._values = dict(values)
        return self

    def update(self, table: str, alias: str | None = None) -> "QueryBuilder":
        """UPDATE 문을 시작합니다 — Start an UPDATE statement on table."""
        self._type = QueryType.UPDATE
        self._table = table
        self._table_alias = alias
        return self

    def set(self, column: str, value: Any) -> "QueryBuilder":
        """UPDATE SET 절에 컬럼을 추가합니다.

        Add one column assignment to the SET clause of an UPDATE statement.
        Accepts the same value forms as set_value().
        """
        self._set[column] = value
        return self

    def delete(self, table: str, alias: str | None = None) -> "QueryBuilder":
        """DELETE 문을 시작합니다 — Start a DELETE statement on table."""
        self._type = QueryType.DELETE
        self._table = table
        self._table_alias = alias
        return self

    # ------------------------------------------------------------------
    # 파라미터 — Bind parameters
    # ------------------------------------------------------------------
    def set_parameter(self, key: str, value: Any, type_: Any = None) -> "QueryBuilder":
        """이름 있는 플레이스홀더에 값을 바인딩합니다.

        Bind a value to a named placeholder.

        Args:
            key: 플레이스홀더 이름, 앞의 ":" 생략 가능 (Placeholder name, leading ":" optional)
            value: 바인딩할 값 (Value to bind)
            type_: 타입 이름 또는 SQLAlchemy 타입 (Type name or SQLAlchemy type, optional)
        """
        key = key.lstrip(":")
        self._parameters[key] = value
        if type_ is not None:
            self._parameter_types[key] = resolve_type(type_)
        return self

    def set_parameters(self, parameters: Mapping[str, Any], types: Mapping[str, Any] | None = None) -> "QueryBuilder":
        """여러 파라미터를 병합합니다.

        Merge several parameters (and optionally their types) into the
        bound parameter set. Existing keys are overwritten, others kept.
        """
        for key, value in parameters.items():
            self._parameters[key.lstrip(":")] = value
        for key, type_ in (types or {}).items():
            self._parameter_types[key.lstrip(":")] = resolve_type(type_)
        return self

    def get_parameters(self) -> dict[str, Any]:
        return dict(self._parameters)

    def get_parameter(self, key: str) -> Any:
        return self._parameters.get(key.lstrip(":"))

    def get_parameter_types(self) -> dict[str, TypeEngine[Any]]:
        return dict(self._parameter_types)

    def create_named_parameter(self, value: Any, type_: Any = None, placeholder: str | None = None) -> str:
        """값을 바인딩하고 플레이스홀더를 반환합니다.

        Bind value under a generated (or given) name and return the placeholder
        to embed in a condition.

        Example:
            qb.where(f"email = {qb.create_named_parameter(email)}")

        Returns:
            str: ":name" 형태의 플레이스홀더 (Placeholder such as ":qb_param_1")
        """
        if placeholder is None:
            self._bound_counter += 1
            placeholder = f"qb_param_{self._bound_counter}"
        key = placeholder.lstrip(":")
        self.set_parameter(key, value, type_)
        return f":{key}"

    def create_positional_parameter(self, value: Any, type_: Any = None) -> BindParameter[Any]:
        """값을 담은 익명 바인드 파라미터를 생성합니다.

        Create an anonymous bind parameter carrying value. It is rendered with
        the dialect's positional style ("?" on SQLite) and needs no entry in
        the named parameter set.
        """
        return sa.literal(value, type_=resolve_type(type_) if type_ is not None else None)

    # ------------------------------------------------------------------
    # 문장 조립 — Statement assembly
    # ------------------------------------------------------------------
    def get_statement(self) -> Any:
        """현재 구성으로 SQLAlchemy 문장을 조립합니다.

        Assemble the SQLAlchemy Core statement from the recorded parts, with
        the bound parameter values and types applied to its placeholders.

        Returns:
            Executable: SELECT/INSERT/UPDATE/DELETE 문장 (Assembled statement)

        Raises:
            QueryBuilderError: 구성이 불완전한 경우 (Incomplete or invalid parts)
        """
        return self._bind_parameters(self._build())

    def get_sql(self) -> str:
        """현재 구성을 SQL 문자열로 렌더링합니다.

        Render the statement as SQL for the connection's dialect, or the
        default dialect when no connection is set. Placeholders stay unbound.
        """
        return str(self._build().compile(dialect=self._dialect()))

    def __str__(self) -> str:
        return self.get_sql()

    def _build(self) -> Any:
        if self._type is QueryType.SELECT:
            return self._build_select()
        table: str | None = self._table
        if table is None:
            raise QueryBuilderError(f"No table given for {self._type.value} statement")
        if self._type is QueryType.INSERT:
            return self._build_insert(table)
        if self._type is QueryType.UPDATE:
            return self._build_update(table)
        return self._build_delete(table)

    def _build_select(self) -> sa.Select[Any]:
        if not self._select:
            raise QueryBuilderError("No columns selected")

        stmt = sa.select(*(sa.literal_column(c) for c in self._select))
        if self._distinct:
            stmt = stmt.distinct()

        known_aliases: set[str] = set()
        for table, alias in self._from:
            anchor = alias or table
            from_clause = self._apply_joins(_table_clause(table, alias), anchor, known_aliases)
            stmt = stmt.select_from(from_clause)

        # FROM/JOIN에 없는 별칭에 대한 JOIN 검사 — Joins must attach to a known alias
        unknown = set(self._joins) - known_aliases
        if unknown:
            raise QueryBuilderError(
                f"The given alias '{sorted(unknown)[0]}' is not part of any FROM or JOIN clause"
            )

        if self._where is not None:
            stmt = stmt.where(sa.text(str(self._where)))
        if self._group_by:
            stmt = stmt.group_by(*(sa.literal_column(c) for c in self._group_by))
        if self._having is not None:
            stmt = stmt.having(sa.text(str(self._having)))
        for sort, order in self._order_by:
            column = sa.literal_column(sort)
            direction = (order or "").upper()
            if direction == "DESC":
                column = column.desc()
            elif direction == "ASC":
                column = column.asc()
            stmt = stmt.order_by(column)
        if self._first_result:
            stmt = stmt.offset(self._first_result)
        if self._max_results is not None:
            stmt = stmt.limit(self._max_results)
        return stmt

    def _apply_joins(self, from_clause: Any, anchor: str, known_aliases: MutableSet[str]) -> Any:
        """별칭에 연결된 JOIN을 재귀적으로 적용 — Attach joins anchored on alias, recursively."""
        known_aliases.add(anchor)
        for join in self._joins.get(anchor, []):
            onclause = sa.text(join.condition) if join.condition else sa.true()
            from_clause = from_clause.join(
                _table_clause(join.table, join.alias),
                onclause,
                isouter=join.kind == "LEFT",
            )
            from_clause = self._apply_joins(from_clause, join.alias, known_aliases)
        return from_clause

    def _build_insert(self, table_name: str) -> sa.Insert:
        table = _table_clause(table_name, columns=list(self._values))
        stmt = sa.insert(table)
        if self._values:
            stmt = stmt.values({k: _value_expression(v) for k, v in self._values.items()})
        return stmt

    def _build_update(self, table_name: str) -> sa.Update:
        if not self._set:
            raise QueryBuilderError("No columns given to SET in UPDATE statement")
        target = _table_clause(table_name, self._table_alias, columns=list(self._set))
        stmt = sa.update(target).values({k: _value_expression(v) for k, v in self._set.items()})
        if self._where is not None:
            stmt = stmt.where(sa.text(str(self._where)))
        return stmt

    def _build_delete(self, table_name: str) -> sa.Delete:
        stmt = sa.delete(_table_clause(table_name, self._table_alias))
        if self._where is not None:
            stmt = stmt.where(sa.text(str(self._where)))
        return stmt

    def _bind_parameters(self, statement: Any) -> Any:
        """플레이스홀더에 값과 타입을 적용 — Apply bound values and types to placeholders."""
        parameters = self._parameters
        types = self._parameter_types

        def visit_bindparam(bind: BindParameter[Any]) -> None:
            if bind.key in parameters:
                bind.value = parameters[bind.key]
                bind.required = False
            if bind.key in types:
                bind.type = types[bind.key]

        return visitors.cloned_traverse(statement, {}, {"bindparam": visit_bindparam})

    def _dialect(self) -> Dialect | None:
        if self.connection is None:
            return None
        if isinstance(self.connection, AsyncSession):
            return self.connection.get_bind().dialect
        return self.connection.dialect

    # ------------------------------------------------------------------
    # 실행 — Execution
    # ------------------------------------------------------------------
    async def execute_query(self) -> Result[Any]:
        """쿼리를 실행하고 버퍼링된 결과를 반환합니다.

        Execute the statement and return its fully buffered result.

        Returns:
            Result: 행을 반환하는 결과 (Row-returning result)

        Raises:
            ConnectionNotSetError: 연결이 없는 경우 (No connection set)
        """
        return await self._fetch(self.get_statement())

    async def execute_statement(self) -> int:
        """INSERT/UPDATE/DELETE를 실행하고 영향받은 행 수를 반환합니다.

        Execute the statement and return the number of affected rows.

        Raises:
            ConnectionNotSetError: 연결이 없는 경우 (No connection set)
        """
        statement = self.get_statement()
        connection = self._require_connection()
        self._log(statement)

        if isinstance(connection, AsyncEngine):
            # 엔진이면 문장마다 트랜잭션 — One committed transaction per statement
            async with connection.begin() as conn:
                result = await conn.execute(statement)
                return result.rowcount
        result = await connection.execute(statement)
        return result.rowcount

    async def count(self) -> int:
        """현재 SELECT의 전체 행 수를 반환합니다.

        Count the rows the current SELECT would return. A limit or offset
        set on the builder applies to the counted subquery as well.
        """
        if self._type is not QueryType.SELECT:
            raise QueryBuilderError("count() requires a SELECT statement")
        count_query = sa.select(sa.func.count()).select_from(self.get_statement().subquery())
        result = await self._fetch(count_query)
        return result.scalar() or 0

    async def _fetch(self, statement: Any) -> Result[Any]:
        connection = self._require_connection()
        self._log(statement)

        if isinstance(connection, AsyncEngine):
            async with connection.begin() as conn:
                result = await conn.execute(statement)
                # 연결 반환 전에 모든 행을 고정 — Freeze rows before the connection is released
                return result.freeze()()
        return await connection.execute(statement)

    def _require_connection(self) -> Connection:
        if self.connection is None:
            raise ConnectionNotSetError()
        return self.connection

    def _log(self, statement: Any) -> None:
        if not logger.isEnabledFor(logging.DEBUG):
            return
        compiled = statement.compile(dialect=self._dialect())
        logger.debug("Executing SQL: %s", compiled)
        if settings.LOG_SQL_PARAMETERS:
            # 문장에 실제로 바인딩된 값 (위치 기반 포함) — Values bound into the statement, positional ones included
            logger.debug("With parameters: %s", mask_parameters(compiled.params))
