"""데이터베이스 연결 설정 모듈.

Database connection module.
Turns a connection parameter bag (url or driver/user/password/host/port/dbname)
into an async SQLAlchemy engine. Engines are cached per URL so every repository
built from the same parameters shares one connection pool.
"""

from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from query_repository.config import settings
from query_repository.utils.exceptions import InvalidConnectionParamsError

# 드라이버 별칭 → 비동기 SQLAlchemy 드라이버 이름
# Driver alias → async SQLAlchemy driver name
_DRIVER_ALIASES: dict[str, str] = {
    "pdo_pgsql": "postgresql+asyncpg",
    "pgsql": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
    "postgresql": "postgresql+asyncpg",
    "pdo_sqlite": "sqlite+aiosqlite",
    "sqlite3": "sqlite+aiosqlite",
    "sqlite": "sqlite+aiosqlite",
    "pdo_mysql": "mysql+aiomysql",
    "mysqli": "mysql+aiomysql",
    "mysql": "mysql+aiomysql",
}

# URL별 엔진 캐시 — Engine cache keyed by rendered URL and engine options
_engines: dict[str, AsyncEngine] = {}


class ConnectionParams(BaseModel):
    """연결 파라미터 묶음.

    Connection parameter bag. Either ``url`` or ``driver`` is required; when a
    url is given the discrete fields are ignored.

    Attributes:
        url: 전체 연결 URL (Full connection URL, e.g. "sqlite+aiosqlite:///app.db")
        driver: 드라이버 이름 또는 별칭 (Driver name or alias, e.g. "pdo_pgsql")
        user: 사용자 이름 (Username)
        password: 비밀번호 (Password)
        host: 호스트 (Host)
        port: 포트 (Port)
        dbname: 데이터베이스 이름 (Database name)
        path: SQLite 파일 경로 (SQLite database file path)
        memory: SQLite 인메모리 여부 (Use an in-memory SQLite database)
        options: create_async_engine 추가 인자 (Extra create_async_engine keyword arguments)
    """

    model_config = ConfigDict(extra="ignore")

    url: str | None = None
    driver: str | None = None
    user: str | None = None
    password: str | None = None
    host: str | None = None
    port: int | None = None
    dbname: str | None = None
    path: str | None = None
    memory: bool = False
    options: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _require_url_or_driver(self) -> "ConnectionParams":
        if not self.url and not self.driver:
            raise ValueError("either 'url' or 'driver' must be provided")
        return self

    @property
    def drivername(self) -> str:
        """SQLAlchemy 드라이버 이름 — Resolved SQLAlchemy driver name."""
        if self.url:
            return make_url(self.url).drivername
        assert self.driver is not None
        return _DRIVER_ALIASES.get(self.driver.lower(), self.driver)

    def to_url(self) -> URL:
        """파라미터를 SQLAlchemy URL로 변환합니다.

        Build the SQLAlchemy URL for this parameter bag.

        Returns:
            URL: 연결 URL (Connection URL)
        """
        if self.url:
            return make_url(self.url)

        drivername: str = self.drivername
        database: str | None = self.dbname
        # SQLite는 파일 경로 또는 인메모리 — SQLite takes a file path or :memory:
        if drivername.startswith("sqlite"):
            database = ":memory:" if self.memory else (self.path or self.dbname)

        return URL.create(
            drivername,
            username=self.user,
            password=self.password,
            host=self.host,
            port=self.port,
            database=database,
        )


def _engine_options(url: URL) -> dict[str, Any]:
    """백엔드별 기본 엔진 옵션 — Default engine options for the URL's backend."""
    options: dict[str, Any] = {
        "echo": settings.DEBUG,
        "pool_pre_ping": settings.DB_POOL_PRE_PING,
    }
    # SQLite는 정적/싱글턴 풀을 사용하므로 풀 크기 옵션 제외
    # SQLite uses static/singleton pools that reject pool sizing arguments
    if url.get_backend_name() != "sqlite":
        options["pool_size"] = settings.DB_POOL_SIZE
        options["max_overflow"] = settings.DB_MAX_OVERFLOW
    if url.get_driver_name() == "asyncpg":
        options["connect_args"] = {"statement_cache_size": settings.DB_STATEMENT_CACHE_SIZE}
    return options


def parse_connection_params(params: Mapping[str, Any] | ConnectionParams) -> ConnectionParams:
    """연결 파라미터를 검증합니다.

    Validate a connection parameter bag.

    Args:
        params: 연결 파라미터 (Connection parameter mapping or model)

    Returns:
        ConnectionParams: 검증된 파라미터 (Validated parameters)

    Raises:
        InvalidConnectionParamsError: 파라미터가 잘못된 경우 (Invalid parameters)
    """
    if isinstance(params, ConnectionParams):
        return params
    try:
        return ConnectionParams.model_validate(dict(params))
    except ValidationError as e:
        messages = "; ".join(err["msg"] for err in e.errors())
        raise InvalidConnectionParamsError(f"Invalid connection parameters: {messages}") from e


def get_connection(params: Mapping[str, Any] | ConnectionParams) -> AsyncEngine:
    """연결 파라미터로 비동기 엔진을 반환합니다.

    Return the async engine for a connection parameter bag, creating it on
    first use. Subsequent calls with the same URL and options share the engine.

    Args:
        params: 연결 파라미터 (Connection parameter mapping or model)

    Returns:
        AsyncEngine: 비동기 엔진 (Async engine)

    Raises:
        InvalidConnectionParamsError: URL을 만들 수 없는 경우 (URL cannot be built)
    """
    conn_params: ConnectionParams = parse_connection_params(params)
    try:
        url: URL = conn_params.to_url()
    except (ArgumentError, ValueError) as e:
        raise InvalidConnectionParamsError(f"Invalid connection parameters: {e}") from e

    cache_key: str = url.render_as_string(hide_password=False) + repr(sorted(conn_params.options.items()))
    engine: AsyncEngine | None = _engines.get(cache_key)
    if engine is None:
        options: dict[str, Any] = {**_engine_options(url), **conn_params.options}
        engine = create_async_engine(url, **options)
        _engines[cache_key] = engine
    return engine


def get_engine() -> AsyncEngine:
    """설정의 DATABASE_URL로 기본 엔진을 반환합니다.

    Return the default engine built from settings.DATABASE_URL.
    """
    return get_connection({"url": settings.DATABASE_URL})


async def dispose_engines() -> None:
    """캐시된 모든 엔진의 커넥션 풀을 닫습니다.

    Dispose the connection pool of every cached engine and empty the cache.
    """
    engines: list[AsyncEngine] = list(_engines.values())
    _engines.clear()
    for engine in engines:
        await engine.dispose()


@asynccontextmanager
async def transaction(engine: AsyncEngine | None = None) -> AsyncGenerator[AsyncConnection, None]:
    """트랜잭션 범위의 연결을 제공합니다.

    Yield a connection inside a transaction that commits when the block exits
    normally and rolls back on error. Repositories given this connection through
    set_connection() share the transaction.

    Args:
        engine: 사용할 엔진, None이면 기본 엔진 (Engine to use; default engine when None)

    Yields:
        AsyncConnection: 트랜잭션이 시작된 연결 (Connection with an open transaction)
    """
    async with (engine or get_engine()).begin() as conn:
        yield conn
