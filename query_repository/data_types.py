"""데이터 타입 레지스트리 모듈.

Data type registry module.
Maps the type names used in set_types() / set_parameter() (e.g. "string",
"datetime", "json") to SQLAlchemy types. The resolved type drives the bind
processing SQLAlchemy applies before a value reaches the driver, such as
JSON serialization or datetime formatting on SQLite.

Usage:
    repo.set_types({"name": "string", "created_at": "datetime", "payload": "json"})
"""

from typing import Any

from sqlalchemy import types as sqltypes
from sqlalchemy.types import TypeEngine

from query_repository.utils.exceptions import UnknownTypeError

# 타입 이름 → SQLAlchemy 타입 매핑
# Type name → SQLAlchemy type mapping (names follow the Doctrine DBAL vocabulary)
_TYPE_REGISTRY: dict[str, TypeEngine[Any]] = {
    "string": sqltypes.String(),
    "ascii_string": sqltypes.String(),
    "text": sqltypes.Text(),
    "integer": sqltypes.Integer(),
    "smallint": sqltypes.SmallInteger(),
    "bigint": sqltypes.BigInteger(),
    "decimal": sqltypes.Numeric(asdecimal=True),
    "float": sqltypes.Float(),
    "boolean": sqltypes.Boolean(),
    "date": sqltypes.Date(),
    "date_immutable": sqltypes.Date(),
    "datetime": sqltypes.DateTime(),
    "datetime_immutable": sqltypes.DateTime(),
    "datetimetz": sqltypes.DateTime(timezone=True),
    "datetimetz_immutable": sqltypes.DateTime(timezone=True),
    "time": sqltypes.Time(),
    "time_immutable": sqltypes.Time(),
    "dateinterval": sqltypes.Interval(),
    "json": sqltypes.JSON(),
    "binary": sqltypes.LargeBinary(),
    "blob": sqltypes.LargeBinary(),
    "guid": sqltypes.Uuid(),
}


def register_type(name: str, type_: TypeEngine[Any] | type[TypeEngine[Any]]) -> None:
    """사용자 정의 타입 이름을 등록합니다.

    Register a custom type name, or override a built-in one.

    Args:
        name: 타입 이름, 대소문자 무시 (Type name, case-insensitive)
        type_: SQLAlchemy 타입 클래스 또는 인스턴스 (SQLAlchemy type class or instance)
    """
    _TYPE_REGISTRY[name.lower()] = _instantiate(type_)


def registered_types() -> list[str]:
    """등록된 타입 이름 목록 — Sorted list of registered type names."""
    return sorted(_TYPE_REGISTRY)


def resolve_type(type_: str | TypeEngine[Any] | type[TypeEngine[Any]]) -> TypeEngine[Any]:
    """타입 이름 또는 SQLAlchemy 타입을 타입 인스턴스로 변환합니다.

    Resolve a registered type name, a TypeEngine class or a TypeEngine
    instance into a TypeEngine instance.

    Args:
        type_: 타입 이름 또는 SQLAlchemy 타입 (Type name or SQLAlchemy type)

    Returns:
        TypeEngine: 바인드 처리에 사용할 타입 (Type used for bind processing)

    Raises:
        UnknownTypeError: 등록되지 않은 타입 이름 (Unregistered type name)
    """
    if isinstance(type_, str):
        try:
            return _TYPE_REGISTRY[type_.lower()]
        except KeyError:
            raise UnknownTypeError(f"Unknown data type '{type_}'") from None
    return _instantiate(type_)


def _instantiate(type_: Any) -> TypeEngine[Any]:
    if isinstance(type_, type) and issubclass(type_, TypeEngine):
        return type_()
    if isinstance(type_, TypeEngine):
        return type_
    raise UnknownTypeError(f"Unsupported data type {type_!r}")
