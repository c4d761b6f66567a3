"""커스텀 예외 클래스 모듈.

Custom exception classes module.
Provides pre-configured exception subclasses for the error conditions the
repository layer detects itself. Each carries a default detail message so
call sites only pass one when they have something more specific to say.
Database errors are SQLAlchemy's own exceptions and are not wrapped.

Usage:
    from query_repository.utils.exceptions import TableNotDefinedError
    raise TableNotDefinedError()
    raise UnknownTypeError("Unknown type name 'strng'")
"""


class RepositoryError(Exception):
    """레포지토리 계층 예외의 부모 클래스.

    Base class for all errors raised by the repository layer.

    Args:
        detail: 오류 메시지 (Error message, default: "Repository error")
    """

    def __init__(self, detail: str = "Repository error") -> None:
        self.detail: str = detail
        super().__init__(detail)


class ConnectionNotSetError(RepositoryError):
    """연결 미설정 예외 — 연결 없이 쿼리를 실행하려 할 때 사용.

    Raised when a statement is executed before a connection was provided,
    either through connection parameters or set_connection().

    Args:
        detail: 오류 메시지 (Error message, default: "Database connection is not set")
    """

    def __init__(self, detail: str = "Database connection is not set") -> None:
        super().__init__(detail)


class InvalidConnectionParamsError(RepositoryError, ValueError):
    """잘못된 연결 파라미터 예외.

    Raised when a connection parameter bag cannot be turned into a database URL
    (e.g. neither "url" nor "driver" given, non-numeric port).

    Args:
        detail: 오류 메시지 (Error message, default: "Invalid connection parameters")
    """

    def __init__(self, detail: str = "Invalid connection parameters") -> None:
        super().__init__(detail)


class TableNotDefinedError(RepositoryError):
    """테이블 미정의 예외 — table_name 없이 CRUD 메서드 호출 시 사용.

    Raised when read/create/modify/destroy is called on a repository
    whose table_name was never defined.

    Args:
        detail: 오류 메시지 (Error message, default: "Table name is not defined")
    """

    def __init__(self, detail: str = "Table name is not defined") -> None:
        super().__init__(detail)


class UnknownTypeError(RepositoryError, KeyError):
    """알 수 없는 데이터 타입 예외.

    Raised when a declared data type name is not present in the type registry.

    Args:
        detail: 오류 메시지 (Error message, default: "Unknown data type")
    """

    def __init__(self, detail: str = "Unknown data type") -> None:
        super().__init__(detail)

    def __str__(self) -> str:
        # KeyError는 메시지를 repr로 감싸므로 detail 그대로 반환
        return self.detail


class QueryBuilderError(RepositoryError):
    """쿼리 구성 오류 — 문장 구조가 불완전하거나 잘못되었을 때 사용.

    Raised when the accumulated query parts cannot form a statement
    (no statement type, missing target table, join onto an unknown alias).

    Args:
        detail: 오류 메시지 (Error message, default: "Invalid query structure")
    """

    def __init__(self, detail: str = "Invalid query structure") -> None:
        super().__init__(detail)
