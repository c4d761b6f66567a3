"""쿼리 빌더 기반 레포지토리 패키지.

Repository package built on a SQLAlchemy-backed query builder.
Subclass Repository per table and use read/create/modify/destroy to build
statements, get/get_first/execute to run them.
"""

from query_repository.database import ConnectionParams, dispose_engines, get_connection, get_engine, transaction
from query_repository.query_builder import CompositeExpression, QueryBuilder, QueryType
from query_repository.repository import Repository
from query_repository.utils.exceptions import (
    ConnectionNotSetError,
    InvalidConnectionParamsError,
    QueryBuilderError,
    RepositoryError,
    TableNotDefinedError,
    UnknownTypeError,
)
from query_repository.utils.pagination import Page

__all__ = [
    "CompositeExpression",
    "ConnectionNotSetError",
    "ConnectionParams",
    "InvalidConnectionParamsError",
    "Page",
    "QueryBuilder",
    "QueryBuilderError",
    "QueryType",
    "Repository",
    "RepositoryError",
    "TableNotDefinedError",
    "UnknownTypeError",
    "dispose_engines",
    "get_connection",
    "get_engine",
    "transaction",
]
