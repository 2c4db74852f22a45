"""SQL generation: dialects, the query builder and join table sync."""

from relmeta.query.builder import QueryBuilder, RelationQuery, SelectQuery
from relmeta.query.dialects import (
    Dialect,
    MySQLDialect,
    PostgreSQLDialect,
    SQLiteDialect,
    get_dialect,
)
from relmeta.query.sync import JoinTableSynchronizer

__all__ = [
    "QueryBuilder",
    "SelectQuery",
    "RelationQuery",
    "Dialect",
    "SQLiteDialect",
    "MySQLDialect",
    "PostgreSQLDialect",
    "get_dialect",
    "JoinTableSynchronizer",
]
