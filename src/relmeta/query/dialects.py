"""SQL dialect strategies.

SQLite, MySQL and PostgreSQL each spell "insert, skipping rows that already
exist" differently. The dialect is picked by configuration, never sniffed
from a live connection.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from relmeta.core.types import Statement
from relmeta.exceptions import ConfigurationError


def values_clause(rows: Sequence[Sequence[Any]]) -> tuple[str, list[Any]]:
    """Build "(?, ?), (?, ?)" for the rows and the flattened parameters."""
    groups: list[str] = []
    params: list[Any] = []
    for row in rows:
        groups.append("(" + ", ".join("?" for _ in row) + ")")
        params.extend(row)
    return ", ".join(groups), params


class Dialect(ABC):
    """Dialect specific statement construction."""

    name: str = ""
    paramstyle: str = "qmark"

    @abstractmethod
    def insert_ignore(
        self, table: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]
    ) -> Statement:
        """Multi-row insert that silently skips rows violating a unique key."""

    def render(self, statement: Statement) -> tuple[str, tuple[Any, ...]]:
        """Return SQL and parameters in the driver's DB-API paramstyle."""
        if self.paramstyle == "qmark":
            return statement.sql, statement.params
        return statement.sql.replace("%", "%%").replace("?", "%s"), statement.params

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class SQLiteDialect(Dialect):
    name = "sqlite"
    paramstyle = "qmark"

    def insert_ignore(
        self, table: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]
    ) -> Statement:
        values, params = values_clause(rows)
        return Statement(
            sql=f"INSERT OR IGNORE INTO {table} ({', '.join(columns)}) VALUES {values}",
            params=params,
        )


class MySQLDialect(Dialect):
    name = "mysql"
    paramstyle = "format"

    def insert_ignore(
        self, table: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]
    ) -> Statement:
        values, params = values_clause(rows)
        return Statement(
            sql=f"INSERT IGNORE INTO {table} ({', '.join(columns)}) VALUES {values}",
            params=params,
        )


class PostgreSQLDialect(Dialect):
    name = "postgresql"
    paramstyle = "format"

    def insert_ignore(
        self, table: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]
    ) -> Statement:
        values, params = values_clause(rows)
        return Statement(
            sql=(
                f"INSERT INTO {table} ({', '.join(columns)}) VALUES {values} "
                "ON CONFLICT DO NOTHING"
            ),
            params=params,
        )


DIALECTS: dict[str, type[Dialect]] = {
    "sqlite": SQLiteDialect,
    "sqlite3": SQLiteDialect,
    "mysql": MySQLDialect,
    "mariadb": MySQLDialect,
    "postgresql": PostgreSQLDialect,
    "postgres": PostgreSQLDialect,
}


def get_dialect(name: str) -> Dialect:
    """Return the dialect for a configured name.

    Raises:
        ConfigurationError: If the name is not a supported dialect
    """
    dialect_cls = DIALECTS.get(name.lower())
    if dialect_cls is None:
        raise ConfigurationError(
            f"Unknown dialect '{name}'. Supported dialects: sqlite, mysql, postgresql",
            dialect=name,
        )
    return dialect_cls()
