"""Statement execution over a SQLAlchemy engine.

The builder and synchronizer only produce text and parameters; this module
runs them, maps rows back onto records and enforces the optimistic lock
contract (an update or delete must affect exactly one row).
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import Connection, Engine, create_engine
from sqlalchemy.exc import DBAPIError

from relmeta.core.fields import field_locator, write_field
from relmeta.core.shapes import RecordShape, shape_for
from relmeta.core.types import BelongsTo, BelongsToManyIDs, HasOne, Statement
from relmeta.exceptions import (
    ConfigurationError,
    FieldTypeError,
    OptimisticLockError,
    RelMetaError,
    StatementError,
)
from relmeta.query.builder import QueryBuilder, SelectQuery
from relmeta.query.dialects import Dialect, get_dialect
from relmeta.query.sync import JoinTableSynchronizer
from relmeta.schema.models import EntityDescriptor

if TYPE_CHECKING:
    from relmeta.core.config import RelMetaConfig
    from relmeta.schema.registry import EntityRegistry

logger = logging.getLogger(__name__)


def normalize_url(url: str) -> str:
    """Prefer psycopg (v3) for plain postgresql:// URLs."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


class StatementExecutor:
    """Runs built statements and hydrates records from the results.

    Example:
        executor = StatementExecutor(registry, create_engine("sqlite:///app.db"),
                                     get_dialect("sqlite"))
        executor.insert(book)
        executor.load_relation(book, "categories")
    """

    def __init__(self, registry: EntityRegistry, engine: Engine, dialect: Dialect) -> None:
        self.registry = registry
        self.engine = engine
        self.dialect = dialect
        self.builder = QueryBuilder(registry, dialect)
        self.synchronizer = JoinTableSynchronizer(registry, dialect)

    @classmethod
    def from_config(cls, registry: EntityRegistry, config: RelMetaConfig) -> StatementExecutor:
        """Create an engine from config.database_url.

        Raises:
            ConfigurationError: If no database URL is configured
        """
        if not config.database_url:
            raise ConfigurationError(
                "No database URL configured. Set RELMETA_DATABASE_URL or pass database_url."
            )
        engine = create_engine(normalize_url(config.database_url), echo=config.echo)
        return cls(registry, engine, get_dialect(config.dialect))

    # === Raw execution ===

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Connection inside a transaction, committed on success, rolled back on error."""
        with self.engine.begin() as conn:
            yield conn

    def _run(self, conn: Connection, statement: Statement) -> Any:
        sql, params = self.dialect.render(statement)
        logger.debug(f"Executing: {sql} {params!r}")
        try:
            return conn.exec_driver_sql(sql, params)
        except DBAPIError as e:
            raise StatementError(
                f"Statement failed: {e.orig}",
                {"sql": statement.sql, "dialect": self.dialect.name},
            ) from e

    def execute(self, statement: Statement, conn: Connection | None = None) -> int:
        """Execute a write statement and return the affected row count."""
        if conn is not None:
            return self._run(conn, statement).rowcount
        with self.transaction() as conn:
            return self._run(conn, statement).rowcount

    def query(
        self, statement: Statement | SelectQuery, conn: Connection | None = None
    ) -> list[dict[str, Any]]:
        """Execute a select and return rows as column -> value dicts."""
        if isinstance(statement, SelectQuery):
            statement = statement.to_statement()
        if conn is not None:
            return [dict(row) for row in self._run(conn, statement).mappings()]
        with self.engine.connect() as conn:
            return [dict(row) for row in self._run(conn, statement).mappings()]

    def fetch(self, record_type: type, statement: Statement | SelectQuery) -> list[Any]:
        """Execute a select and build one record per row."""
        shape = self._shape(record_type)
        return [shape.build(record_type, row) for row in self.query(statement)]

    @staticmethod
    def _shape(record_type: type) -> RecordShape:
        shape = shape_for(record_type)
        if shape is None:
            raise ConfigurationError(
                f"{getattr(record_type, '__qualname__', record_type)!s} is not a dataclass "
                "or pydantic model.",
                record_type=record_type,
            )
        return shape

    def get(self, record_type: type, *ids: Any) -> Any | None:
        """Load one record by key, or None when no row matches."""
        records = self.fetch(record_type, self.builder.select_by_id(record_type, *ids))
        return records[0] if records else None

    # === Record writes ===

    def insert(self, obj: Any) -> int:
        """Insert one record or a list of records; returns the row count.

        For a single record whose key is storage generated the new key is
        written back onto the record.
        """
        statement = self.builder.insert(obj)
        descriptor = self.registry.require(obj)
        assign_key = descriptor.key_auto_generated and not isinstance(obj, (list, tuple))
        if assign_key and len(descriptor.key_fields) > 1:
            raise FieldTypeError(
                f"Entity '{descriptor.name}' has a composite auto generated key; "
                "only a single generated key can be read back after insert.",
                {"entity_name": descriptor.name},
            )
        key = descriptor.key_fields[0]
        if assign_key and self.dialect.name == "postgresql":
            statement = Statement(sql=f"{statement.sql} RETURNING {key}", params=statement.params)

        with self.transaction() as conn:
            result = self._run(conn, statement)
            if assign_key:
                new_id = result.scalar_one() if self.dialect.name == "postgresql" else result.lastrowid
                write_field(obj, field_locator(type(obj), key), new_id)
            return result.rowcount

    def update(self, record: Any) -> None:
        """Update a record by key, checking and bumping its version.

        Raises:
            OptimisticLockError: If the row is gone or its version changed
        """
        descriptor = self.registry.require(record)
        statement = self.builder.update_by_id(record)
        self.expect_one(descriptor, record, self.execute(statement))
        if descriptor.version_field:
            locator = field_locator(type(record), descriptor.version_field)
            write_field(record, locator, descriptor.column_value(record, descriptor.version_field) + 1)

    def delete(self, record: Any) -> None:
        """Delete a record by key (and version, when it has one).

        Raises:
            OptimisticLockError: If the row is gone or its version changed
        """
        descriptor = self.registry.require(record)
        self.expect_one(descriptor, record, self.execute(self.builder.delete_by_id(record)))

    @staticmethod
    def expect_one(descriptor: EntityDescriptor, record: Any, rows_affected: int) -> None:
        if rows_affected != 1:
            key_values = descriptor.key_values(record)
            logger.warning(
                f"Optimistic lock check failed for '{descriptor.name}' {key_values!r}: "
                f"{rows_affected} rows affected"
            )
            raise OptimisticLockError(descriptor.name, key_values, rows_affected)

    # === Relations ===

    def load_relation(self, record: Any, relation_name: str) -> Any:
        """Run a relation's select and store the result in its value field.

        Returns:
            The stored value: a record or None for single valued relations,
            a list of records or ids otherwise
        """
        rq = self.builder.select_relation(record, relation_name)
        rows = self.query(rq.to_statement())

        if isinstance(rq.relation, BelongsToManyIDs):
            value: Any = [row[rq.relation.sql_other_id_field] for row in rows]
        else:
            if rq.target is None:
                raise RelMetaError(
                    f"Relation '{relation_name}' of kind '{rq.relation.kind}' resolved no "
                    "target entity.",
                    {"relation_name": relation_name},
                )
            record_type = rq.target.record_type
            shape = self._shape(record_type)
            records = [shape.build(record_type, row) for row in rows]
            if isinstance(rq.relation, (BelongsTo, HasOne)):
                value = records[0] if records else None
            else:
                value = records

        rq.handle.set(value)
        return value

    def sync_relation_ids(self, record: Any, relation_name: str) -> None:
        """Make the join table hold exactly the record's id list, in one transaction."""
        delete, insert = self.synchronizer.reconcile(record, relation_name)
        with self.transaction() as conn:
            removed = self._run(conn, delete).rowcount
            added = self._run(conn, insert).rowcount if insert is not None else 0
        logger.info(
            f"Synced '{relation_name}' of {type(record).__qualname__}: "
            f"{removed} join rows removed, {added} added"
        )
