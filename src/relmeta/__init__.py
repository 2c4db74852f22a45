"""relmeta - relation metadata and SQL generation for plain record types.

Annotate dataclasses (or pydantic models) with storage columns and
relations, register them once, then build SQL for CRUD, relation loading
and many-to-many join table reconciliation.

Example:
    from dataclasses import dataclass, field

    from relmeta import EntityRegistry, QueryBuilder, column, relation

    @dataclass
    class Book:
        book_id: int = column("book_id", "pk")
        author_id: int = column("author_id")
        author: Author | None = relation("belongs_to")
        category_ids: list[int] = relation("belongs_to_many_ids,join_name=book_category")

    registry = EntityRegistry()
    registry.parse_all(Author, Book, BookCategory)

    builder = QueryBuilder(registry)
    statement = builder.select_relation(book, "author").to_statement()
    # SELECT author_id, name FROM author WHERE author_id = ?

    # Make the join table hold exactly book.category_ids
    executor = StatementExecutor(registry, engine, get_dialect("sqlite"))
    executor.sync_relation_ids(book, "category_ids")
"""

from relmeta.core.config import RelMetaConfig
from relmeta.core.fields import FieldHandle
from relmeta.core.types import (
    BelongsTo,
    BelongsToMany,
    BelongsToManyIDs,
    HasMany,
    HasOne,
    Relation,
    RelationKind,
    Statement,
)
from relmeta.data.executor import StatementExecutor
from relmeta.data.ids import uuid4_generator
from relmeta.exceptions import (
    ConfigurationError,
    EntityNotRegisteredError,
    FieldTypeError,
    OptimisticLockError,
    RelationNotFoundError,
    RelMetaError,
    StatementError,
    UnsupportedRelationError,
)
from relmeta.query.builder import QueryBuilder, RelationQuery, SelectQuery
from relmeta.query.dialects import (
    Dialect,
    MySQLDialect,
    PostgreSQLDialect,
    SQLiteDialect,
    get_dialect,
)
from relmeta.query.sync import JoinTableSynchronizer
from relmeta.schema.annotations import (
    column,
    embedded,
    pydantic_column,
    pydantic_embedded,
    pydantic_relation,
    relation,
)
from relmeta.schema.models import EntityDescriptor
from relmeta.schema.registry import (
    EntityRegistry,
    close_default_registry,
    get_default_registry,
    init_default_registry,
)

__version__ = "0.1.0"

__all__ = [
    # Main API
    "EntityRegistry",
    "EntityDescriptor",
    "QueryBuilder",
    "SelectQuery",
    "RelationQuery",
    "JoinTableSynchronizer",
    "StatementExecutor",
    "uuid4_generator",
    "RelMetaConfig",
    "init_default_registry",
    "get_default_registry",
    "close_default_registry",
    # Annotations
    "column",
    "relation",
    "embedded",
    "pydantic_column",
    "pydantic_relation",
    "pydantic_embedded",
    # Types
    "RelationKind",
    "Relation",
    "BelongsTo",
    "HasMany",
    "HasOne",
    "BelongsToMany",
    "BelongsToManyIDs",
    "Statement",
    "FieldHandle",
    # Dialects
    "Dialect",
    "SQLiteDialect",
    "MySQLDialect",
    "PostgreSQLDialect",
    "get_dialect",
    # Exceptions
    "RelMetaError",
    "ConfigurationError",
    "EntityNotRegisteredError",
    "RelationNotFoundError",
    "UnsupportedRelationError",
    "FieldTypeError",
    "OptimisticLockError",
    "StatementError",
]
