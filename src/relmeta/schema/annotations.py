"""Helpers for declaring relmeta annotations on record fields.

Example:

    @dataclass
    class Book:
        book_id: str = column("book_id", "pk", default="")
        author_id: str = column("author_id", default="")
        author: Author | None = relation("belongs_to,sql_id_field=author_id")
        category_id_list: list[str] = relation("belongs_to_many_ids,join_name=book_category")

    class Tag(BaseModel):
        tag_id: int = pydantic_column("tag_id", "pk,auto_incr", default=0)
"""

from __future__ import annotations

import dataclasses
from typing import Any

from pydantic import Field

from relmeta.core.naming import parse_tags
from relmeta.core.shapes import DB_KEY, EMBEDDED_KEY, NO_COLUMN, TAGS_KEY
from relmeta.core.types import COLLECTION_KINDS, RelationKind

# Storage tokens
PK = "pk"
AUTO_INCR = "auto_incr"
VERSION = "version"

# Relation options
RELATION_NAME = "relation_name"
SQL_ID_FIELD = "sql_id_field"
SQL_OTHER_ID_FIELD = "sql_other_id_field"
JOIN_NAME = "join_name"
TARGET = "target"

KIND_TOKENS = frozenset(RelationKind.values())
STORAGE_TOKENS = frozenset({PK, AUTO_INCR, VERSION})
OPTION_KEYS = frozenset({RELATION_NAME, SQL_ID_FIELD, SQL_OTHER_ID_FIELD, JOIN_NAME, TARGET})
KNOWN_TOKENS = KIND_TOKENS | STORAGE_TOKENS | OPTION_KEYS


def _relation_defaults(tags: str, kwargs: dict[str, Any]) -> None:
    """Give relation fields an empty default matching their kind."""
    if "default" in kwargs or "default_factory" in kwargs:
        return
    if any(kind in COLLECTION_KINDS for kind in parse_tags(tags)):
        kwargs["default_factory"] = list
    else:
        kwargs["default"] = None


def column(name: str | None = None, tags: str = "", **kwargs: Any) -> Any:
    """Dataclass field mapped to a storage column.

    Args:
        name: Column name, defaults to the attribute name
        tags: Storage tokens such as "pk", "pk,auto_incr" or "version"
        **kwargs: Passed to dataclasses.field (default, default_factory, ...)
    """
    metadata: dict[str, Any] = {TAGS_KEY: tags}
    if name is not None:
        metadata[DB_KEY] = name
    return dataclasses.field(metadata=metadata, **kwargs)


def relation(tags: str, **kwargs: Any) -> Any:
    """Dataclass field holding a relation value, with no storage mapping."""
    _relation_defaults(tags, kwargs)
    return dataclasses.field(metadata={DB_KEY: NO_COLUMN, TAGS_KEY: tags}, **kwargs)


def embedded(**kwargs: Any) -> Any:
    """Dataclass field whose record fields are promoted into the owner."""
    return dataclasses.field(metadata={EMBEDDED_KEY: True}, **kwargs)


def pydantic_column(name: str | None = None, tags: str = "", **kwargs: Any) -> Any:
    """Pydantic field mapped to a storage column."""
    extra: dict[str, Any] = {TAGS_KEY: tags}
    if name is not None:
        extra[DB_KEY] = name
    return Field(json_schema_extra=extra, **kwargs)


def pydantic_relation(tags: str, **kwargs: Any) -> Any:
    """Pydantic field holding a relation value, with no storage mapping."""
    _relation_defaults(tags, kwargs)
    return Field(json_schema_extra={DB_KEY: NO_COLUMN, TAGS_KEY: tags}, **kwargs)


def pydantic_embedded(**kwargs: Any) -> Any:
    """Pydantic field whose record fields are promoted into the owner."""
    return Field(json_schema_extra={EMBEDDED_KEY: True}, **kwargs)
