"""Core types for relmeta.

Relation descriptors form a closed, discriminated union over the five
supported kinds. They are created once while an entity is parsed and are
immutable afterwards.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

from relmeta.core.compat import StrEnum


class RelationKind(StrEnum):
    """Supported relation kinds (also the annotation tokens)."""

    BELONGS_TO = "belongs_to"  # e.g. Book -> Author, FK on this record
    HAS_MANY = "has_many"  # e.g. Author -> [Book], FK on the other record
    HAS_ONE = "has_one"  # e.g. Category -> CategoryInfo, FK on the other record
    BELONGS_TO_MANY = "belongs_to_many"  # e.g. Book <-> [Category] via join table
    BELONGS_TO_MANY_IDS = "belongs_to_many_ids"  # e.g. Book <-> [category ids] via join table

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid relation kind values."""
        return [k.value for k in cls]


class _RelationBase(BaseModel):
    """Fields shared by every relation kind."""

    name: str = Field(..., description="Relation name, defaults to the snake cased value field")
    value_field: str = Field(..., description="Attribute on the owning record that holds the value")
    target: str | None = Field(
        default=None,
        description="Logical name of the related entity; derived from the type hint when unset",
    )

    model_config = {"frozen": True}


class BelongsTo(_RelationBase):
    """Single related record whose key is stored on this record.

    Example:

        @dataclass
        class Book:
            author_id: str = column("author_id", default="")
            author: Author | None = relation("belongs_to,sql_id_field=author_id")
    """

    kind: Literal["belongs_to"] = "belongs_to"
    sql_id_field: str = Field(..., description="Column on this record holding the related key")


class HasMany(_RelationBase):
    """Collection of related records whose foreign key is stored on the other table.

    Example:

        @dataclass
        class Author:
            book_list: list[Book] = relation("has_many")  # book.author_id
    """

    kind: Literal["has_many"] = "has_many"
    sql_other_id_field: str = Field(..., description="Column on the other table, e.g. author_id")


class HasOne(_RelationBase):
    """Single related record whose foreign key is stored on the other table (1:1)."""

    kind: Literal["has_one"] = "has_one"
    sql_other_id_field: str = Field(..., description="Column on the other table, e.g. category_id")


class BelongsToMany(_RelationBase):
    """Collection of related records linked through a join table.

    Example:

        @dataclass
        class Book:
            category_list: list[Category] = relation("belongs_to_many,join_name=book_category")
    """

    kind: Literal["belongs_to_many"] = "belongs_to_many"
    join_name: str = Field(..., description="Logical name of the join entity")
    sql_id_field: str = Field(..., description="Join table column for this side")
    sql_other_id_field: str = Field(..., description="Join table column for the other side")


class BelongsToManyIDs(_RelationBase):
    """Collection of related identifiers linked through a join table.

    The value field holds plain ids rather than records, which makes it the
    input for join table reconciliation.
    """

    kind: Literal["belongs_to_many_ids"] = "belongs_to_many_ids"
    join_name: str = Field(..., description="Logical name of the join entity")
    sql_id_field: str = Field(..., description="Join table column for this side")
    sql_other_id_field: str = Field(..., description="Join table column for the other side")


Relation = Annotated[
    Union[BelongsTo, HasMany, HasOne, BelongsToMany, BelongsToManyIDs],
    Field(discriminator="kind"),
]

# Kinds whose value field holds a collection rather than a single value
COLLECTION_KINDS = frozenset(
    {
        RelationKind.HAS_MANY.value,
        RelationKind.BELONGS_TO_MANY.value,
        RelationKind.BELONGS_TO_MANY_IDS.value,
    }
)


class Statement(BaseModel):
    """SQL text with positional `?` placeholders and its parameters."""

    sql: str
    params: tuple[Any, ...] = ()

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return self.sql
