"""Core components for relmeta."""

from relmeta.core.config import RelMetaConfig
from relmeta.core.fields import FieldHandle, field_locator, field_value
from relmeta.core.naming import camel_to_snake
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

__all__ = [
    "RelMetaConfig",
    "FieldHandle",
    "field_locator",
    "field_value",
    "camel_to_snake",
    "RelationKind",
    "Relation",
    "BelongsTo",
    "HasMany",
    "HasOne",
    "BelongsToMany",
    "BelongsToManyIDs",
    "Statement",
]
