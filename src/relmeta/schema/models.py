"""Entity descriptors: per record type storage metadata and relations."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from relmeta.core.fields import (
    NOT_FOUND,
    FieldHandle,
    field_locator,
    read_field,
    record_type_of,
    relation_target_handle,
)
from relmeta.core.shapes import ShapeField, shape_for
from relmeta.core.types import Relation
from relmeta.exceptions import FieldTypeError, RelationNotFoundError


class EntityDescriptor(BaseModel):
    """Metadata for one record type mapped to a storage table.

    The logical name identifies the entity inside a registry; the storage
    name is what ends up in SQL and may be renamed in bulk (table prefixes).
    """

    name: str = Field(..., description="Logical name, unique within a registry")
    storage_name: str = Field(..., description="Table name used when emitting SQL")
    record_type: type[Any] = Field(..., description="Record class this descriptor describes")
    key_fields: list[str] = Field(..., min_length=1, description="Key columns in declared order")
    key_auto_generated: bool = Field(default=False, description="Storage assigns key values")
    version_field: str | None = Field(
        default=None, description="Optimistic lock column, None disables locking"
    )
    relations: dict[str, Relation] = Field(default_factory=dict)

    model_config = {"arbitrary_types_allowed": True}

    def _walk(self) -> list[ShapeField]:
        shape = shape_for(self.record_type)
        if shape is None:
            raise FieldTypeError(
                f"{self.record_type.__qualname__} is not a dataclass or pydantic model.",
                {"entity_name": self.name},
            )
        return list(shape.iter_fields(self.record_type))

    def is_key_field(self, column: str) -> bool:
        return column in self.key_fields

    def storage_fields(self, with_keys: bool = True) -> list[str]:
        """Storage mapped columns in declaration order.

        Args:
            with_keys: Include key columns (False for auto generated key inserts)
        """
        return [
            f.column
            for f in self._walk()
            if f.column is not None and (with_keys or not self.is_key_field(f.column))
        ]

    def key_attributes(self) -> list[str]:
        """Attribute names of the key fields, in key order."""
        by_column = {f.column: f.name for f in self._walk() if f.column is not None}
        return [by_column[k] for k in self.key_fields]

    def key_where(self) -> str:
        """Key predicate, e.g. "key1 = ? AND key2 = ?"."""
        return " AND ".join(f"{k} = ?" for k in self.key_fields)

    def column_value(self, record: Any, column: str) -> Any:
        """Read a column's value from a record, failing if the record lacks it."""
        locator = field_locator(record_type_of(record), column)
        if locator is NOT_FOUND:
            raise FieldTypeError(
                f"Column '{column}' of entity '{self.name}' not found on "
                f"{type(record).__qualname__}.",
                {"entity_name": self.name, "column": column},
            )
        return read_field(record, locator)

    def key_values(self, record: Any) -> list[Any]:
        """Key values of a record, in key order."""
        return [self.column_value(record, k) for k in self.key_fields]

    def value_map(self, record: Any, with_keys: bool) -> dict[str, Any]:
        """Map of column -> value for every storage mapped field of a record."""
        return {c: self.column_value(record, c) for c in self.storage_fields(with_keys)}

    def relation_named(self, name: str) -> Relation | None:
        return self.relations.get(name)

    def require_relation(self, name: str) -> Relation:
        """Like relation_named but raises RelationNotFoundError on a miss."""
        relation = self.relations.get(name)
        if relation is None:
            raise RelationNotFoundError(name, self.name, sorted(self.relations))
        return relation

    def relation_target_handle(self, record: Any, name: str) -> FieldHandle | None:
        """Handle to the field the named relation populates, or None."""
        return relation_target_handle(self, record, name)

    def require_target_handle(self, record: Any, name: str) -> FieldHandle:
        """Like relation_target_handle but raises RelationNotFoundError on a miss."""
        handle = relation_target_handle(self, record, name)
        if handle is None:
            raise RelationNotFoundError(name, self.name, sorted(self.relations))
        return handle
