"""Key generation for records whose keys are assigned by the application."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from uuid import uuid4

from relmeta.core.fields import field_locator, write_field
from relmeta.exceptions import FieldTypeError

if TYPE_CHECKING:
    from relmeta.schema.registry import EntityRegistry


def uuid4_generator(registry: EntityRegistry, record: Any) -> None:
    """Fill every key field of a record with a fresh UUID4 string.

    Entities with storage generated keys are left untouched.

    Raises:
        EntityNotRegisteredError: If the record's type is not registered
        FieldTypeError: If a key field is not declared as a string
    """
    descriptor = registry.require(record)
    if descriptor.key_auto_generated:
        return
    for column in descriptor.key_fields:
        locator = field_locator(type(record), column)
        current = descriptor.column_value(record, column)
        if current is not None and not isinstance(current, str):
            raise FieldTypeError(
                f"Key field '{column}' of '{descriptor.name}' holds "
                f"{type(current).__name__}; uuid4 keys need a str field.",
                {"entity_name": descriptor.name, "column": column},
            )
        write_field(record, locator, str(uuid4()))
