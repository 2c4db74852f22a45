"""Generic field access for records.

Locators are attribute paths resolved once per (record type, name) pair
and cached. The cache only ever grows: a key's value never changes once
written, including cached misses.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any

from relmeta.core.shapes import FieldLocator, shape_for, unwrap_hint
from relmeta.exceptions import FieldTypeError

if TYPE_CHECKING:
    from relmeta.schema.models import EntityDescriptor

logger = logging.getLogger(__name__)

# Returned by locator lookups that find nothing
NOT_FOUND: None = None

_locator_cache: dict[tuple[type, str, str], FieldLocator | None] = {}
_locator_lock = threading.Lock()


def record_type_of(obj: Any) -> type:
    """Return the record class for a class or an instance."""
    return obj if isinstance(obj, type) else type(obj)


def _locate(record_type: type, by: str, name: str) -> FieldLocator | None:
    key = (record_type, by, name)
    with _locator_lock:
        if key in _locator_cache:
            return _locator_cache[key]

    shape = shape_for(record_type)
    found: FieldLocator | None = NOT_FOUND
    if shape is not None:
        for f in shape.iter_fields(record_type):
            if (f.column if by == "column" else f.name) == name:
                found = f.locator
                break

    with _locator_lock:
        _locator_cache.setdefault(key, found)
    logger.debug(f"Located {by} '{name}' on {record_type.__qualname__}: {found}")
    return found


def field_locator(record_type: type, column: str) -> FieldLocator | None:
    """Resolve a storage column name to a locator, or NOT_FOUND."""
    return _locate(record_type_of(record_type), "column", column)


def attribute_locator(record_type: type, attribute: str) -> FieldLocator | None:
    """Resolve a declared attribute name (embedded fields included) to a locator."""
    return _locate(record_type_of(record_type), "attribute", attribute)


def read_field(record: Any, locator: FieldLocator) -> Any:
    """Follow a locator; an unset (None) embedded record reads as None."""
    value = record
    for name in locator:
        if value is None:
            return None
        value = getattr(value, name)
    return value


def write_field(record: Any, locator: FieldLocator, value: Any) -> None:
    """Set the field a locator points at.

    Raises:
        FieldTypeError: If an embedded record on the path is None
    """
    parent = record
    for i, name in enumerate(locator[:-1]):
        parent = getattr(parent, name)
        if parent is None:
            path = ".".join(locator[: i + 1])
            raise FieldTypeError(
                f"Cannot set '{'.'.join(locator)}' on {type(record).__qualname__}: "
                f"embedded record '{path}' is None.",
                {"record_type": type(record).__qualname__, "embedded": path},
            )
    setattr(parent, locator[-1], value)


def field_value(record: Any, column: str) -> Any:
    """Read the value stored for a column, or None when the column is unknown."""
    locator = field_locator(type(record), column)
    if locator is NOT_FOUND:
        return None
    return read_field(record, locator)


class FieldHandle:
    """Read/write reference to one field of one record instance.

    Writing through the handle is observable on the record itself, which is
    what lets callers load "whatever field this relation points at".
    """

    __slots__ = ("_record", "_locator")

    def __init__(self, record: Any, locator: FieldLocator) -> None:
        self._record = record
        self._locator = locator

    @property
    def record(self) -> Any:
        return self._record

    @property
    def locator(self) -> FieldLocator:
        return self._locator

    @property
    def hint(self) -> Any:
        """Type hint declared for the field."""
        owner = type(read_field(self._record, self._locator[:-1]))
        shape = shape_for(owner)
        if shape is None:
            return Any
        return shape.field_hint(owner, self._locator[-1])

    @property
    def is_collection(self) -> bool:
        return unwrap_hint(self.hint)[0]

    def get(self) -> Any:
        return read_field(self._record, self._locator)

    def set(self, value: Any) -> None:
        write_field(self._record, self._locator, value)

    def __repr__(self) -> str:
        return f"FieldHandle({type(self._record).__qualname__}.{'.'.join(self._locator)})"


def relation_target_handle(
    descriptor: EntityDescriptor, record: Any, relation_name: str
) -> FieldHandle | None:
    """Return a handle to the value field of a named relation.

    Returns None when the relation name is unknown. A value field missing
    from the record is a FieldTypeError.
    """
    relation = descriptor.relations.get(relation_name)
    if relation is None:
        return None
    locator = attribute_locator(type(record), relation.value_field)
    if locator is NOT_FOUND:
        raise FieldTypeError(
            f"Relation '{relation_name}' declares value field '{relation.value_field}', "
            f"which does not exist on {type(record).__qualname__}.",
            {"relation_name": relation_name, "value_field": relation.value_field},
        )
    return FieldHandle(record, locator)
