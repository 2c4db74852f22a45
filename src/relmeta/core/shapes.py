"""Record shape families understood by relmeta.

A record shape knows how to list the declared fields of a record class,
read their per-field annotations, resolve their type hints and construct
new instances. Dataclasses and pydantic models are supported; both expose
the same annotation keys:

- ``db``: storage column name, ``"-"`` for "no storage mapping"
- ``relmeta``: the annotation mini-language (``pk``, ``has_many``, ...)
- ``embedded``: promote the fields of a nested record into this one
"""

from __future__ import annotations

import dataclasses
import functools
import types
import typing
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from relmeta.exceptions import FieldTypeError

DB_KEY = "db"
TAGS_KEY = "relmeta"
EMBEDDED_KEY = "embedded"
NO_COLUMN = "-"

# Attribute path from the record to the field, through embedded records
FieldLocator = tuple[str, ...]


@dataclass(frozen=True)
class ShapeField:
    """One walkable field of a record class (embedded fields already promoted)."""

    name: str
    locator: FieldLocator
    column: str | None
    tags: str
    owner: type


def column_for(name: str, annotations: Mapping[str, Any]) -> str | None:
    """Return the storage column for an attribute, or None when unmapped."""
    column = annotations.get(DB_KEY)
    if column is None:
        return name
    column = str(column).split(",", 1)[0].strip()
    if not column or column == NO_COLUMN:
        return None
    return column


@functools.lru_cache(maxsize=None)
def _type_hints(record_type: type) -> dict[str, Any]:
    return typing.get_type_hints(record_type)


def unwrap_hint(hint: Any) -> tuple[bool, Any]:
    """Split a field type hint into (is_collection, element type).

    ``Optional[T]`` and ``T | None`` unwrap to T; ``list[T]``, ``tuple[T, ...]``,
    ``set[T]`` and ``Sequence[T]`` report a collection of T.
    """
    origin = typing.get_origin(hint)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(hint) if a is not type(None)]
        if len(args) == 1:
            return unwrap_hint(args[0])
        return False, hint
    if origin in (list, tuple, set, frozenset) or (
        origin is not None and isinstance(origin, type) and issubclass(origin, Sequence)
    ):
        args = typing.get_args(hint)
        inner = args[0] if args else Any
        _, inner = unwrap_hint(inner)
        return True, inner
    if hint in (list, tuple, set, frozenset):
        return True, Any
    return False, hint


class RecordShape(ABC):
    """Capability interface implemented once per record shape family."""

    name: str = ""

    @abstractmethod
    def matches(self, record_type: type) -> bool:
        """Return True when this family handles the given class."""

    @abstractmethod
    def declared_fields(self, record_type: type) -> list[tuple[str, Mapping[str, Any]]]:
        """Return (attribute name, annotations) for the directly declared fields."""

    @abstractmethod
    def construct(self, record_type: type, values: dict[str, Any]) -> Any:
        """Create an instance from attribute values, defaults filling the rest."""

    def field_hint(self, record_type: type, name: str) -> Any:
        """Resolve the type hint of a declared attribute."""
        try:
            hints = _type_hints(record_type)
        except (NameError, TypeError) as e:
            raise FieldTypeError(
                f"Cannot resolve type hints of {record_type.__qualname__}: {e}. "
                "Define related record classes at module level or set `target=` "
                "on the relation.",
                {"record_type": record_type.__qualname__},
            ) from e
        if name not in hints:
            raise FieldTypeError(
                f"Field '{name}' has no type hint on {record_type.__qualname__}.",
                {"record_type": record_type.__qualname__, "field": name},
            )
        return hints[name]

    def embedded_type(self, record_type: type, name: str) -> type:
        _, inner = unwrap_hint(self.field_hint(record_type, name))
        if not (isinstance(inner, type) and self.matches(inner)):
            raise FieldTypeError(
                f"Embedded field '{name}' on {record_type.__qualname__} must hold a "
                f"{self.name} record, got {inner!r}.",
                {"record_type": record_type.__qualname__, "field": name},
            )
        return inner

    def iter_fields(self, record_type: type, prefix: FieldLocator = ()) -> Iterator[ShapeField]:
        """Walk all accessible fields, promoting fields of embedded records."""
        for name, annotations in self.declared_fields(record_type):
            if name.startswith("_"):
                continue
            if annotations.get(EMBEDDED_KEY):
                inner = self.embedded_type(record_type, name)
                yield from self.iter_fields(inner, prefix + (name,))
                continue
            yield ShapeField(
                name=name,
                locator=prefix + (name,),
                column=column_for(name, annotations),
                tags=str(annotations.get(TAGS_KEY) or ""),
                owner=record_type,
            )

    def build(self, record_type: type, row: Mapping[str, Any]) -> Any:
        """Create an instance from a row keyed by storage column names."""
        values: dict[str, Any] = {}
        for name, annotations in self.declared_fields(record_type):
            if name.startswith("_"):
                continue
            if annotations.get(EMBEDDED_KEY):
                inner = self.embedded_type(record_type, name)
                values[name] = self.build(inner, row)
                continue
            column = column_for(name, annotations)
            if column is not None and column in row:
                values[name] = row[column]
        return self.construct(record_type, values)


class DataclassShape(RecordShape):
    """Records declared with ``@dataclass`` and ``field(metadata=...)``."""

    name = "dataclass"

    def matches(self, record_type: type) -> bool:
        return dataclasses.is_dataclass(record_type)

    def declared_fields(self, record_type: type) -> list[tuple[str, Mapping[str, Any]]]:
        return [(f.name, f.metadata) for f in dataclasses.fields(record_type)]

    def construct(self, record_type: type, values: dict[str, Any]) -> Any:
        init_names = {f.name for f in dataclasses.fields(record_type) if f.init}
        instance = record_type(**{k: v for k, v in values.items() if k in init_names})
        for key, value in values.items():
            if key not in init_names:
                object.__setattr__(instance, key, value)
        return instance


class PydanticShape(RecordShape):
    """Records declared as pydantic models with ``Field(json_schema_extra=...)``."""

    name = "pydantic"

    def matches(self, record_type: type) -> bool:
        return isinstance(record_type, type) and issubclass(record_type, BaseModel)

    def declared_fields(self, record_type: type) -> list[tuple[str, Mapping[str, Any]]]:
        ret: list[tuple[str, Mapping[str, Any]]] = []
        for name, info in record_type.model_fields.items():  # type: ignore[attr-defined]
            extra = info.json_schema_extra if isinstance(info.json_schema_extra, dict) else {}
            ret.append((name, extra))
        return ret

    def field_hint(self, record_type: type, name: str) -> Any:
        info = record_type.model_fields.get(name)  # type: ignore[attr-defined]
        if info is not None and info.annotation is not None:
            return info.annotation
        return super().field_hint(record_type, name)

    def construct(self, record_type: type, values: dict[str, Any]) -> Any:
        return record_type.model_construct(**values)  # type: ignore[attr-defined]


SHAPES: list[RecordShape] = [DataclassShape(), PydanticShape()]


def shape_for(record_type: type) -> RecordShape | None:
    """Return the shape family handling a record class, if any."""
    if not isinstance(record_type, type):
        return None
    for shape in SHAPES:
        if shape.matches(record_type):
            return shape
    return None
