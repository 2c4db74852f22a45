"""Statement builder for registered entities and their relations.

Methods return statement text and parameters built from the registry,
the dialect and the record(s) passed in. Nothing here talks to a database.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from relmeta.core.compat import assert_never
from relmeta.core.fields import FieldHandle
from relmeta.core.shapes import unwrap_hint
from relmeta.core.types import (
    BelongsTo,
    BelongsToMany,
    BelongsToManyIDs,
    HasMany,
    HasOne,
    Relation,
    Statement,
)
from relmeta.exceptions import FieldTypeError
from relmeta.query.dialects import Dialect, SQLiteDialect, get_dialect, values_clause
from relmeta.schema.models import EntityDescriptor

if TYPE_CHECKING:
    from relmeta.core.config import RelMetaConfig
    from relmeta.schema.registry import EntityRegistry

logger = logging.getLogger(__name__)


def expand_params(clause: str, params: Sequence[Any]) -> tuple[str, list[Any]]:
    """Expand list/tuple/set parameters into "(?, ?, ...)" placeholder groups.

    Example:
        >>> expand_params("a = ? AND b NOT IN ?", [1, [2, 3]])
        ('a = ? AND b NOT IN (?, ?)', [1, 2, 3])

    Raises:
        FieldTypeError: If a collection parameter is empty
    """
    pieces = clause.split("?")
    if len(pieces) - 1 != len(params):
        raise ValueError(
            f"Clause '{clause}' has {len(pieces) - 1} placeholders but {len(params)} params"
        )
    out = [pieces[0]]
    flat: list[Any] = []
    for param, piece in zip(params, pieces[1:]):
        if isinstance(param, (list, tuple, set, frozenset)):
            items = list(param)
            if not items:
                raise FieldTypeError(
                    f"Empty collection parameter in '{clause}'; an empty IN list is not "
                    "valid SQL. Leave the condition out when there is nothing to match.",
                    {"clause": clause},
                )
            out.append("(" + ", ".join("?" for _ in items) + ")")
            flat.extend(items)
        else:
            out.append("?")
            flat.append(param)
        out.append(piece)
    return "".join(out), flat


def increment_version(value: Any) -> int:
    """Return the next optimistic lock version.

    Raises:
        FieldTypeError: If the value is not an integer
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise FieldTypeError(
            f"Version value {value!r} of type {type(value).__name__} is not a supported "
            "integer type.",
            {"value_type": type(value).__name__},
        )
    return value + 1


def _touch(record: Any, hook: str) -> None:
    method = getattr(record, hook, None)
    if callable(method):
        method()


class SelectQuery(BaseModel):
    """Immutable SELECT fragment: columns, source, join, predicate and parameters."""

    columns: tuple[str, ...]
    source: str
    join: str | None = None
    conditions: tuple[str, ...] = ()
    params: tuple[Any, ...] = ()
    ordering: tuple[str, ...] = ()
    max_rows: int | None = None

    model_config = {"frozen": True}

    def where(self, clause: str, *params: Any) -> SelectQuery:
        """Return a copy with an extra condition ANDed to the predicate."""
        clause, flat = expand_params(clause, params)
        return self.model_copy(
            update={
                "conditions": self.conditions + (clause,),
                "params": self.params + tuple(flat),
            }
        )

    def order_by(self, *columns: str) -> SelectQuery:
        return self.model_copy(update={"ordering": self.ordering + columns})

    def limit(self, n: int) -> SelectQuery:
        return self.model_copy(update={"max_rows": n})

    def to_statement(self) -> Statement:
        parts = [f"SELECT {', '.join(self.columns)} FROM {self.source}"]
        if self.join:
            parts.append(self.join)
        if self.conditions:
            parts.append("WHERE " + " AND ".join(self.conditions))
        if self.ordering:
            parts.append("ORDER BY " + ", ".join(self.ordering))
        if self.max_rows is not None:
            parts.append(f"LIMIT {int(self.max_rows)}")
        return Statement(sql=" ".join(parts), params=self.params)

    @property
    def sql(self) -> str:
        return self.to_statement().sql


@dataclass(frozen=True)
class RelationQuery:
    """Select for a named relation plus the handle its results belong in."""

    query: SelectQuery
    handle: FieldHandle
    relation: Relation
    target: EntityDescriptor | None  # None for id-only relations

    def to_statement(self) -> Statement:
        return self.query.to_statement()


class QueryBuilder:
    """Builds CRUD and relation statements for registered entities.

    Example:
        builder = QueryBuilder(registry, get_dialect("sqlite"))
        rq = builder.select_relation(book, "author")
        rows = executor.query(rq.to_statement())
    """

    def __init__(self, registry: EntityRegistry, dialect: Dialect | None = None) -> None:
        self.registry = registry
        self.dialect = dialect or SQLiteDialect()

    @classmethod
    def from_config(cls, registry: EntityRegistry, config: RelMetaConfig) -> QueryBuilder:
        return cls(registry, get_dialect(config.dialect))

    # === Plain CRUD ===

    def select(self, obj: Any) -> SelectQuery:
        """Select all columns of the entity for a type, instance or non-empty list."""
        descriptor = self.registry.require(obj)
        return SelectQuery(
            columns=tuple(descriptor.storage_fields(with_keys=True)),
            source=descriptor.storage_name,
        )

    def select_by_id(self, obj: Any, *ids: Any) -> SelectQuery:
        """Select one row by key; key values come from `obj` when `ids` is empty."""
        descriptor = self.registry.require(obj)
        if not ids:
            ids = tuple(self._key_values_of(descriptor, obj))
        self._check_key_arity(descriptor, ids)
        return self.select(obj).where(descriptor.key_where(), *ids)

    def insert(self, obj: Any) -> Statement:
        """Multi-row insert for one record or a list of records.

        Key columns are left out when the entity's keys are auto generated.
        Records defining create_time_touch()/update_time_touch() are touched.
        """
        records = list(obj) if isinstance(obj, (list, tuple)) else [obj]
        if not records:
            raise FieldTypeError("insert() needs at least one record.")
        descriptor = self.registry.require(records[0])
        for record in records:
            if type(record) is not descriptor.record_type:
                raise FieldTypeError(
                    f"insert() got mixed record types: {type(record).__qualname__} and "
                    f"{descriptor.record_type.__qualname__}.",
                    {"entity_name": descriptor.name},
                )

        columns = descriptor.storage_fields(with_keys=not descriptor.key_auto_generated)
        rows = []
        for record in records:
            _touch(record, "create_time_touch")
            _touch(record, "update_time_touch")
            rows.append([descriptor.column_value(record, c) for c in columns])

        values, params = values_clause(rows)
        statement = Statement(
            sql=(
                f"INSERT INTO {descriptor.storage_name} ({', '.join(columns)}) "
                f"VALUES {values}"
            ),
            params=params,
        )
        logger.debug(f"Built insert for '{descriptor.name}': {statement.sql}")
        return statement

    def update_by_id(self, record: Any) -> Statement:
        """Update all non-key columns of a record by its key.

        With a version field the SET clause stores version + 1 and the
        predicate requires the version the record was read with, so a stale
        write affects zero rows.
        """
        descriptor = self.registry.require(record)
        self._require_instance(record, "update_by_id")
        _touch(record, "update_time_touch")

        values = descriptor.value_map(record, with_keys=False)
        if not values:
            raise FieldTypeError(
                f"Entity '{descriptor.name}' has no non-key columns to update.",
                {"entity_name": descriptor.name},
            )

        current_version: Any = None
        if descriptor.version_field:
            current_version = values[descriptor.version_field]
            values[descriptor.version_field] = increment_version(current_version)

        sql = (
            f"UPDATE {descriptor.storage_name} SET "
            + ", ".join(f"{c} = ?" for c in values)
            + f" WHERE {descriptor.key_where()}"
        )
        params = [*values.values(), *descriptor.key_values(record)]
        if descriptor.version_field:
            sql += f" AND {descriptor.version_field} = ?"
            params.append(current_version)

        logger.debug(f"Built update for '{descriptor.name}': {sql}")
        return Statement(sql=sql, params=params)

    def delete_by_id(self, obj: Any, *ids: Any) -> Statement:
        """Delete by key.

        With explicit ids only the key predicate is used. Otherwise the key
        (and the version, when the entity has one) come from the record.
        """
        descriptor = self.registry.require(obj)
        sql = f"DELETE FROM {descriptor.storage_name} WHERE {descriptor.key_where()}"
        if ids:
            self._check_key_arity(descriptor, ids)
            return Statement(sql=sql, params=ids)

        params = self._key_values_of(descriptor, obj)
        if descriptor.version_field:
            sql += f" AND {descriptor.version_field} = ?"
            params.append(descriptor.column_value(obj, descriptor.version_field))
        return Statement(sql=sql, params=params)

    # === Relations ===

    def select_relation(self, record: Any, relation_name: str) -> RelationQuery:
        """Build the select for a named relation of a record.

        Raises:
            EntityNotRegisteredError: If the record, target or join entity is unknown
            RelationNotFoundError: If the entity has no such relation
            FieldTypeError: If the value field is missing or has the wrong shape
        """
        descriptor = self.registry.require(record)
        self._require_instance(record, "select_relation")
        relation = descriptor.require_relation(relation_name)
        handle = descriptor.require_target_handle(record, relation_name)

        if isinstance(relation, BelongsTo):
            target = self._target(relation, handle, collection=False)
            query = SelectQuery(
                columns=tuple(target.storage_fields(with_keys=True)),
                source=target.storage_name,
            ).where(
                f"{target.key_fields[0]} = ?",
                descriptor.column_value(record, relation.sql_id_field),
            )
        elif isinstance(relation, (HasMany, HasOne)):
            # only the first key column takes part in the predicate
            target = self._target(relation, handle, collection=isinstance(relation, HasMany))
            query = SelectQuery(
                columns=tuple(target.storage_fields(with_keys=True)),
                source=target.storage_name,
            ).where(f"{relation.sql_other_id_field} = ?", descriptor.key_values(record)[0])
        elif isinstance(relation, BelongsToMany):
            join = self.registry.require_name(relation.join_name)
            target = self._target(relation, handle, collection=True)
            j, t = join.storage_name, target.storage_name
            query = SelectQuery(
                columns=tuple(f"{t}.{c}" for c in target.storage_fields(with_keys=True)),
                source=j,
                join=(
                    f"JOIN {t} ON {j}.{relation.sql_other_id_field} = {t}.{target.key_fields[0]}"
                ),
            ).where(f"{j}.{relation.sql_id_field} = ?", descriptor.key_values(record)[0])
        elif isinstance(relation, BelongsToManyIDs):
            join = self.registry.require_name(relation.join_name)
            self._check_ids_field(relation, handle)
            target = None
            query = SelectQuery(
                columns=(relation.sql_other_id_field,),
                source=join.storage_name,
            ).where(f"{relation.sql_id_field} = ?", descriptor.key_values(record)[0])
        else:
            assert_never(relation)

        logger.debug(f"Built select for relation '{descriptor.name}.{relation_name}': {query.sql}")
        return RelationQuery(query=query, handle=handle, relation=relation, target=target)

    # === Helpers ===

    def _target(self, relation: Relation, handle: FieldHandle, collection: bool) -> EntityDescriptor:
        if relation.target:
            target = self.registry.require_name(relation.target)
            try:
                hint = handle.hint
            except FieldTypeError:
                # unresolvable hint, the explicit target decides
                logger.debug(f"Using target '{relation.target}' for relation '{relation.name}'")
                return target
            self._check_shape(relation, hint, collection)
            return target

        hint = handle.hint
        inner = self._check_shape(relation, hint, collection)
        if not isinstance(inner, type):
            raise FieldTypeError(
                f"Cannot derive the related record type of '{relation.name}' from "
                f"{hint!r}; set `target=` on the relation.",
                {"relation_name": relation.name},
            )
        return self.registry.require(inner)

    @staticmethod
    def _check_shape(relation: Relation, hint: Any, collection: bool) -> Any:
        """Check single vs collection against the kind; returns the element type."""
        is_collection, inner = unwrap_hint(hint)
        if is_collection != collection:
            expected = "a list of records" if collection else "a single (optional) record"
            raise FieldTypeError(
                f"Value field '{relation.value_field}' of {relation.kind} relation "
                f"'{relation.name}' must hold {expected}, got {hint!r}.",
                {"relation_name": relation.name, "value_field": relation.value_field},
            )
        return inner

    def _check_ids_field(self, relation: BelongsToManyIDs, handle: FieldHandle) -> None:
        if not handle.is_collection:
            raise FieldTypeError(
                f"Value field '{relation.value_field}' of relation '{relation.name}' must be a "
                f"list of ids, got {handle.hint!r}.",
                {"relation_name": relation.name, "value_field": relation.value_field},
            )

    def _key_values_of(self, descriptor: EntityDescriptor, obj: Any) -> list[Any]:
        self._require_instance(obj, "key lookup")
        return descriptor.key_values(obj)

    @staticmethod
    def _require_instance(obj: Any, operation: str) -> None:
        if isinstance(obj, (type, list, tuple)):
            raise FieldTypeError(
                f"{operation} needs a record instance (or explicit key values), "
                f"got {obj!r}.",
                {"operation": operation},
            )

    @staticmethod
    def _check_key_arity(descriptor: EntityDescriptor, ids: Sequence[Any]) -> None:
        if len(ids) != len(descriptor.key_fields):
            raise FieldTypeError(
                f"Entity '{descriptor.name}' has {len(descriptor.key_fields)} key field(s) "
                f"({', '.join(descriptor.key_fields)}) but {len(ids)} value(s) were given.",
                {"entity_name": descriptor.name},
            )
