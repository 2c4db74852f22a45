"""Entity registry: parses annotated record types into entity descriptors."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, Any

from relmeta.core.fields import record_type_of
from relmeta.core.naming import camel_to_snake, parse_tags
from relmeta.core.shapes import ShapeField, shape_for
from relmeta.core.types import (
    BelongsTo,
    BelongsToMany,
    BelongsToManyIDs,
    HasMany,
    HasOne,
    Relation,
    RelationKind,
)
from relmeta.exceptions import ConfigurationError, EntityNotRegisteredError, RelMetaError
from relmeta.schema.annotations import (
    AUTO_INCR,
    JOIN_NAME,
    KIND_TOKENS,
    KNOWN_TOKENS,
    PK,
    RELATION_NAME,
    SQL_ID_FIELD,
    SQL_OTHER_ID_FIELD,
    TARGET,
    VERSION,
)
from relmeta.schema.models import EntityDescriptor

if TYPE_CHECKING:
    from relmeta.core.config import RelMetaConfig

logger = logging.getLogger(__name__)


def guess_other_id_field(join_name: str, entity_name: str) -> str | None:
    """Guess the other side's join column from the join name.

    Removes the first occurrence of the entity name from the join name,
    trims underscores and appends "_id" ("book_category" on entity "book"
    gives "category_id"). This is a plain substring heuristic: it returns
    None when the entity name does not occur, and it can pick the wrong
    occurrence when the name appears more than once or inside another word.
    Set `sql_other_id_field` explicitly in those cases.
    """
    stripped = join_name.replace(entity_name, "", 1)
    if stripped == join_name:
        return None
    return stripped.strip("_") + "_id"


class EntityRegistry:
    """Registry of entity descriptors keyed by record type and logical name.

    Reads vastly outnumber writes once start-up registration is done; a
    single lock guards the map.
    """

    def __init__(self, table_prefix: str = "") -> None:
        """Initialize an empty registry.

        Args:
            table_prefix: Prepended to the storage name of every parsed entity
        """
        self._entities: dict[type, EntityDescriptor] = {}
        self._lock = threading.RLock()
        self._table_prefix = table_prefix

    @classmethod
    def from_config(cls, config: RelMetaConfig) -> EntityRegistry:
        return cls(table_prefix=config.table_prefix)

    # === Parsing ===

    def parse(self, record_type: Any, name: str | None = None) -> EntityDescriptor:
        """Parse an annotated record type and register the result.

        Args:
            record_type: Record class (or instance) to parse
            name: Logical name, defaults to the snake cased class name

        Returns:
            The registered EntityDescriptor

        Raises:
            ConfigurationError: If the annotations are invalid or no key field exists
        """
        descriptor = self.build_descriptor(record_type, name)
        self.register(descriptor.record_type, descriptor)
        return descriptor

    def parse_all(self, *record_types: Any) -> list[EntityDescriptor]:
        """Parse several record types, stopping at the first configuration error."""
        return [self.parse(t) for t in record_types]

    def build_descriptor(self, record_type: Any, name: str | None = None) -> EntityDescriptor:
        """Parse annotations into a descriptor without registering it."""
        record_type = record_type_of(record_type)
        shape = shape_for(record_type)
        if shape is None:
            raise ConfigurationError(
                f"{record_type.__qualname__} is not a dataclass or pydantic model; "
                "only annotated records can be registered.",
                record_type,
            )

        entity_name = name or camel_to_snake(record_type.__name__)
        parsed = [(f, parse_tags(f.tags)) for f in shape.iter_fields(record_type)]

        key_fields: list[str] = []
        key_auto_generated = False
        version_field: str | None = None

        # Keys and version first, so relation defaults can use the key fields
        for f, tags in parsed:
            self._check_tokens(record_type, f, tags)
            if f.column is None:
                continue
            if PK in tags:
                key_fields.append(f.column)
                if AUTO_INCR in tags:
                    key_auto_generated = True
                continue
            if VERSION in tags:
                version_field = f.column

        if not key_fields:
            raise ConfigurationError(
                f"No key fields found for {record_type.__qualname__}. "
                "Mark at least one storage mapped field with 'pk'.",
                record_type,
                entity_name=entity_name,
            )

        relations: dict[str, Relation] = {}
        for f, tags in parsed:
            relation = self._build_relation(record_type, entity_name, key_fields, f, tags)
            if relation is None:
                continue
            if relation.name in relations:
                logger.debug(
                    f"Relation '{relation.name}' on '{entity_name}' redefined by field '{f.name}'"
                )
            relations[relation.name] = relation

        return EntityDescriptor(
            name=entity_name,
            storage_name=self._table_prefix + entity_name,
            record_type=record_type,
            key_fields=key_fields,
            key_auto_generated=key_auto_generated,
            version_field=version_field,
            relations=relations,
        )

    def _check_tokens(self, record_type: type, f: ShapeField, tags: dict[str, str]) -> None:
        unknown = sorted(set(tags) - KNOWN_TOKENS)
        if unknown:
            raise ConfigurationError(
                f"Unknown annotation token(s) {', '.join(unknown)} on field '{f.name}' of "
                f"{record_type.__qualname__}. Valid tokens: {', '.join(sorted(KNOWN_TOKENS))}",
                record_type,
                field=f.name,
                unknown_tokens=unknown,
            )
        kinds = [t for t in tags if t in KIND_TOKENS]
        if len(kinds) > 1:
            raise ConfigurationError(
                f"Field '{f.name}' of {record_type.__qualname__} declares several relation "
                f"kinds ({', '.join(kinds)}); use exactly one.",
                record_type,
                field=f.name,
                kinds=kinds,
            )

    def _build_relation(
        self,
        record_type: type,
        entity_name: str,
        key_fields: list[str],
        f: ShapeField,
        tags: dict[str, str],
    ) -> Relation | None:
        kind = next((t for t in tags if t in KIND_TOKENS), None)
        if kind is None:
            return None

        name = tags.get(RELATION_NAME) or camel_to_snake(f.name)
        common: dict[str, Any] = {
            "name": name,
            "value_field": f.name,
            "target": tags.get(TARGET) or None,
        }

        if kind == RelationKind.BELONGS_TO:
            sql_id_field = tags.get(SQL_ID_FIELD) or camel_to_snake(f.name) + "_id"
            return BelongsTo(sql_id_field=sql_id_field, **common)

        if kind in (RelationKind.HAS_MANY, RelationKind.HAS_ONE):
            sql_other_id_field = tags.get(SQL_OTHER_ID_FIELD) or f"{entity_name}_id"
            if kind == RelationKind.HAS_MANY:
                return HasMany(sql_other_id_field=sql_other_id_field, **common)
            return HasOne(sql_other_id_field=sql_other_id_field, **common)

        # belongs_to_many and belongs_to_many_ids share their defaulting rules
        join_name = tags.get(JOIN_NAME)
        if not join_name:
            raise ConfigurationError(
                f"`join_name` not specified for {kind} relation '{name}' on "
                f"{record_type.__qualname__}.",
                record_type,
                relation_name=name,
            )
        sql_id_field = tags.get(SQL_ID_FIELD) or key_fields[0]
        sql_other_id_field = tags.get(SQL_OTHER_ID_FIELD) or guess_other_id_field(
            join_name, entity_name
        )
        if not sql_other_id_field:
            raise ConfigurationError(
                f"`sql_other_id_field` is required for relation '{name}' on "
                f"{record_type.__qualname__}: join name '{join_name}' does not contain "
                f"entity name '{entity_name}', so it cannot be guessed.",
                record_type,
                relation_name=name,
                join_name=join_name,
            )
        if kind == RelationKind.BELONGS_TO_MANY:
            return BelongsToMany(
                join_name=join_name,
                sql_id_field=sql_id_field,
                sql_other_id_field=sql_other_id_field,
                **common,
            )
        return BelongsToManyIDs(
            join_name=join_name,
            sql_id_field=sql_id_field,
            sql_other_id_field=sql_other_id_field,
            **common,
        )

    # === Registration and lookup ===

    def register(self, record_type: Any, descriptor: EntityDescriptor) -> None:
        """Set the descriptor for a type, overwriting any existing one.

        Any descriptor registered under the same logical name for another
        type is removed first, so a customized record class can take over
        the metadata of a base entity.
        """
        record_type = record_type_of(record_type)
        with self._lock:
            for other_type, other in list(self._entities.items()):
                if other.name == descriptor.name and other_type is not record_type:
                    logger.warning(
                        f"Entity '{descriptor.name}' now maps to {record_type.__qualname__}, "
                        f"replacing {other_type.__qualname__}"
                    )
                    del self._entities[other_type]
            self._entities[record_type] = descriptor
        logger.info(
            f"Registered entity '{descriptor.name}' ({record_type.__qualname__}) "
            f"with {len(descriptor.relations)} relation(s)"
        )

    def lookup_by_type(self, record_type: type) -> EntityDescriptor | None:
        with self._lock:
            return self._entities.get(record_type_of(record_type))

    def lookup_by_name(self, name: str) -> EntityDescriptor | None:
        with self._lock:
            for descriptor in self._entities.values():
                if descriptor.name == name:
                    return descriptor
        return None

    def lookup_by_instance(self, value: Any) -> EntityDescriptor | None:
        """Look up by record instance; lists and tuples use their first element."""
        if isinstance(value, (list, tuple)):
            if not value:
                return None
            value = value[0]
        return self.lookup_by_type(record_type_of(value))

    def require(self, value: Any) -> EntityDescriptor:
        """Like lookup_by_instance but raises EntityNotRegisteredError on a miss."""
        descriptor = self.lookup_by_instance(value)
        if descriptor is None:
            if isinstance(value, (list, tuple)):
                value = value[0] if value else "<empty sequence>"
            label = value if isinstance(value, str) else record_type_of(value)
            raise EntityNotRegisteredError(label, self.names())
        return descriptor

    def require_name(self, name: str) -> EntityDescriptor:
        """Like lookup_by_name but raises EntityNotRegisteredError on a miss."""
        descriptor = self.lookup_by_name(name)
        if descriptor is None:
            raise EntityNotRegisteredError(name, self.names())
        return descriptor

    def names(self) -> list[str]:
        with self._lock:
            return sorted(d.name for d in self._entities.values())

    def rename_storage_names(self, mapper: Callable[[str], str]) -> None:
        """Apply a function to every registered storage name.

        Example:
            registry.rename_storage_names(lambda n: "app_" + n)
        """
        with self._lock:
            for descriptor in self._entities.values():
                descriptor.storage_name = mapper(descriptor.storage_name)
        logger.info(f"Renamed storage names of {len(self)} entities")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entities)

    def __iter__(self) -> Iterator[EntityDescriptor]:
        with self._lock:
            return iter(list(self._entities.values()))

    def __contains__(self, value: Any) -> bool:
        return self.lookup_by_instance(value) is not None


# === Optional process wide registry ===

_default_registry: EntityRegistry | None = None
_default_lock = threading.Lock()


def init_default_registry(config: RelMetaConfig | None = None) -> EntityRegistry:
    """Create the process wide registry. Call once at application start."""
    global _default_registry
    with _default_lock:
        if _default_registry is not None:
            raise RelMetaError("Default registry already initialized; close it first.")
        _default_registry = EntityRegistry.from_config(config) if config else EntityRegistry()
        return _default_registry


def get_default_registry() -> EntityRegistry:
    """Return the process wide registry created by init_default_registry."""
    with _default_lock:
        if _default_registry is None:
            raise RelMetaError(
                "Default registry not initialized. Call init_default_registry() at start-up "
                "or pass an EntityRegistry explicitly."
            )
        return _default_registry


def close_default_registry() -> None:
    """Drop the process wide registry (application shutdown, tests)."""
    global _default_registry
    with _default_lock:
        _default_registry = None
