"""Custom exceptions for relmeta.

All exceptions follow the same conventions:
- Actionable error messages that tell what went wrong AND how to fix it
- Include context about available options when relevant
"""

from __future__ import annotations

from typing import Any


class RelMetaError(Exception):
    """Base exception for all relmeta errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Return error as JSON-serializable dict."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class ConfigurationError(RelMetaError):
    """Entity metadata is invalid and cannot be registered.

    Raised at registration time: missing required relation options,
    unresolvable implicit field names, entities without key fields.
    """

    def __init__(self, message: str, record_type: type | None = None, **context: Any) -> None:
        if record_type is not None:
            context["record_type"] = record_type.__qualname__
        super().__init__(message, context)
        self.record_type = record_type


class EntityNotRegisteredError(RelMetaError):
    """No entity descriptor exists for a type or logical name."""

    def __init__(self, entity: type | str, available_entities: list[str] | None = None) -> None:
        label = entity if isinstance(entity, str) else entity.__qualname__
        available = available_entities or []
        if available:
            message = (
                f"Entity '{label}' is not registered. "
                f"Registered entities: {', '.join(available)}"
            )
        else:
            message = f"Entity '{label}' is not registered. No entities registered yet."

        super().__init__(message, {"entity": label, "available_entities": available})
        self.entity = entity
        self.available_entities = available


class RelationNotFoundError(RelMetaError):
    """Relation does not exist on entity."""

    def __init__(
        self,
        relation_name: str,
        entity_name: str,
        available_relations: list[str] | None = None,
    ) -> None:
        available = available_relations or []
        if available:
            message = (
                f"Relation '{relation_name}' not found on '{entity_name}'. "
                f"Available relations: {', '.join(available)}"
            )
        else:
            message = (
                f"Relation '{relation_name}' not found on '{entity_name}'. "
                "No relations defined."
            )

        super().__init__(
            message,
            {
                "relation_name": relation_name,
                "entity_name": entity_name,
                "available_relations": available,
            },
        )
        self.relation_name = relation_name
        self.entity_name = entity_name
        self.available_relations = available


class UnsupportedRelationError(RelMetaError):
    """Operation invoked against a relation kind it does not support."""

    def __init__(self, relation_name: str, kind: str, operation: str) -> None:
        message = (
            f"Relation '{relation_name}' is of kind '{kind}', "
            f"which '{operation}' does not support."
        )
        super().__init__(
            message,
            {"relation_name": relation_name, "kind": kind, "operation": operation},
        )
        self.relation_name = relation_name
        self.kind = kind
        self.operation = operation


class FieldTypeError(RelMetaError):
    """A record field is missing or does not have the expected shape."""

    pass


class OptimisticLockError(RelMetaError):
    """Update or delete affected no rows: record missing or version changed.

    Both cases look identical at the SQL level; callers should refresh
    the record and let the user decide, not retry blindly.
    """

    def __init__(self, entity_name: str, key_values: list[Any], rows_affected: int) -> None:
        message = (
            f"Write to '{entity_name}' with key {key_values!r} affected {rows_affected} rows. "
            "The record was not found or its version changed since it was read."
        )
        super().__init__(
            message,
            {
                "entity_name": entity_name,
                "key_values": [str(v) for v in key_values],
                "rows_affected": rows_affected,
            },
        )
        self.entity_name = entity_name
        self.key_values = key_values
        self.rows_affected = rows_affected


class StatementError(RelMetaError):
    """Statement execution failed in the database driver."""

    pass
