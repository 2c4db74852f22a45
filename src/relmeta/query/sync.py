"""Join table reconciliation for id-only many-to-many relations.

Given a record and one of its BelongsToManyIDs relations, build the two
statements that make the join table hold exactly the record's id list:
a delete of the rows no longer wanted, then an insert that skips rows
already present. Applying both (in that order) is idempotent.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from relmeta.core.types import BelongsToManyIDs, Statement
from relmeta.exceptions import FieldTypeError, UnsupportedRelationError
from relmeta.query.dialects import Dialect, SQLiteDialect
from relmeta.schema.models import EntityDescriptor

if TYPE_CHECKING:
    from relmeta.schema.registry import EntityRegistry

logger = logging.getLogger(__name__)


class JoinTableSynchronizer:
    """Builds reconciliation statements for a record's id list relations."""

    def __init__(self, registry: EntityRegistry, dialect: Dialect | None = None) -> None:
        self.registry = registry
        self.dialect = dialect or SQLiteDialect()

    def reconcile_delete(self, record: Any, relation_name: str) -> Statement:
        """Delete join rows whose other id is not in the record's id list.

        With an empty id list every join row of the record is deleted.

        Raises:
            EntityNotRegisteredError: If the record or join entity is unknown
            RelationNotFoundError: If the entity has no such relation
            UnsupportedRelationError: If the relation is not an id list relation
        """
        descriptor, relation, join, ids = self._resolve(record, relation_name, "reconcile_delete")
        own_id = descriptor.key_values(record)[0]

        sql = f"DELETE FROM {join.storage_name} WHERE {relation.sql_id_field} = ?"
        params: list[Any] = [own_id]
        if ids:
            sql += (
                f" AND {relation.sql_other_id_field} NOT IN "
                f"({', '.join('?' for _ in ids)})"
            )
            params.extend(ids)

        logger.debug(f"Built join delete for '{descriptor.name}.{relation_name}': {sql}")
        return Statement(sql=sql, params=params)

    def reconcile_insert(self, record: Any, relation_name: str) -> Statement | None:
        """Insert one join row per id, skipping rows that already exist.

        Returns:
            The statement, or None when the id list is empty (nothing to insert)
        """
        descriptor, relation, join, ids = self._resolve(record, relation_name, "reconcile_insert")
        if not ids:
            return None
        own_id = descriptor.key_values(record)[0]
        statement = self.dialect.insert_ignore(
            join.storage_name,
            [relation.sql_id_field, relation.sql_other_id_field],
            [(own_id, other_id) for other_id in ids],
        )
        logger.debug(
            f"Built join insert for '{descriptor.name}.{relation_name}' "
            f"({len(ids)} ids): {statement.sql}"
        )
        return statement

    def reconcile(self, record: Any, relation_name: str) -> tuple[Statement, Statement | None]:
        """Both statements, in the order they must be applied."""
        return (
            self.reconcile_delete(record, relation_name),
            self.reconcile_insert(record, relation_name),
        )

    def _resolve(
        self, record: Any, relation_name: str, operation: str
    ) -> tuple[EntityDescriptor, BelongsToManyIDs, EntityDescriptor, list[Any]]:
        descriptor = self.registry.require(record)
        relation = descriptor.require_relation(relation_name)
        if not isinstance(relation, BelongsToManyIDs):
            raise UnsupportedRelationError(relation_name, str(relation.kind), operation)
        join = self.registry.require_name(relation.join_name)
        handle = descriptor.require_target_handle(record, relation_name)

        value = handle.get()
        if value is None:
            ids: list[Any] = []
        elif isinstance(value, (list, tuple, set, frozenset)):
            # duplicates collapse, first occurrence wins
            ids = list(dict.fromkeys(value))
        else:
            raise FieldTypeError(
                f"Value field '{relation.value_field}' of relation '{relation_name}' must "
                f"hold a list of ids, got {type(value).__name__}.",
                {"relation_name": relation_name, "value_field": relation.value_field},
            )
        return descriptor, relation, join, ids
