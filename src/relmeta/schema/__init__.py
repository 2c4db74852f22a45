"""Entity metadata: annotations, descriptors and the registry."""

from relmeta.schema.annotations import (
    column,
    embedded,
    pydantic_column,
    pydantic_embedded,
    pydantic_relation,
    relation,
)
from relmeta.schema.models import EntityDescriptor
from relmeta.schema.registry import (
    EntityRegistry,
    close_default_registry,
    get_default_registry,
    init_default_registry,
)

__all__ = [
    "column",
    "relation",
    "embedded",
    "pydantic_column",
    "pydantic_relation",
    "pydantic_embedded",
    "EntityDescriptor",
    "EntityRegistry",
    "init_default_registry",
    "get_default_registry",
    "close_default_registry",
]
