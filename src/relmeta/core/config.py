"""Configuration for relmeta."""

from __future__ import annotations

import os
from typing import Literal

from pydantic import BaseModel, Field

DialectName = Literal["sqlite", "mysql", "postgresql"]

_TRUTHY = {"1", "true", "yes", "on"}


class RelMetaConfig(BaseModel):
    """Settings shared by the registry, query builder and executor."""

    dialect: DialectName = Field(
        default="sqlite", description="SQL dialect used for dialect specific statements"
    )
    table_prefix: str = Field(
        default="", description="Prefix applied to every registered storage name"
    )
    database_url: str | None = Field(
        default=None, description="SQLAlchemy URL for the statement executor"
    )
    echo: bool = Field(default=False, description="Echo executed SQL (SQLAlchemy echo)")

    @classmethod
    def from_env(
        cls,
        dialect: str | None = None,
        table_prefix: str | None = None,
        database_url: str | None = None,
        echo: bool | None = None,
    ) -> RelMetaConfig:
        """Resolve settings from arguments, environment variables, or defaults.

        Priority:
        1. Explicit argument
        2. RELMETA_DIALECT / RELMETA_TABLE_PREFIX / RELMETA_DATABASE_URL / RELMETA_ECHO
        3. Field default
        """
        values: dict[str, object] = {}
        if resolved := dialect or os.getenv("RELMETA_DIALECT"):
            values["dialect"] = "postgresql" if resolved == "postgres" else resolved
        if table_prefix is not None:
            values["table_prefix"] = table_prefix
        elif (env_prefix := os.getenv("RELMETA_TABLE_PREFIX")) is not None:
            values["table_prefix"] = env_prefix
        if resolved := database_url or os.getenv("RELMETA_DATABASE_URL"):
            values["database_url"] = resolved
        if echo is not None:
            values["echo"] = echo
        elif env_echo := os.getenv("RELMETA_ECHO"):
            values["echo"] = env_echo.strip().lower() in _TRUTHY
        return cls.model_validate(values)
