"""Statement execution and key generation."""

from relmeta.data.executor import StatementExecutor
from relmeta.data.ids import uuid4_generator

__all__ = ["StatementExecutor", "uuid4_generator"]
