"""Compatibility shims for Python version differences."""

from __future__ import annotations

from enum import Enum

try:  # Python 3.11+
    from enum import StrEnum  # type: ignore[attr-defined]
except ImportError:  # Python 3.10

    class StrEnum(str, Enum):  # type: ignore[no-redef]
        """String-valued enum base compatible with Python 3.10+."""

        def __str__(self) -> str:
            return str(self.value)


try:  # Python 3.11+
    from typing import assert_never  # type: ignore[attr-defined]
except ImportError:  # Python 3.10
    from typing import NoReturn

    def assert_never(arg: NoReturn, /) -> NoReturn:  # type: ignore[misc]
        """Fail loudly when a closed union gains an unhandled member."""
        raise AssertionError(f"Expected code to be unreachable, but got: {arg!r}")
