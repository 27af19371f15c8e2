"""
Database connection contract shared by the dialect connectors.

Each VU owns exactly one connection for its lifetime. Connections are never
pooled, shared or re-established after a failed statement.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Literal, Sequence


class DatabaseConnection(ABC):
    """A single connection that accepts `?`-parameterized statements."""

    dialect: str = ""

    @abstractmethod
    async def connect(self) -> None:
        """Open the underlying connection."""

    @abstractmethod
    async def query(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Run a statement that returns rows. Zero rows yields an empty list."""

    @abstractmethod
    async def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a statement that modifies data; returns the affected row count."""

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        ...


def translate_placeholders(sql: str, style: Literal["format", "numeric"]) -> str:
    """
    Rewrite `?` placeholders for a driver's paramstyle.

    - format:  `?` -> `%s`  (PyMySQL)
    - numeric: `?` -> `$1`, `$2`, ... (asyncpg)

    Question marks inside single-quoted literals are left alone. In format
    style every literal `%` is doubled, so only use it when arguments are
    actually passed to the driver.
    """
    out: list[str] = []
    n = 0
    in_quote = False
    for ch in sql:
        if ch == "'":
            in_quote = not in_quote
            out.append(ch)
        elif ch == "?" and not in_quote:
            n += 1
            out.append("%s" if style == "format" else f"${n}")
        elif ch == "%" and style == "format":
            out.append("%%")
        else:
            out.append(ch)
    return "".join(out)
