"""
Database connectors.

`open_connection` builds and opens the connection for the configured dialect.
"""

from __future__ import annotations

from concurrent.futures import Executor
from typing import TYPE_CHECKING, Optional

from loadgen.connectors.base import DatabaseConnection, translate_placeholders

if TYPE_CHECKING:
    from loadgen.config import RunConfig


def create_connection(
    config: "RunConfig",
    *,
    executor: Optional[Executor] = None,
    name: str = "default",
) -> DatabaseConnection:
    """Build an unopened connection for `config.dialect`."""
    if config.dialect == "postgresql":
        from loadgen.connectors.postgres_connection import PostgresConnection

        return PostgresConnection(
            host=config.host,
            port=config.port,
            database=config.database,
            user=config.user,
            password=config.password,
            connect_timeout=config.connect_timeout_seconds,
            statement_timeout=config.statement_timeout_seconds,
            name=name,
        )

    from loadgen.connectors.mysql_connection import MySQLConnection

    return MySQLConnection(
        host=config.host,
        port=config.port,
        database=config.database,
        user=config.user,
        password=config.password,
        connect_timeout=config.connect_timeout_seconds,
        statement_timeout=config.statement_timeout_seconds,
        executor=executor,
        name=name,
    )


async def open_connection(
    config: "RunConfig",
    *,
    executor: Optional[Executor] = None,
    name: str = "default",
) -> DatabaseConnection:
    conn = create_connection(config, executor=executor, name=name)
    await conn.connect()
    return conn


__all__ = [
    "DatabaseConnection",
    "create_connection",
    "open_connection",
    "translate_placeholders",
]
