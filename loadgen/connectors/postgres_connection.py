"""
Postgres Connection

Single asyncpg connection owned by one VU.
"""

import logging
import re
import ssl as ssl_module
from typing import Optional, Any, Sequence

import asyncpg
from asyncpg import Connection

from loadgen.connectors.base import DatabaseConnection, translate_placeholders

logger = logging.getLogger(__name__)

_STATUS_ROWCOUNT_RE = re.compile(r"(\d+)\s*$")


class PostgresConnection(DatabaseConnection):
    """
    One Postgres connection; statements use `?` and are rewritten to `$n`.
    """

    dialect = "postgresql"

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        connect_timeout: int = 10,
        statement_timeout: float = 30.0,
        *,
        name: str = "default",
        ssl: bool | ssl_module.SSLContext | None = None,
    ):
        """
        Initialize Postgres connection settings.

        Args:
            host: Database host
            port: Database port
            database: Database name
            user: Username
            password: Password
            connect_timeout: Connect timeout in seconds
            statement_timeout: Command timeout in seconds
            name: Descriptive name for logging (e.g., "preflight", "vu-3")
            ssl: SSL context or True/False
        """
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.connect_timeout = connect_timeout
        self.statement_timeout = statement_timeout
        self.name = name
        self.ssl = ssl

        self._conn: Optional[Connection] = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None and not self._conn.is_closed()

    async def connect(self) -> None:
        if self._conn is not None:
            return
        self._conn = await asyncpg.connect(
            host=self.host,
            port=self.port,
            database=self.database,
            user=self.user,
            password=self.password,
            timeout=self.connect_timeout,
            command_timeout=self.statement_timeout,
            ssl=self.ssl,
        )
        logger.debug(
            f"[{self.name}] Postgres connection opened: "
            f"{self.user}@{self.host}:{self.port}/{self.database}"
        )

    def _require_conn(self) -> Connection:
        if self._conn is None:
            raise RuntimeError(f"[{self.name}] Postgres connection is not open")
        return self._conn

    async def query(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        conn = self._require_conn()
        rows = await conn.fetch(translate_placeholders(sql, "numeric"), *params)
        return [dict(r) for r in rows]

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """
        Execute a statement that doesn't return rows.

        Returns:
            Affected row count parsed from the status string (e.g., "UPDATE 1")
        """
        conn = self._require_conn()
        status = await conn.execute(translate_placeholders(sql, "numeric"), *params)
        m = _STATUS_ROWCOUNT_RE.search(str(status or ""))
        return int(m.group(1)) if m else 0

    async def close(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        await conn.close()
        logger.debug(f"[{self.name}] Postgres connection closed")
