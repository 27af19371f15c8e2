"""
MySQL Connection

Single PyMySQL connection driven from asyncio. PyMySQL is synchronous, so
every call runs on a thread-pool executor; the executor must have at least
one thread per VU to avoid client-side queueing hiding server latency.
"""

import asyncio
import logging
from concurrent.futures import Executor
from typing import Any, Optional, Sequence

import pymysql
from pymysql.cursors import DictCursor

from loadgen.connectors.base import DatabaseConnection, translate_placeholders

logger = logging.getLogger(__name__)


class MySQLConnection(DatabaseConnection):
    """
    One MySQL connection owned by a single VU.
    """

    dialect = "mysql"

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
        executor: Optional[Executor] = None,
        name: str = "default",
    ):
        """
        Initialize MySQL connection settings.

        Args:
            host: Database host
            port: Database port
            database: Schema name
            user: Username
            password: Password
            connect_timeout: Connect timeout in seconds
            statement_timeout: Socket read/write timeout in seconds
            executor: Executor for blocking driver calls (None = loop default)
            name: Descriptive name for logging (e.g., "preflight", "vu-3")
        """
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.connect_timeout = connect_timeout
        self.statement_timeout = statement_timeout
        self.name = name
        self._executor = executor
        self._conn: Optional[pymysql.connections.Connection] = None

    def _run_in_executor(self, func, *args):
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(self._executor, func, *args)

    @property
    def is_open(self) -> bool:
        return self._conn is not None and bool(self._conn.open)

    def _connect_sync(self) -> pymysql.connections.Connection:
        return pymysql.connect(
            host=self.host,
            port=int(self.port),
            user=self.user,
            password=self.password,
            database=self.database,
            connect_timeout=int(self.connect_timeout),
            read_timeout=int(self.statement_timeout),
            write_timeout=int(self.statement_timeout),
            autocommit=True,
            charset="utf8mb4",
            cursorclass=DictCursor,
        )

    async def connect(self) -> None:
        if self._conn is not None:
            return
        self._conn = await self._run_in_executor(self._connect_sync)
        logger.debug(
            f"[{self.name}] MySQL connection opened: "
            f"{self.user}@{self.host}:{self.port}/{self.database}"
        )

    def _require_conn(self) -> pymysql.connections.Connection:
        if self._conn is None:
            raise RuntimeError(f"[{self.name}] MySQL connection is not open")
        return self._conn

    @staticmethod
    def _prepare(sql: str, params: Sequence[Any]) -> tuple[str, Optional[tuple]]:
        if not params:
            return sql, None
        return translate_placeholders(sql, "format"), tuple(params)

    async def query(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        conn = self._require_conn()
        statement, args = self._prepare(sql, params)

        def _fetch() -> list[dict[str, Any]]:
            with conn.cursor() as cursor:
                cursor.execute(statement, args)
                return list(cursor.fetchall() or [])

        return await self._run_in_executor(_fetch)

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        conn = self._require_conn()
        statement, args = self._prepare(sql, params)

        def _exec() -> int:
            with conn.cursor() as cursor:
                return int(cursor.execute(statement, args) or 0)

        return await self._run_in_executor(_exec)

    async def close(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            await self._run_in_executor(conn.close)
        except pymysql.err.Error as e:
            # Already closed by the server; nothing left to release.
            logger.debug(f"[{self.name}] MySQL close ignored: {e}")
        logger.debug(f"[{self.name}] MySQL connection closed")
