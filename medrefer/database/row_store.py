"""
SQLite row store

Thin async wrapper over a single sqlite3 connection.

- Every public method is a coroutine; the blocking sqlite3 call runs in a
  worker thread (asyncio.to_thread), so callers suspend only here
- A lock serializes access to the one connection (single writer)
- Rows come back as plain dicts
- sqlite3 failures are re-raised as PersistenceError / ConstraintError
"""
import asyncio
import logging
import sqlite3
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional, Sequence

from medrefer.core.errors import ConstraintError, PersistenceError
from medrefer.database.query import Where, check_identifier, check_order_by
from medrefer.database.schema import SCHEMA

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


class RowStore:
    """
    Table-scoped CRUD plus raw queries against one SQLite file

    Example:
        >>> store = RowStore(":memory:")
        >>> await store.initialize()
        >>> await store.insert("patients", row)
        >>> rows = await store.query("patients", Where().equals("gender", "F"))
        >>> await store.close()
    """
    def __init__(self, path: str):
        self.path = path
        self._lock = Lock()
        self._conn: Optional[sqlite3.Connection] = None

    def _connect(self) -> sqlite3.Connection:
        if self._conn is None:
            if self.path != ":memory:":
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                self.path,
                check_same_thread=False,
                isolation_level=None,  # autocommit; insert_many opens its own transaction
            )
            conn.row_factory = sqlite3.Row
            if self.path != ":memory:":
                conn.execute("PRAGMA journal_mode=WAL")
            self._conn = conn
            logger.info("Opened database %s", self.path)
        return self._conn

    async def _run(self, operation: str, fn, *args):
        def call():
            with self._lock:
                return fn(self._connect(), *args)

        try:
            return await asyncio.to_thread(call)
        except sqlite3.IntegrityError as exc:
            logger.error("Constraint violation during %s: %s", operation, exc)
            raise ConstraintError(f"{operation} violated a constraint: {exc}", {"operation": operation}) from exc
        except sqlite3.Error as exc:
            logger.error("Database error during %s: %s", operation, exc)
            raise PersistenceError(f"{operation} failed: {exc}", {"operation": operation}) from exc

    # Schema / lifecycle

    async def initialize(self) -> None:
        """Create tables and indexes if they do not exist yet"""
        await self._run("initialize", lambda conn: conn.executescript(SCHEMA))

    async def close(self) -> None:
        def close_conn():
            with self._lock:
                if self._conn is not None:
                    self._conn.close()
                    self._conn = None

        await asyncio.to_thread(close_conn)
        logger.info("Closed database %s", self.path)

    # Writes

    async def insert(self, table: str, row: Row) -> str:
        """
        Insert one row

        Returns:
            The row's "id" value
        """
        sql, params = _insert_sql(table, row)
        await self._run(f"insert into {table}", lambda conn: conn.execute(sql, params))
        return row.get("id")

    async def insert_many(self, table: str, rows: Sequence[Row]) -> int:
        """
        Insert rows in one transaction (all or nothing)
        """
        if not rows:
            return 0
        statements = [_insert_sql(table, row) for row in rows]

        def write(conn: sqlite3.Connection) -> int:
            conn.execute("BEGIN")
            try:
                for sql, params in statements:
                    conn.execute(sql, params)
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise
            return len(statements)

        return await self._run(f"batch insert into {table}", write)

    async def update(self, table: str, values: Row, where: Where) -> int:
        """
        Update matching rows

        Returns:
            Number of rows affected
        """
        if not where:
            raise ValueError("update() requires a predicate")
        assignments = ", ".join(f"{check_identifier(column)} = ?" for column in values)
        sql = f"UPDATE {check_identifier(table)} SET {assignments} WHERE {where.clause}"
        params = tuple(values.values()) + where.args
        return await self._run(f"update {table}", lambda conn: conn.execute(sql, params).rowcount)

    async def delete(self, table: str, where: Where) -> int:
        """
        Delete matching rows

        Returns:
            Number of rows affected
        """
        if not where:
            raise ValueError("delete() requires a predicate")
        sql = f"DELETE FROM {check_identifier(table)} WHERE {where.clause}"
        return await self._run(f"delete from {table}", lambda conn: conn.execute(sql, where.args).rowcount)

    # Reads

    async def query(
        self,
        table: str,
        where: Optional[Where] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Row]:
        sql = f"SELECT * FROM {check_identifier(table)}"
        params: tuple = ()
        if where:
            sql += f" WHERE {where.clause}"
            params = where.args
        if check_order_by(order_by):
            sql += f" ORDER BY {order_by}"
        if limit is not None:
            sql += " LIMIT ?"
            params += (int(limit),)
            if offset is not None:
                sql += " OFFSET ?"
                params += (int(offset),)
        elif offset is not None:
            sql += " LIMIT -1 OFFSET ?"
            params += (int(offset),)
        return await self.raw_query(sql, params)

    async def query_one(self, table: str, where: Where) -> Optional[Row]:
        rows = await self.query(table, where, limit=1)
        return rows[0] if rows else None

    async def raw_query(self, sql: str, args: Sequence[Any] = ()) -> List[Row]:
        """
        Run a hand-written SELECT and return rows as dicts
        """
        def fetch(conn: sqlite3.Connection) -> List[Row]:
            return [dict(row) for row in conn.execute(sql, tuple(args)).fetchall()]

        return await self._run("query", fetch)

    async def count(self, table: str, where: Optional[Where] = None) -> int:
        sql = f"SELECT COUNT(*) AS count FROM {check_identifier(table)}"
        params: tuple = ()
        if where:
            sql += f" WHERE {where.clause}"
            params = where.args
        rows = await self.raw_query(sql, params)
        return rows[0]["count"] if rows else 0


def _insert_sql(table: str, row: Row):
    if not row:
        raise ValueError("insert() requires at least one column")
    column_list = ", ".join(check_identifier(column) for column in row)
    placeholders = ", ".join("?" for _ in row)
    return (
        f"INSERT INTO {check_identifier(table)} ({column_list}) VALUES ({placeholders})",
        tuple(row.values()),
    )
