import logging
import sqlite3
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional, Sequence

from fastapi import Request

from database_schemas import ALL_TABLE_SCHEMAS
from errors import ConflictError, InternalError

logger = logging.getLogger(__name__)

sqlite3.register_converter("BOOLEAN", lambda value: value not in (b"0", b""))


class Database:
    """Process-wide data-access handle.

    Holds only the database location; every read scope and every unit of work
    opens its own connection and closes it when done.
    """

    def __init__(self, path: str):
        self.path = path

    def open_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.path,
            detect_types=sqlite3.PARSE_DECLTYPES,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = self.open_connection()
        try:
            yield conn
        finally:
            conn.close()

    def transaction(self) -> "UnitOfWork":
        return UnitOfWork(self)

    def init_schema(self) -> None:
        with self.transaction() as uow:
            for schema in ALL_TABLE_SCHEMAS:
                uow.execute(schema)
        logger.info("Database schema ready at %s", self.path)


class UnitOfWork:
    """A single BEGIN ... COMMIT/ROLLBACK scope on a dedicated connection.

    Use it as a context manager: the transaction commits when the block exits
    normally and rolls back on any exception. The connection is closed on
    every path. ``begin``/``commit``/``rollback`` may also be called directly.
    """

    def __init__(self, db: Database):
        self._db = db
        self.conn: Optional[sqlite3.Connection] = None

    def begin(self) -> "UnitOfWork":
        self.conn = self._db.open_connection()
        try:
            # Take the write lock up front so two writers never deadlock on upgrade
            self.conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as exc:
            self.close()
            logger.error("Could not begin transaction", exc_info=True)
            raise InternalError("Internal server error.") from exc
        return self

    @property
    def active(self) -> bool:
        return self.conn is not None and self.conn.in_transaction

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        return self.conn.execute(sql, params)

    def fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[sqlite3.Row]:
        return self.conn.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        return self.conn.execute(sql, params).fetchall()

    def commit(self) -> None:
        if self.active:
            self.conn.execute("COMMIT")

    def rollback(self) -> None:
        if self.active:
            self.conn.execute("ROLLBACK")

    def close(self) -> None:
        if self.conn is None:
            return
        try:
            self.rollback()
        finally:
            self.conn.close()
            self.conn = None

    def __enter__(self) -> "UnitOfWork":
        return self.begin()

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            if exc_type is None:
                try:
                    self.commit()
                except sqlite3.Error as commit_exc:
                    self.rollback()
                    raise self._translate(commit_exc) from commit_exc
                return False
            self.rollback()
            if isinstance(exc, sqlite3.Error):
                raise self._translate(exc) from exc
            return False
        finally:
            self.close()

    @staticmethod
    def _translate(exc: sqlite3.Error) -> Exception:
        if isinstance(exc, sqlite3.IntegrityError):
            logger.warning("Transaction rolled back on constraint violation: %s", exc)
            return ConflictError("The requested change conflicts with existing data.")
        logger.error("Transaction rolled back on database error", exc_info=exc)
        return InternalError("Internal server error.")


def get_database(request: Request) -> Database:
    return request.app.state.db
