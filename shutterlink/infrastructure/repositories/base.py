"""Base repository protocol and utilities.

This module defines the interface that all repositories must implement.
"""
import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Protocol

from ...errors import ResourceConflict, StorageUnavailable

logger = logging.getLogger(__name__)


class ConnectionProtocol(Protocol):
    """Protocol for database connection."""

    in_transaction: bool

    def execute(self, sql: str, parameters: tuple | dict = ...) -> sqlite3.Cursor: ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...


class Repository:
    """Base repository class.

    All repositories should inherit from this class. Connections run in
    autocommit mode, so a single statement is its own unit of work; use
    ``transaction()`` to group several.

    Example:
        class GuestRepository(Repository):
            def get_by_id(self, guest_id: str) -> dict | None:
                return self._fetchone("SELECT * FROM guests WHERE id = ?", (guest_id,))
    """

    def __init__(self, connection: ConnectionProtocol):
        """Initialize repository with database connection.

        Args:
            connection: Database connection (sqlite3.Connection or compatible)
        """
        self._conn = connection

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run the enclosed statements atomically.

        Nested use joins the outer transaction. ``BEGIN IMMEDIATE`` takes
        the write lock up front so two writers never interleave.
        """
        if self._conn.in_transaction:
            yield
            return

        self._execute("BEGIN IMMEDIATE")
        try:
            yield
        except BaseException:
            self._conn.rollback()
            raise
        else:
            try:
                self._conn.commit()
            except sqlite3.Error as exc:
                raise StorageUnavailable(f"Commit failed: {exc}") from exc

    def _execute(self, sql: str, parameters: tuple | dict = ()) -> sqlite3.Cursor:
        """Execute SQL query with parameters.

        Args:
            sql: SQL query string
            parameters: Query parameters (prevents SQL injection)

        Returns:
            sqlite3.Cursor with results

        Raises:
            ResourceConflict: On a uniqueness or constraint violation
            StorageUnavailable: On any other database error
        """
        try:
            return self._conn.execute(sql, parameters)
        except sqlite3.IntegrityError as exc:
            raise ResourceConflict(str(exc)) from exc
        except sqlite3.Error as exc:
            logger.error("Database error: %s", exc)
            raise StorageUnavailable() from exc

    def _fetchone(self, sql: str, parameters: tuple | dict = ()) -> dict | None:
        return self._row_to_dict(self._execute(sql, parameters).fetchone())

    def _fetchall(self, sql: str, parameters: tuple | dict = ()) -> list[dict]:
        return [dict(row) for row in self._execute(sql, parameters).fetchall()]

    def _row_to_dict(self, row: sqlite3.Row | None) -> dict | None:
        """Convert sqlite3.Row to dictionary.

        Args:
            row: Database row or None

        Returns:
            Dictionary representation or None
        """
        return dict(row) if row else None

    @staticmethod
    def _placeholders(values) -> str:
        return ", ".join("?" for _ in values)
