"""Connection and transaction helpers shared by the PostgreSQL repositories."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator, Optional, Tuple

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ...app_context import get_conn

if TYPE_CHECKING:  # pragma: no cover
    from ..config import EntitlementsConfig

logger = logging.getLogger("storage")


class StorageFailure(RuntimeError):
    """Opaque failure of a store operation."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Storage operation failed: {operation}")


def connect(config: EntitlementsConfig) -> PgConnection:
    """Open a new connection honouring the configured timeouts."""

    return psycopg2.connect(**config.connection_kwargs())


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None) -> Iterator[Tuple[PgConnection, bool]]:
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    connection = get_conn()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


@contextmanager
def dict_cursor(conn: Optional[PgConnection], operation: str) -> Iterator[PgCursor]:
    """Yield a ``RealDictCursor`` inside a transaction, translating driver errors."""

    try:
        with managed_connection(conn) as (connection, _managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
            finally:
                cursor.close()
    except psycopg2.Error as exc:
        logger.error("Storage operation %s failed: %s", operation, exc)
        raise StorageFailure(operation) from exc


__all__ = ["StorageFailure", "connect", "dict_cursor", "managed_connection"]
