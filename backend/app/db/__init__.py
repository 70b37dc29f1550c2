"""Database helpers for the entitlement stores."""

from .connection import StorageFailure, connect, dict_cursor, managed_connection

__all__ = ["StorageFailure", "connect", "dict_cursor", "managed_connection"]
