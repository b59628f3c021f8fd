"""
SQLite implementations of the store collaborators.
"""

from .sqlite_store import SqliteInventoryStore
from .audit_log import SqliteAuditLog

__all__ = ["SqliteInventoryStore", "SqliteAuditLog"]
