"""
Operation log backed by the inventory database.

Entries are written to the operation_logs table created by
SqliteInventoryStore. The table is trimmed to the newest entries on every
write.
"""

import json
import logging
import sqlite3

from ..core.store import AuditLog
from .sqlite_store import SqliteInventoryStore


logger = logging.getLogger(__name__)

MAX_LOG_ENTRIES = 1000


class SqliteAuditLog(AuditLog):
    """
    Writes structured operation log entries to operation_logs.

    Recording never raises: a failed write is logged and dropped so the
    surrounding export or import still succeeds.
    """

    def __init__(self, store: SqliteInventoryStore, max_entries: int = MAX_LOG_ENTRIES):
        """
        Initialize the audit log.

        Args:
            store: Inventory store whose connection holds operation_logs
            max_entries: Number of most recent entries to retain
        """
        self.store = store
        self.max_entries = max_entries

    def record(
        self,
        op_type: str,
        target_type: str,
        target_id: int,
        description: dict,
    ) -> None:
        try:
            conn = self.store.conn
            conn.execute("""
                INSERT INTO operation_logs (op_type, target_type, target_id, desc, old_data, new_data)
                VALUES (?, ?, ?, ?, NULL, NULL)
            """, (op_type, target_type, target_id, json.dumps(description, ensure_ascii=False)))
            conn.execute("""
                DELETE FROM operation_logs WHERE id NOT IN (
                    SELECT id FROM operation_logs ORDER BY id DESC LIMIT ?
                )
            """, (self.max_entries,))
            logger.debug(f"Recorded {op_type} {target_type} log entry")
        except (sqlite3.Error, AttributeError) as e:
            logger.warning(f"Failed to write audit log entry ({op_type}): {e}")

    def list_entries(self, limit: int = 100) -> list:
        """
        Get the newest log entries.

        Args:
            limit: Max rows to return

        Returns:
            List of entry dicts with desc decoded, newest first
        """
        cursor = self.store.conn.cursor()
        cursor.execute(
            "SELECT * FROM operation_logs ORDER BY id DESC LIMIT ?", (limit,)
        )
        entries = []
        for row in cursor.fetchall():
            entry = dict(row)
            try:
                entry["desc"] = json.loads(entry["desc"]) if entry["desc"] else {}
            except ValueError:
                # Free-text entries written by older versions stay as-is
                pass
            entries.append(entry)
        return entries
