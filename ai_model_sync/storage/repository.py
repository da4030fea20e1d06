"""
Repository pattern for data access.

SQLite-backed dataset store: one row per model holding its JSON document,
plus an append-only history of every published version.
"""

import json
import sqlite3
from typing import List, Optional

from .base import KeyedLocks, StoreUnavailableError, StoreWriteConflict, check_upsert, decode_document
from .db import get_connection
from .models import ModelRecord


class SqliteDatasetStore:
    """Dataset store persisting model records in SQLite.

    Each upsert runs in a single transaction, so readers on other
    connections see either the old or the new document, never a mix.
    """

    def __init__(self, db_path: str = "ai_model_sync.db"):
        """Initialize the store with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._locks = KeyedLocks()

    def lock(self, model_id: str):
        """Serialize writers for one model id."""
        return self._locks.hold(model_id)

    def initialize(self) -> None:
        """Create the model_record and history tables if they don't exist.

        The history table is append-only: rows are never updated or deleted.
        """
        conn = get_connection(self.db_path)
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS model_record (
                    model_id TEXT PRIMARY KEY,
                    document TEXT NOT NULL,
                    last_verified_at TEXT NOT NULL,
                    source_hash TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS model_record_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    model_id TEXT NOT NULL,
                    document TEXT NOT NULL,
                    last_verified_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_history_model_id
                ON model_record_history (model_id, id)
            """)
            conn.commit()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot initialize dataset database {self.db_path}: {e}") from e
        finally:
            conn.close()

    def get(self, model_id: str) -> Optional[ModelRecord]:
        """Get the published record for a model, or None if never published."""
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT document FROM model_record WHERE model_id = ?",
                (model_id,)
            ).fetchone()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot read {model_id} from {self.db_path}: {e}") from e
        finally:
            conn.close()
        if row is None:
            return None
        return decode_document(row[0], self.db_path)

    def upsert(self, record: ModelRecord) -> None:
        """Publish a record, replacing the current one for its model id.

        Args:
            record: Validated record to publish

        Raises:
            StoreWriteConflict: If the record would regress last_verified_at
            StoreUnavailableError: If the database cannot be written
        """
        document = json.dumps(record.to_document(), sort_keys=True)
        verified_at = record.last_verified_at.isoformat()

        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT document FROM model_record WHERE model_id = ?",
                (record.model_id,)
            ).fetchone()
            existing = decode_document(row[0], self.db_path) if row else None
            check_upsert(existing, record)

            conn.execute("""
                INSERT INTO model_record (model_id, document, last_verified_at, source_hash)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(model_id) DO UPDATE SET
                    document = excluded.document,
                    last_verified_at = excluded.last_verified_at,
                    source_hash = excluded.source_hash
            """, (record.model_id, document, verified_at, record.source_hash))
            conn.execute("""
                INSERT INTO model_record_history (model_id, document, last_verified_at)
                VALUES (?, ?, ?)
            """, (record.model_id, document, verified_at))
            conn.commit()
        except StoreWriteConflict:
            conn.rollback()
            raise
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreUnavailableError(f"Cannot write {record.model_id} to {self.db_path}: {e}") from e
        finally:
            conn.close()

    def list_all(self) -> List[ModelRecord]:
        """List every published record ordered by model id."""
        conn = get_connection(self.db_path)
        try:
            rows = conn.execute(
                "SELECT document FROM model_record ORDER BY model_id"
            ).fetchall()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot list records in {self.db_path}: {e}") from e
        finally:
            conn.close()
        return [decode_document(row[0], self.db_path) for row in rows]

    def history(self, model_id: str) -> List[ModelRecord]:
        """List every version ever published for a model, oldest first."""
        conn = get_connection(self.db_path)
        try:
            rows = conn.execute(
                "SELECT document FROM model_record_history WHERE model_id = ? ORDER BY id",
                (model_id,)
            ).fetchall()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot read history of {model_id} from {self.db_path}: {e}") from e
        finally:
            conn.close()
        return [decode_document(row[0], self.db_path) for row in rows]
