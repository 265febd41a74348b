"""
Durable client storage with SQLite backend.
Holds per-chat state that must survive a bot restart: the active
reference point and the cart.
"""
import json
import logging
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Type, TypeVar, Union

from pydantic import BaseModel

from services.errors import PersistenceError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

# Backend failures surfaced as PersistenceError
STORAGE_ERRORS = (sqlite3.Error, OSError)


class StorageBackend:
    """Abstract key/value storage interface. Values are JSON strings."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError


class SQLiteStorage(StorageBackend):
    """
    SQLite-based storage backend.
    Every call opens its own connection and commits before returning,
    so a write is durable as soon as set() returns.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._ensure_db()

    def _ensure_db(self) -> None:
        """Create storage directory and database schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS client_storage (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
            """)
            conn.commit()

    @contextmanager
    def _get_connection(self):
        """Get SQLite connection with proper settings."""
        conn = sqlite3.connect(str(self.db_path), timeout=10.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def get(self, key: str) -> Optional[str]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT value FROM client_storage WHERE key = ?",
                (key,)
            ).fetchone()
            return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        with self._get_connection() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO client_storage (key, value, updated_at)
                VALUES (?, ?, ?)
            """, (key, value, time.time()))
            conn.commit()

    def delete(self, key: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM client_storage WHERE key = ?", (key,))
            conn.commit()
            return cursor.rowcount > 0


class MemoryStorage(StorageBackend):
    """In-process storage, lost on restart."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None


class Repository:
    """
    Typed load/save on top of a storage backend.
    Corrupt or outdated entries are dropped and reported as absent.
    """

    def __init__(self, backend: Optional[StorageBackend] = None):
        self._backend = backend

    def _get_backend(self) -> StorageBackend:
        """Get or create the configured backend."""
        if self._backend is None:
            from config import settings

            self._backend = SQLiteStorage(Path(settings.storage_db_path))
            logger.info(f"Using SQLite client storage at {settings.storage_db_path}")
        return self._backend

    def _read(self, key: str) -> Optional[str]:
        try:
            return self._get_backend().get(key)
        except STORAGE_ERRORS as e:
            raise PersistenceError(f"Failed to read {key}: {e}") from e

    def load(self, key: str, model: Type[T]) -> Optional[T]:
        """Load a single model, or None if absent."""
        raw = self._read(key)
        if raw is None:
            return None
        try:
            return model.model_validate_json(raw)
        except ValueError as e:
            logger.warning(f"Discarding unreadable entry {key}: {e}")
            self.discard(key)
            return None

    def load_list(self, key: str, model: Type[T]) -> List[T]:
        """Load a list of models, or an empty list if absent."""
        raw = self._read(key)
        if raw is None:
            return []
        try:
            return [model.model_validate(item) for item in json.loads(raw)]
        except (ValueError, TypeError) as e:
            logger.warning(f"Discarding unreadable entry {key}: {e}")
            self.discard(key)
            return []

    def save(self, key: str, value: Union[BaseModel, Sequence[BaseModel]]) -> None:
        """Serialize and store a model or a list of models."""
        if isinstance(value, BaseModel):
            payload = value.model_dump_json()
        else:
            payload = json.dumps([item.model_dump(mode="json") for item in value])
        try:
            self._get_backend().set(key, payload)
        except STORAGE_ERRORS as e:
            raise PersistenceError(f"Failed to save {key}: {e}") from e
        logger.debug(f"Saved {key}")

    def discard(self, key: str) -> bool:
        try:
            return self._get_backend().delete(key)
        except STORAGE_ERRORS as e:
            raise PersistenceError(f"Failed to delete {key}: {e}") from e


# Global storage instance
client_storage = Repository()
