import logging
import sqlite3
import threading
import time
from contextlib import closing
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from email_to_ics.core.config import AppConfig
from email_to_ics.core.exceptions import ConfigurationError
from email_to_ics.core.models import ConfirmationEntry

logger = logging.getLogger(__name__)


def _is_expired(entry_expires_at: Optional[float], now: float) -> bool:
    return entry_expires_at is not None and now >= entry_expires_at


class ConfirmationStore:
    """Durable token -> pending invite store. pop() is an atomic read-and-delete."""

    backend: str

    def put(self, token: str, entry: ConfirmationEntry) -> None:
        raise NotImplementedError

    def pop(self, token: str) -> Optional[ConfirmationEntry]:
        raise NotImplementedError

    def delete(self, token: str) -> bool:
        raise NotImplementedError

    def cleanup_expired(self) -> int:
        raise NotImplementedError

    def get_stats(self) -> Dict[str, Any]:
        raise NotImplementedError


class InMemoryConfirmationStore(ConfirmationStore):
    backend = "memory"

    def __init__(self):
        self._entries: Dict[str, ConfirmationEntry] = {}
        self._lock = threading.Lock()

    def put(self, token: str, entry: ConfirmationEntry) -> None:
        with self._lock:
            self._entries[token] = entry

    def pop(self, token: str) -> Optional[ConfirmationEntry]:
        with self._lock:
            entry = self._entries.pop(token, None)
        if entry is None or _is_expired(entry.expires_at, time.time()):
            return None
        return entry

    def delete(self, token: str) -> bool:
        with self._lock:
            return self._entries.pop(token, None) is not None

    def cleanup_expired(self) -> int:
        now = time.time()
        with self._lock:
            expired = [t for t, e in self._entries.items() if _is_expired(e.expires_at, now)]
            for token in expired:
                del self._entries[token]
        return len(expired)

    def get_stats(self) -> Dict[str, Any]:
        now = time.time()
        with self._lock:
            entries = list(self._entries.values())
        return {
            "backend": self.backend,
            "total": len(entries),
            "expired": sum(1 for e in entries if _is_expired(e.expires_at, now)),
        }


class SqliteConfirmationStore(ConfirmationStore):
    """
    SQLite-backed store shared by all workers of the service.

    Each operation opens its own connection so the store is safe to use
    from FastAPI's threadpool. pop() runs inside BEGIN IMMEDIATE, so two
    concurrent confirms of one token cannot both receive the entry.
    """

    backend = "sqlite"

    def __init__(self, db_path: str):
        if db_path == ":memory:":
            raise ConfigurationError("SQLite confirmation store needs a file path; use CONFIRMATION_STORE=memory instead")
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._initialize_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=5.0, isolation_level=None)
        conn.execute("PRAGMA busy_timeout = 5000")
        return conn

    def _initialize_schema(self) -> None:
        with closing(self._connect()) as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS confirmations (
                    token TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    created_at REAL NOT NULL,
                    expires_at REAL
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_confirmations_expires_at ON confirmations(expires_at)")

    def put(self, token: str, entry: ConfirmationEntry) -> None:
        with closing(self._connect()) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO confirmations (token, payload, created_at, expires_at) VALUES (?, ?, ?, ?)",
                (token, entry.model_dump_json(), entry.created_at, entry.expires_at),
            )

    def pop(self, token: str) -> Optional[ConfirmationEntry]:
        with closing(self._connect()) as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute(
                    "SELECT payload, expires_at FROM confirmations WHERE token = ?", (token,)
                ).fetchone()
                if row is not None:
                    conn.execute("DELETE FROM confirmations WHERE token = ?", (token,))
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        if row is None:
            return None
        payload, expires_at = row
        if _is_expired(expires_at, time.time()):
            return None
        try:
            return ConfirmationEntry.model_validate_json(payload)
        except ValidationError as exc:
            logger.error(f"Discarding corrupted confirmation entry: {exc}")
            return None

    def delete(self, token: str) -> bool:
        with closing(self._connect()) as conn:
            cursor = conn.execute("DELETE FROM confirmations WHERE token = ?", (token,))
            return cursor.rowcount > 0

    def cleanup_expired(self) -> int:
        with closing(self._connect()) as conn:
            cursor = conn.execute(
                "DELETE FROM confirmations WHERE expires_at IS NOT NULL AND expires_at <= ?", (time.time(),)
            )
            return cursor.rowcount

    def get_stats(self) -> Dict[str, Any]:
        now = time.time()
        with closing(self._connect()) as conn:
            total = conn.execute("SELECT COUNT(*) FROM confirmations").fetchone()[0]
            expired = conn.execute(
                "SELECT COUNT(*) FROM confirmations WHERE expires_at IS NOT NULL AND expires_at <= ?", (now,)
            ).fetchone()[0]
        return {
            "backend": self.backend,
            "total": total,
            "expired": expired,
            "db_path": self.db_path,
        }


def select_confirmation_store(config: AppConfig) -> ConfirmationStore:
    if config.confirmation_store == "memory":
        return InMemoryConfirmationStore()
    if config.confirmation_store == "sqlite":
        return SqliteConfirmationStore(config.confirmation_db_path)
    raise ConfigurationError(f"Unsupported CONFIRMATION_STORE: {config.confirmation_store}")
