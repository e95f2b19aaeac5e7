"""
SQLite key-value store and the document repository built on it.
Schema: kv_store (key -> JSON text). The whole {settings, records}
document lives under one key, so it is always read and written as a unit.
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional

from trt_tracker.config import DB_PATH, DOCUMENT_KEY
from trt_tracker.core.errors import TransportFailure

_local = threading.local()

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS kv_store (
    key         TEXT    PRIMARY KEY,
    value       TEXT    NOT NULL,
    updated_at  TEXT    NOT NULL
);
"""

# Keys the browser client used before settings and records were merged
LEGACY_SETTINGS_KEY = "trt_user_settings"
LEGACY_RECORDS_KEY = "trt_injection_records"


def get_connection(db_path: Path = DB_PATH) -> sqlite3.Connection:
    """Thread-local SQLite connection with WAL mode, one per database file."""
    conns = getattr(_local, "conns", None)
    if conns is None:
        conns = _local.conns = {}
    key = str(db_path)
    if conns.get(key) is None:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(key, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conns[key] = conn
    return conns[key]


def close_connection(db_path: Path = DB_PATH):
    conns = getattr(_local, "conns", {})
    conn = conns.pop(str(db_path), None)
    if conn is not None:
        conn.close()


@contextmanager
def db_cursor(db_path: Path = DB_PATH):
    """Yield a cursor, auto-commit on success, rollback on error."""
    conn = get_connection(db_path)
    cur = conn.cursor()
    try:
        yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def _migrate_tables(db_path: Path, document_key: str):
    """
    Fold the two pre-merge keys (settings, records) into the single
    document key. Runs once: the old keys are removed afterwards.
    """
    with db_cursor(db_path) as cur:
        cur.execute(
            "SELECT key, value FROM kv_store WHERE key IN (?, ?)",
            (LEGACY_SETTINGS_KEY, LEGACY_RECORDS_KEY),
        )
        legacy = {row["key"]: row["value"] for row in cur.fetchall()}
        if not legacy:
            return

        print("[trt-db] Migrating split settings/records keys into", document_key, flush=True)
        cur.execute("SELECT value FROM kv_store WHERE key=?", (document_key,))
        if cur.fetchone() is None:
            document = {
                "settings": _loads_or(legacy.get(LEGACY_SETTINGS_KEY), None),
                "records": _loads_or(legacy.get(LEGACY_RECORDS_KEY), []),
            }
            _put(cur, document_key, json.dumps(document))
        else:
            print("[trt-db] Document key already present, dropping legacy keys only", flush=True)
        cur.execute(
            "DELETE FROM kv_store WHERE key IN (?, ?)",
            (LEGACY_SETTINGS_KEY, LEGACY_RECORDS_KEY),
        )
    print("[trt-db] kv_store migration complete", flush=True)


def _loads_or(text: Optional[str], fallback):
    if text is None:
        return fallback
    try:
        return json.loads(text)
    except ValueError as e:
        print(f"[trt-db] legacy value not JSON, dropped: {e}", flush=True)
        return fallback


def _put(cur: sqlite3.Cursor, key: str, value: str):
    cur.execute(
        """INSERT INTO kv_store (key, value, updated_at) VALUES (?,?,?)
           ON CONFLICT(key) DO UPDATE SET
               value=excluded.value, updated_at=excluded.updated_at""",
        (key, value, datetime.now().isoformat()),
    )


def init_db(db_path: Path = DB_PATH, document_key: str = DOCUMENT_KEY):
    """Create tables if they don't exist, run migrations."""
    with db_cursor(db_path) as cur:
        cur.executescript(SCHEMA_SQL)
    _migrate_tables(db_path, document_key)
    print("[trt-db] Database initialized at", db_path, flush=True)


# --- Key-value helpers ---

def kv_get(key: str, db_path: Path = DB_PATH) -> Optional[str]:
    with db_cursor(db_path) as cur:
        cur.execute("SELECT value FROM kv_store WHERE key=?", (key,))
        row = cur.fetchone()
        return row["value"] if row else None


def kv_put(key: str, value: str, db_path: Path = DB_PATH):
    with db_cursor(db_path) as cur:
        _put(cur, key, value)


def kv_delete(key: str, db_path: Path = DB_PATH) -> bool:
    with db_cursor(db_path) as cur:
        cur.execute("DELETE FROM kv_store WHERE key=?", (key,))
        return cur.rowcount > 0


# --- Repository ---

class SqliteDocumentRepository:
    """load()/save() of the raw document dict, backed by kv_store."""

    def __init__(self, db_path: Path = DB_PATH, key: str = DOCUMENT_KEY):
        self.db_path = Path(db_path)
        self.key = key
        try:
            init_db(self.db_path, self.key)
        except sqlite3.Error as e:
            raise TransportFailure(f"cannot open database {self.db_path}: {e}") from e

    def load(self) -> Optional[dict]:
        """Raw stored document, None on first run. Unparseable JSON also reads as None."""
        try:
            text = kv_get(self.key, self.db_path)
        except sqlite3.Error as e:
            raise TransportFailure(f"load failed: {e}") from e
        if text is None:
            return None
        try:
            return json.loads(text)
        except ValueError as e:
            print(f"[trt-db] stored document is not JSON, ignoring: {e}", flush=True)
            return None

    def save(self, document: dict):
        try:
            kv_put(self.key, json.dumps(document), self.db_path)
        except sqlite3.Error as e:
            raise TransportFailure(f"save failed: {e}") from e

    def clear(self) -> bool:
        try:
            return kv_delete(self.key, self.db_path)
        except sqlite3.Error as e:
            raise TransportFailure(f"clear failed: {e}") from e
