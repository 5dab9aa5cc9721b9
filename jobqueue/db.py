import sqlite3

from .config import DEFAULT_CONFIG, sanitize_table_name
from .exceptions import StorageError

DEFAULT_DB_FILE = "queue.db"

SCHEMA = """
PRAGMA journal_mode=WAL;
CREATE TABLE IF NOT EXISTS {table} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    task TEXT NOT NULL,
    payload TEXT NOT NULL,
    queue TEXT NOT NULL DEFAULT 'default',
    priority INTEGER NOT NULL DEFAULT 5,
    status TEXT NOT NULL,
    attempts INTEGER NOT NULL DEFAULT 0,
    max_attempts INTEGER NOT NULL,
    timeout INTEGER NOT NULL,
    backoff_strategy TEXT NOT NULL,
    retry_delay INTEGER NOT NULL,
    tags TEXT NOT NULL DEFAULT '[]',
    exception TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    available_at TEXT NOT NULL,
    claimed_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_{table}_status_available ON {table}(status, available_at);
CREATE INDEX IF NOT EXISTS idx_{table}_queue_status ON {table}(queue, status);
CREATE TABLE IF NOT EXISTS config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


def connect_db(path: str = DEFAULT_DB_FILE, table: str = "jobs") -> sqlite3.Connection:
    try:
        conn = sqlite3.connect(path, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.executescript(SCHEMA.format(table=sanitize_table_name(table)))
    except sqlite3.Error as e:
        raise StorageError(f"DB error while opening {path}: {e}")
    return conn


def init_db(conn: sqlite3.Connection):
    """Seed config defaults without touching values an operator already set."""
    try:
        with conn:
            for k, v in DEFAULT_CONFIG.items():
                conn.execute(
                    "INSERT OR IGNORE INTO config(key, value) VALUES(?,?)", (k, v)
                )
    except sqlite3.Error as e:
        raise StorageError(f"DB error while seeding config: {e}")
