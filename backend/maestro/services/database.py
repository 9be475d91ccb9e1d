import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Iterator


def _parse_timeout(raw: str, default: float = 5.0) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


DB_TIMEOUT_SECONDS = _parse_timeout(os.getenv("MAESTRO_DB_TIMEOUT_SECONDS", "5"))


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        email TEXT NOT NULL UNIQUE,
        phone TEXT,
        role TEXT NOT NULL CHECK (role IN ('customer', 'pro', 'admin')),
        status TEXT NOT NULL DEFAULT 'active',
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS customers (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL UNIQUE REFERENCES users(id) ON DELETE CASCADE,
        full_name TEXT NOT NULL,
        photo_url TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS pros (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL UNIQUE REFERENCES users(id) ON DELETE CASCADE,
        display_name TEXT NOT NULL,
        bio TEXT NOT NULL DEFAULT '',
        experience_years INTEGER NOT NULL DEFAULT 0,
        coverage_km INTEGER NOT NULL DEFAULT 10,
        approval_status TEXT NOT NULL DEFAULT 'pending'
            CHECK (approval_status IN ('pending', 'approved', 'rejected', 'suspended')),
        approved_at TEXT,
        is_online INTEGER NOT NULL DEFAULT 0,
        latitude REAL,
        longitude REAL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS service_categories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        slug TEXT NOT NULL UNIQUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS pro_categories (
        pro_id INTEGER NOT NULL REFERENCES pros(id) ON DELETE CASCADE,
        category_id INTEGER NOT NULL REFERENCES service_categories(id) ON DELETE CASCADE,
        PRIMARY KEY (pro_id, category_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS addresses (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
        street TEXT NOT NULL,
        city TEXT NOT NULL,
        country TEXT NOT NULL DEFAULT 'EC',
        latitude REAL,
        longitude REAL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS service_requests (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        customer_id INTEGER NOT NULL REFERENCES customers(id) ON DELETE CASCADE,
        category_id INTEGER NOT NULL REFERENCES service_categories(id),
        address_id INTEGER NOT NULL REFERENCES addresses(id),
        description TEXT NOT NULL,
        photos_json TEXT NOT NULL DEFAULT '[]',
        urgent_mode INTEGER NOT NULL DEFAULT 0,
        status TEXT NOT NULL DEFAULT 'open' CHECK (status IN ('open', 'awarded', 'cancelled')),
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS request_targets (
        request_id INTEGER NOT NULL REFERENCES service_requests(id) ON DELETE CASCADE,
        pro_id INTEGER NOT NULL REFERENCES pros(id) ON DELETE CASCADE,
        status TEXT NOT NULL DEFAULT 'notified' CHECK (status IN ('notified', 'viewed')),
        distance_km REAL,
        created_at TEXT NOT NULL,
        PRIMARY KEY (request_id, pro_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS quotes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        request_id INTEGER NOT NULL REFERENCES service_requests(id) ON DELETE CASCADE,
        pro_id INTEGER NOT NULL REFERENCES pros(id) ON DELETE CASCADE,
        amount_cents INTEGER NOT NULL CHECK (amount_cents > 0),
        estimated_hours INTEGER,
        message TEXT,
        status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'accepted', 'rejected')),
        created_at TEXT NOT NULL,
        UNIQUE (request_id, pro_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS jobs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        request_id INTEGER NOT NULL UNIQUE REFERENCES service_requests(id),
        quote_id INTEGER NOT NULL UNIQUE REFERENCES quotes(id),
        customer_id INTEGER NOT NULL REFERENCES customers(id),
        pro_id INTEGER NOT NULL REFERENCES pros(id),
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'in_progress', 'done', 'disputed', 'cancelled')),
        started_at TEXT,
        completed_at TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS job_status_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        job_id INTEGER NOT NULL REFERENCES jobs(id) ON DELETE CASCADE,
        actor_user_id INTEGER NOT NULL,
        from_status TEXT NOT NULL,
        to_status TEXT NOT NULL,
        note TEXT NOT NULL DEFAULT '',
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS job_messages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        job_id INTEGER NOT NULL REFERENCES jobs(id) ON DELETE CASCADE,
        sender_user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        text TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS reviews (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        job_id INTEGER NOT NULL REFERENCES jobs(id) ON DELETE CASCADE,
        author_user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        target_pro_id INTEGER NOT NULL REFERENCES pros(id) ON DELETE CASCADE,
        rating INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
        comment TEXT,
        created_at TEXT NOT NULL,
        UNIQUE (job_id, author_user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS warranty_claims (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        job_id INTEGER NOT NULL UNIQUE REFERENCES jobs(id) ON DELETE CASCADE,
        customer_id INTEGER NOT NULL REFERENCES customers(id),
        pro_id INTEGER NOT NULL REFERENCES pros(id),
        description TEXT NOT NULL,
        photos_json TEXT NOT NULL DEFAULT '[]',
        status TEXT NOT NULL DEFAULT 'open'
            CHECK (status IN ('open', 'reviewing', 'approved', 'rejected', 'resolved')),
        admin_notes TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        resolved_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notifications (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        kind TEXT NOT NULL,
        title TEXT NOT NULL,
        message TEXT NOT NULL,
        link TEXT,
        read INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notification_outbox (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        recipient_user_id INTEGER,
        audience TEXT,
        kind TEXT NOT NULL,
        title TEXT NOT NULL,
        message TEXT NOT NULL,
        link TEXT,
        status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'dispatched', 'failed')),
        attempts INTEGER NOT NULL DEFAULT 0,
        last_error TEXT,
        created_at TEXT NOT NULL,
        dispatched_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_quotes_request ON quotes (request_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_targets_pro ON request_targets (pro_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications (user_id, read)",
    "CREATE INDEX IF NOT EXISTS idx_outbox_status ON notification_outbox (status, id)",
)


class Database:
    """sqlite3 persistence shared by every marketplace component.

    Writers are serialized in-process by a lock and across processes by
    ``BEGIN IMMEDIATE``; ``transaction()`` is the single atomic multi-row
    primitive and rolls back on any exception.
    """

    def __init__(self, db_path: str, timeout: float = DB_TIMEOUT_SECONDS) -> None:
        path = Path(db_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = str(path)
        self.timeout = timeout
        self._lock = Lock()
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path,
            timeout=self.timeout,
            check_same_thread=False,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_db(self) -> None:
        with self.transaction() as conn:
            for statement in SCHEMA:
                conn.execute(statement)
            self._ensure_column(conn, "pros", "coverage_km", "INTEGER NOT NULL DEFAULT 10")
            self._ensure_column(conn, "request_targets", "distance_km", "REAL")

    def _ensure_column(self, conn: sqlite3.Connection, table: str, column: str, definition: str) -> None:
        columns = conn.execute(f"PRAGMA table_info({table})").fetchall()
        existing = {row["name"] for row in columns}
        if column in existing:
            return
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")

    @contextmanager
    def read(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            conn = self._connect()
            try:
                yield conn
            finally:
                conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            conn = self._connect()
            try:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    yield conn
                except BaseException:
                    conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
            finally:
                conn.close()


default_db = str(Path(__file__).resolve().parents[2] / "data" / "maestro.sqlite3")
database = Database(db_path=os.getenv("MAESTRO_DB_PATH", default_db))
