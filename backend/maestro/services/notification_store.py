import logging
import os
import sqlite3
from typing import Callable, List, Optional

from maestro.models import NotificationRecord
from maestro.services.database import Database, database, utc_now_iso

logger = logging.getLogger(__name__)

ADMIN_AUDIENCE = "admins"


def _parse_max_attempts(raw: str, default: int = 5) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


NOTIFICATION_MAX_ATTEMPTS = _parse_max_attempts(os.getenv("NOTIFICATION_MAX_ATTEMPTS", "5"))

AdminResolver = Callable[[sqlite3.Connection], List[int]]


def active_admin_user_ids(conn: sqlite3.Connection) -> List[int]:
    rows = conn.execute(
        "SELECT id FROM users WHERE role = 'admin' AND status = 'active' ORDER BY id"
    ).fetchall()
    return [int(row["id"]) for row in rows]


def format_cents(amount_cents: int) -> str:
    return f"${amount_cents / 100:,.2f}"


class NotificationStore:
    """Durable notification records fed by a transactional outbox.

    Components call ``enqueue`` inside their own transaction so intents commit
    with the entity change; ``dispatch_pending`` turns intents into
    notification rows one at a time after that commit.
    """

    def __init__(
        self,
        db: Database,
        admin_resolver: AdminResolver = active_admin_user_ids,
        max_attempts: int = NOTIFICATION_MAX_ATTEMPTS,
    ) -> None:
        self.db = db
        self.admin_resolver = admin_resolver
        self.max_attempts = max_attempts

    def enqueue(
        self,
        conn: sqlite3.Connection,
        *,
        user_id: int,
        kind: str,
        title: str,
        message: str,
        link: Optional[str] = None,
    ) -> int:
        cursor = conn.execute(
            """
            INSERT INTO notification_outbox (recipient_user_id, audience, kind, title, message, link, status, created_at)
            VALUES (?, NULL, ?, ?, ?, ?, 'pending', ?)
            """,
            (user_id, kind, title, message, link, utc_now_iso()),
        )
        return int(cursor.lastrowid)

    def enqueue_admin_broadcast(
        self,
        conn: sqlite3.Connection,
        *,
        kind: str,
        title: str,
        message: str,
        link: Optional[str] = None,
    ) -> int:
        cursor = conn.execute(
            """
            INSERT INTO notification_outbox (recipient_user_id, audience, kind, title, message, link, status, created_at)
            VALUES (NULL, ?, ?, ?, ?, ?, 'pending', ?)
            """,
            (ADMIN_AUDIENCE, kind, title, message, link, utc_now_iso()),
        )
        return int(cursor.lastrowid)

    def notify(
        self,
        user_id: int,
        kind: str,
        title: str,
        message: str,
        link: Optional[str] = None,
    ) -> bool:
        try:
            with self.db.transaction() as conn:
                self._deliver(conn, user_id, kind=kind, title=title, message=message, link=link)
        except Exception:
            logger.exception("Notification insert failed: user_id=%s kind=%s", user_id, kind)
            return False
        return True

    def _deliver(
        self,
        conn: sqlite3.Connection,
        user_id: int,
        *,
        kind: str,
        title: str,
        message: str,
        link: Optional[str],
    ) -> int:
        cursor = conn.execute(
            """
            INSERT INTO notifications (user_id, kind, title, message, link, read, created_at)
            VALUES (?, ?, ?, ?, ?, 0, ?)
            """,
            (user_id, kind, title, message, link, utc_now_iso()),
        )
        return int(cursor.lastrowid)

    def dispatch_pending(self, limit: int = 200) -> int:
        """Deliver pending outbox intents; returns how many were dispatched.

        Each intent is handled in its own transaction so one failing recipient
        never blocks the rest. Failed intents stay pending until they reach
        ``max_attempts``.
        """
        dispatched = 0
        last_id = 0
        processed = 0
        while processed < limit:
            with self.db.read() as conn:
                row = conn.execute(
                    """
                    SELECT * FROM notification_outbox
                    WHERE status = 'pending' AND id > ?
                    ORDER BY id ASC
                    LIMIT 1
                    """,
                    (last_id,),
                ).fetchone()
            if not row:
                break
            last_id = int(row["id"])
            processed += 1
            try:
                if self._dispatch_one(last_id):
                    dispatched += 1
            except Exception as exc:
                logger.exception("Notification dispatch failed: outbox_id=%s kind=%s", last_id, row["kind"])
                self._record_failure(last_id, exc)
        return dispatched

    def _dispatch_one(self, outbox_id: int) -> bool:
        with self.db.transaction() as conn:
            row = conn.execute(
                "SELECT * FROM notification_outbox WHERE id = ? AND status = 'pending'",
                (outbox_id,),
            ).fetchone()
            if not row:
                return False

            now_iso = utc_now_iso()
            if row["audience"] == ADMIN_AUDIENCE:
                # Fan out into one intent per admin so each delivery retries on its own.
                for admin_id in self.admin_resolver(conn):
                    self.enqueue(
                        conn,
                        user_id=admin_id,
                        kind=row["kind"],
                        title=row["title"],
                        message=row["message"],
                        link=row["link"],
                    )
            elif row["recipient_user_id"] is not None:
                self._deliver(
                    conn,
                    int(row["recipient_user_id"]),
                    kind=row["kind"],
                    title=row["title"],
                    message=row["message"],
                    link=row["link"],
                )
            conn.execute(
                """
                UPDATE notification_outbox
                SET status = 'dispatched', attempts = attempts + 1, dispatched_at = ?
                WHERE id = ?
                """,
                (now_iso, outbox_id),
            )
        return True

    def _record_failure(self, outbox_id: int, exc: Exception) -> None:
        try:
            with self.db.transaction() as conn:
                conn.execute(
                    """
                    UPDATE notification_outbox
                    SET attempts = attempts + 1,
                        last_error = ?,
                        status = CASE WHEN attempts + 1 >= ? THEN 'failed' ELSE 'pending' END
                    WHERE id = ?
                    """,
                    (str(exc)[:500], self.max_attempts, outbox_id),
                )
        except Exception:
            logger.exception("Could not record notification failure: outbox_id=%s", outbox_id)

    def pending_count(self) -> int:
        with self.db.read() as conn:
            row = conn.execute("SELECT COUNT(*) AS n FROM notification_outbox WHERE status = 'pending'").fetchone()
        return int(row["n"])

    def _record_from_row(self, row: sqlite3.Row) -> NotificationRecord:
        return NotificationRecord(
            id=row["id"],
            user_id=row["user_id"],
            kind=row["kind"],
            title=row["title"],
            message=row["message"],
            link=row["link"],
            read=bool(row["read"]),
            created_at=row["created_at"],
        )

    def list_for_user(self, user_id: int, unread_only: bool = False, limit: int = 50) -> List[NotificationRecord]:
        query = "SELECT * FROM notifications WHERE user_id = ?"
        if unread_only:
            query += " AND read = 0"
        query += " ORDER BY id DESC LIMIT ?"
        with self.db.read() as conn:
            rows = conn.execute(query, (user_id, limit)).fetchall()
        return [self._record_from_row(row) for row in rows]

    def unread_count(self, user_id: int) -> int:
        with self.db.read() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM notifications WHERE user_id = ? AND read = 0",
                (user_id,),
            ).fetchone()
        return int(row["n"])

    def mark_read(self, user_id: int, notification_id: int) -> Optional[NotificationRecord]:
        with self.db.transaction() as conn:
            conn.execute(
                "UPDATE notifications SET read = 1 WHERE id = ? AND user_id = ?",
                (notification_id, user_id),
            )
            row = conn.execute(
                "SELECT * FROM notifications WHERE id = ? AND user_id = ?",
                (notification_id, user_id),
            ).fetchone()
        if not row:
            return None
        return self._record_from_row(row)

    def mark_all_read(self, user_id: int) -> int:
        with self.db.transaction() as conn:
            cursor = conn.execute(
                "UPDATE notifications SET read = 1 WHERE user_id = ? AND read = 0",
                (user_id,),
            )
            updated = cursor.rowcount
        return updated


notification_store = NotificationStore(database)
