import logging
import sqlite3
from typing import Dict, List, Optional, Set, Tuple

from maestro.models import Job, JobMessage, Quote
from maestro.services.database import Database, database, utc_now_iso
from maestro.services.directory_store import DirectoryStore, directory_store
from maestro.services.errors import (
    AlreadyAcceptedError,
    ForbiddenError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    RequestClosedError,
)
from maestro.services.notification_store import NotificationStore, format_cents, notification_store
from maestro.services.quote_ledger import quote_from_row, quote_row

logger = logging.getLogger(__name__)

JOB_STATUSES = {"pending", "in_progress", "done", "disputed", "cancelled"}
ADMIN_JOB_STATUSES = {"disputed", "cancelled"}

# Forward-only moves the assigned pro may make.
ALLOWED_TRANSITIONS: Dict[str, Set[str]] = {
    "pending": {"in_progress"},
    "in_progress": {"done"},
}

MAX_MESSAGE_LENGTH = 2000


def job_row(conn: sqlite3.Connection, job_id: int) -> Optional[sqlite3.Row]:
    return conn.execute(
        """
        SELECT j.*, q.amount_cents, cu.user_id AS customer_user_id, p.user_id AS pro_user_id,
               c.name AS category_name
        FROM jobs j
        JOIN quotes q ON q.id = j.quote_id
        JOIN customers cu ON cu.id = j.customer_id
        JOIN pros p ON p.id = j.pro_id
        JOIN service_requests r ON r.id = j.request_id
        JOIN service_categories c ON c.id = r.category_id
        WHERE j.id = ?
        """,
        (job_id,),
    ).fetchone()


def job_from_row(row: sqlite3.Row) -> Job:
    return Job(
        id=row["id"],
        request_id=row["request_id"],
        quote_id=row["quote_id"],
        customer_id=row["customer_id"],
        pro_id=row["pro_id"],
        status=row["status"],
        amount_cents=row["amount_cents"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        created_at=row["created_at"],
    )


class JobEngine:
    """Exclusive quote acceptance and the job state machine."""

    def __init__(self, db: Database, directory: DirectoryStore, notifications: NotificationStore) -> None:
        self.db = db
        self.directory = directory
        self.notifications = notifications

    def accept_quote(self, *, customer_user_id: int, quote_id: int) -> Tuple[Job, Quote]:
        """Turn a pending quote into the request's only job.

        The request flip, job insert, quote flip, sibling rejection and the
        winner's notification intent commit together or not at all.
        """
        with self.db.transaction() as conn:
            quote = conn.execute("SELECT * FROM quotes WHERE id = ?", (quote_id,)).fetchone()
            if not quote:
                raise NotFoundError("Quote not found")
            request = conn.execute(
                """
                SELECT r.*, c.name AS category_name
                FROM service_requests r
                JOIN service_categories c ON c.id = r.category_id
                WHERE r.id = ?
                """,
                (quote["request_id"],),
            ).fetchone()
            customer = self.directory.require_customer(conn, customer_user_id)
            if request["customer_id"] != customer["id"]:
                raise ForbiddenError("Request belongs to another customer")
            if request["status"] == "cancelled":
                raise RequestClosedError("Request was cancelled")

            request_id = int(request["id"])
            claimed = conn.execute(
                "UPDATE service_requests SET status = 'awarded' WHERE id = ? AND status = 'open'",
                (request_id,),
            )
            if claimed.rowcount == 0:
                logger.warning("Accept lost race: request_id=%s quote_id=%s", request_id, quote_id)
                raise AlreadyAcceptedError("A quote was already accepted for this request")

            now_iso = utc_now_iso()
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO jobs (request_id, quote_id, customer_id, pro_id, status, created_at)
                    VALUES (?, ?, ?, ?, 'pending', ?)
                    """,
                    (request_id, quote_id, customer["id"], quote["pro_id"], now_iso),
                )
            except sqlite3.IntegrityError:
                logger.warning("Job already exists: request_id=%s", request_id)
                raise AlreadyAcceptedError("A job already exists for this request") from None
            job_id = int(cursor.lastrowid)

            accepted = conn.execute(
                "UPDATE quotes SET status = 'accepted' WHERE id = ? AND status = 'pending'",
                (quote_id,),
            )
            if accepted.rowcount == 0:
                raise AlreadyAcceptedError("Quote is no longer pending")
            conn.execute(
                "UPDATE quotes SET status = 'rejected' WHERE request_id = ? AND id != ? AND status = 'pending'",
                (request_id, quote_id),
            )

            pro = conn.execute("SELECT user_id FROM pros WHERE id = ?", (quote["pro_id"],)).fetchone()
            self.notifications.enqueue(
                conn,
                user_id=int(pro["user_id"]),
                kind="quote_accepted",
                title="Your quote was accepted",
                message=f"{request['category_name']} job for {format_cents(int(quote['amount_cents']))}",
                link=f"/jobs/{job_id}",
            )
            job = job_from_row(job_row(conn, job_id))
            accepted_quote = quote_from_row(quote_row(conn, quote_id))

        logger.info("Quote accepted: quote_id=%s request_id=%s job_id=%s", quote_id, request_id, job_id)
        self.notifications.dispatch_pending()
        return job, accepted_quote

    def _apply_status(
        self,
        conn: sqlite3.Connection,
        row: sqlite3.Row,
        *,
        next_status: str,
        actor_user_id: int,
        note: str = "",
    ) -> None:
        current_status = str(row["status"])
        now_iso = utc_now_iso()
        updated = conn.execute(
            """
            UPDATE jobs
            SET status = ?,
                started_at = CASE WHEN ? = 'in_progress' THEN COALESCE(started_at, ?) ELSE started_at END,
                completed_at = CASE WHEN ? = 'done' THEN COALESCE(completed_at, ?) ELSE completed_at END
            WHERE id = ? AND status = ?
            """,
            (next_status, next_status, now_iso, next_status, now_iso, row["id"], current_status),
        )
        if updated.rowcount == 0:
            logger.warning("Job status changed concurrently: job_id=%s expected=%s", row["id"], current_status)
            raise InvalidTransitionError("Job status changed concurrently")
        conn.execute(
            """
            INSERT INTO job_status_history (job_id, actor_user_id, from_status, to_status, note, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (row["id"], actor_user_id, current_status, next_status, note, now_iso),
        )

    def mark_disputed(self, conn: sqlite3.Connection, *, job_id: int, actor_user_id: int, note: str = "") -> bool:
        """Move a job to disputed inside the caller's transaction; False when nothing changed."""
        row = job_row(conn, job_id)
        if not row or row["status"] in {"disputed", "cancelled"}:
            return False
        self._apply_status(conn, row, next_status="disputed", actor_user_id=actor_user_id, note=note)
        return True

    def update_status(self, *, actor_user_id: int, job_id: int, new_status: str) -> Job:
        if new_status not in JOB_STATUSES:
            raise InvalidInputError(f"Unknown job status: {new_status}")

        with self.db.transaction() as conn:
            row = job_row(conn, job_id)
            if not row:
                raise NotFoundError("Job not found")
            if int(row["pro_user_id"]) != actor_user_id:
                raise ForbiddenError("Only the assigned pro can update this job")

            current_status = str(row["status"])
            if new_status not in ALLOWED_TRANSITIONS.get(current_status, set()):
                raise InvalidTransitionError(f"Invalid status transition: {current_status} -> {new_status}")

            self._apply_status(conn, row, next_status=new_status, actor_user_id=actor_user_id)
            if new_status == "in_progress":
                self.notifications.enqueue(
                    conn,
                    user_id=int(row["customer_user_id"]),
                    kind="job_started",
                    title="Your job has started",
                    message=f"The pro started your {row['category_name']} job.",
                    link=f"/jobs/{job_id}",
                )
            elif new_status == "done":
                self.notifications.enqueue(
                    conn,
                    user_id=int(row["customer_user_id"]),
                    kind="job_completed",
                    title="Your job is complete",
                    message=f"Your {row['category_name']} job is done. Leave a review!",
                    link=f"/jobs/{job_id}",
                )
            job = job_from_row(job_row(conn, job_id))

        logger.info("Job status changed: job_id=%s %s -> %s", job_id, current_status, new_status)
        self.notifications.dispatch_pending()
        return job

    def admin_set_status(self, *, admin_user_id: int, job_id: int, new_status: str, note: str = "") -> Job:
        if new_status not in ADMIN_JOB_STATUSES:
            raise InvalidInputError("Admins can only set disputed or cancelled")

        with self.db.transaction() as conn:
            self.directory.require_admin(conn, admin_user_id)
            row = job_row(conn, job_id)
            if not row:
                raise NotFoundError("Job not found")
            current_status = str(row["status"])
            if current_status == "cancelled" or current_status == new_status:
                raise InvalidTransitionError(f"Invalid status transition: {current_status} -> {new_status}")

            self._apply_status(conn, row, next_status=new_status, actor_user_id=admin_user_id, note=note.strip())
            kind = "job_disputed" if new_status == "disputed" else "job_cancelled"
            for recipient in (row["customer_user_id"], row["pro_user_id"]):
                self.notifications.enqueue(
                    conn,
                    user_id=int(recipient),
                    kind=kind,
                    title=f"Job {new_status.replace('_', ' ')}",
                    message=note.strip() or f"An admin marked your {row['category_name']} job as {new_status}.",
                    link=f"/jobs/{job_id}",
                )
            job = job_from_row(job_row(conn, job_id))

        logger.info("Admin job status: job_id=%s %s -> %s", job_id, current_status, new_status)
        self.notifications.dispatch_pending()
        return job

    def _require_participant(
        self,
        conn: sqlite3.Connection,
        job_id: int,
        user_id: int,
        *,
        allow_admin: bool = True,
    ) -> sqlite3.Row:
        row = job_row(conn, job_id)
        if not row:
            raise NotFoundError("Job not found")
        if user_id in {int(row["customer_user_id"]), int(row["pro_user_id"])}:
            return row
        if allow_admin:
            user = self.directory.user_row(conn, user_id)
            if user and user["role"] == "admin":
                return row
        raise ForbiddenError("Not a participant in this job")

    def get_job(self, *, user_id: int, job_id: int) -> Job:
        with self.db.read() as conn:
            row = self._require_participant(conn, job_id, user_id)
        return job_from_row(row)

    def _list_jobs(self, conn: sqlite3.Connection, column: str, profile_id: int) -> List[Job]:
        ids = conn.execute(
            f"SELECT id FROM jobs WHERE {column} = ? ORDER BY id DESC",
            (profile_id,),
        ).fetchall()
        return [job_from_row(job_row(conn, int(item["id"]))) for item in ids]

    def list_pro_jobs(self, *, pro_user_id: int) -> List[Job]:
        with self.db.read() as conn:
            pro = self.directory.require_pro(conn, pro_user_id)
            return self._list_jobs(conn, "pro_id", int(pro["id"]))

    def list_customer_jobs(self, *, customer_user_id: int) -> List[Job]:
        with self.db.read() as conn:
            customer = self.directory.require_customer(conn, customer_user_id)
            return self._list_jobs(conn, "customer_id", int(customer["id"]))

    def post_message(self, *, sender_user_id: int, job_id: int, text: str) -> JobMessage:
        cleaned = text.strip()
        if not cleaned:
            raise InvalidInputError("Message text is required")
        if len(cleaned) > MAX_MESSAGE_LENGTH:
            raise InvalidInputError(f"Message text is limited to {MAX_MESSAGE_LENGTH} characters")

        with self.db.transaction() as conn:
            row = self._require_participant(conn, job_id, sender_user_id, allow_admin=False)
            cursor = conn.execute(
                "INSERT INTO job_messages (job_id, sender_user_id, text, created_at) VALUES (?, ?, ?, ?)",
                (job_id, sender_user_id, cleaned, utc_now_iso()),
            )
            recipient = (
                row["pro_user_id"] if sender_user_id == int(row["customer_user_id"]) else row["customer_user_id"]
            )
            self.notifications.enqueue(
                conn,
                user_id=int(recipient),
                kind="new_message",
                title="New message",
                message=cleaned[:120],
                link=f"/jobs/{job_id}/messages",
            )
            message = conn.execute("SELECT * FROM job_messages WHERE id = ?", (cursor.lastrowid,)).fetchone()

        self.notifications.dispatch_pending()
        return JobMessage(
            id=message["id"],
            job_id=message["job_id"],
            sender_user_id=message["sender_user_id"],
            text=message["text"],
            created_at=message["created_at"],
        )

    def list_messages(self, *, user_id: int, job_id: int) -> List[JobMessage]:
        with self.db.read() as conn:
            self._require_participant(conn, job_id, user_id)
            rows = conn.execute(
                "SELECT * FROM job_messages WHERE job_id = ? ORDER BY id ASC",
                (job_id,),
            ).fetchall()
        return [
            JobMessage(
                id=row["id"],
                job_id=row["job_id"],
                sender_user_id=row["sender_user_id"],
                text=row["text"],
                created_at=row["created_at"],
            )
            for row in rows
        ]


job_engine = JobEngine(database, directory_store, notification_store)
