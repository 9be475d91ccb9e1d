import json
import logging
import sqlite3
from typing import List, Optional, Sequence

from maestro.models import WarrantyClaim
from maestro.services.database import Database, database, utc_now_iso
from maestro.services.directory_store import DirectoryStore, directory_store
from maestro.services.errors import (
    DuplicateClaimError,
    ForbiddenError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)
from maestro.services.job_engine import JobEngine, job_engine, job_row
from maestro.services.notification_store import NotificationStore, notification_store
from maestro.services.targeting import clean_photo_urls

logger = logging.getLogger(__name__)

CLAIM_STATUSES = {"open", "reviewing", "approved", "rejected", "resolved"}

CUSTOMER_CLAIM_MESSAGES = {
    "open": "Your warranty claim was reopened",
    "reviewing": "Your warranty claim is being reviewed by our team",
    "approved": "Your warranty claim was approved",
    "rejected": "Your warranty claim was rejected",
    "resolved": "Your warranty claim was resolved",
}

PRO_CLAIM_MESSAGES = {
    "approved": "A warranty claim against your job was approved",
    "resolved": "The warranty claim on your job was resolved",
}


def _claim_row(conn: sqlite3.Connection, claim_id: int) -> Optional[sqlite3.Row]:
    return conn.execute(
        """
        SELECT w.*, cu.user_id AS customer_user_id, p.user_id AS pro_user_id
        FROM warranty_claims w
        JOIN customers cu ON cu.id = w.customer_id
        JOIN pros p ON p.id = w.pro_id
        WHERE w.id = ?
        """,
        (claim_id,),
    ).fetchone()


def _claim_from_row(row: sqlite3.Row) -> WarrantyClaim:
    return WarrantyClaim(
        id=row["id"],
        job_id=row["job_id"],
        customer_id=row["customer_id"],
        pro_id=row["pro_id"],
        description=row["description"],
        photos=json.loads(row["photos_json"] or "[]"),
        status=row["status"],
        admin_notes=row["admin_notes"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        resolved_at=row["resolved_at"],
    )


class WarrantyService:
    def __init__(
        self,
        db: Database,
        directory: DirectoryStore,
        jobs: JobEngine,
        notifications: NotificationStore,
    ) -> None:
        self.db = db
        self.directory = directory
        self.jobs = jobs
        self.notifications = notifications

    def create_claim(
        self,
        *,
        customer_user_id: int,
        job_id: int,
        description: str,
        photos: Sequence[str] = (),
    ) -> WarrantyClaim:
        cleaned_description = description.strip()
        if not cleaned_description:
            raise InvalidInputError("Description is required")
        photo_urls = clean_photo_urls(photos)

        with self.db.transaction() as conn:
            job = job_row(conn, job_id)
            if not job:
                raise NotFoundError("Job not found")
            if int(job["customer_user_id"]) != customer_user_id:
                raise ForbiddenError("Only the job's customer can file a claim")
            existing = conn.execute("SELECT 1 FROM warranty_claims WHERE job_id = ?", (job_id,)).fetchone()
            if existing:
                raise DuplicateClaimError("A warranty claim already exists for this job")
            if job["status"] != "done":
                raise InvalidTransitionError("Warranty claims require a completed job")

            now_iso = utc_now_iso()
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO warranty_claims (
                        job_id, customer_id, pro_id, description, photos_json, status, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, 'open', ?, ?)
                    """,
                    (
                        job_id,
                        job["customer_id"],
                        job["pro_id"],
                        cleaned_description,
                        json.dumps(photo_urls),
                        now_iso,
                        now_iso,
                    ),
                )
            except sqlite3.IntegrityError:
                raise DuplicateClaimError("A warranty claim already exists for this job") from None
            claim_id = int(cursor.lastrowid)

            self.notifications.enqueue(
                conn,
                user_id=int(job["pro_user_id"]),
                kind="warranty_claim",
                title="New warranty claim",
                message=f"A customer filed a warranty claim on your {job['category_name']} job.",
                link=f"/jobs/{job_id}",
            )
            self.notifications.enqueue_admin_broadcast(
                conn,
                kind="warranty_claim",
                title="Warranty claim needs review",
                message=f"Claim #{claim_id} on job #{job_id}: {cleaned_description[:120]}",
                link=f"/warranty-claims/{claim_id}",
            )
            claim = _claim_from_row(_claim_row(conn, claim_id))

        logger.info("Warranty claim created: claim_id=%s job_id=%s", claim_id, job_id)
        self.notifications.dispatch_pending()
        return claim

    def update_claim_status(
        self,
        *,
        admin_user_id: int,
        claim_id: int,
        new_status: str,
        admin_notes: Optional[str] = None,
    ) -> WarrantyClaim:
        """Set a claim's status; any status may follow any other.

        ``resolved_at`` is stamped only on the first move into ``resolved``.
        Approving a claim disputes its job.
        """
        if new_status not in CLAIM_STATUSES:
            raise InvalidInputError(f"Unknown claim status: {new_status}")

        with self.db.transaction() as conn:
            self.directory.require_admin(conn, admin_user_id)
            row = _claim_row(conn, claim_id)
            if not row:
                raise NotFoundError("Warranty claim not found")

            now_iso = utc_now_iso()
            notes = admin_notes.strip() if admin_notes and admin_notes.strip() else row["admin_notes"]
            conn.execute(
                """
                UPDATE warranty_claims
                SET status = ?,
                    admin_notes = ?,
                    updated_at = ?,
                    resolved_at = CASE WHEN ? = 'resolved' THEN COALESCE(resolved_at, ?) ELSE resolved_at END
                WHERE id = ?
                """,
                (new_status, notes, now_iso, new_status, now_iso, claim_id),
            )
            if new_status == "approved":
                self.jobs.mark_disputed(
                    conn,
                    job_id=int(row["job_id"]),
                    actor_user_id=admin_user_id,
                    note=f"Warranty claim #{claim_id} approved",
                )

            self.notifications.enqueue(
                conn,
                user_id=int(row["customer_user_id"]),
                kind="warranty_claim",
                title="Warranty claim update",
                message=CUSTOMER_CLAIM_MESSAGES[new_status],
                link=f"/jobs/{row['job_id']}",
            )
            if new_status in PRO_CLAIM_MESSAGES:
                self.notifications.enqueue(
                    conn,
                    user_id=int(row["pro_user_id"]),
                    kind="warranty_claim",
                    title="Warranty claim update",
                    message=PRO_CLAIM_MESSAGES[new_status],
                    link=f"/jobs/{row['job_id']}",
                )
            claim = _claim_from_row(_claim_row(conn, claim_id))

        logger.info("Warranty claim status: claim_id=%s %s -> %s", claim_id, row["status"], new_status)
        self.notifications.dispatch_pending()
        return claim

    def get_claim(self, *, user_id: int, claim_id: int) -> WarrantyClaim:
        with self.db.read() as conn:
            row = _claim_row(conn, claim_id)
            if not row:
                raise NotFoundError("Warranty claim not found")
            if user_id not in {int(row["customer_user_id"]), int(row["pro_user_id"])}:
                user = self.directory.user_row(conn, user_id)
                if not user or user["role"] != "admin":
                    raise ForbiddenError("Not a participant in this claim")
        return _claim_from_row(row)

    def list_claims(self, *, user_id: int, status: Optional[str] = None) -> List[WarrantyClaim]:
        """Admins see every claim; customers and pros see the claims on their own jobs."""
        if status is not None and status not in CLAIM_STATUSES:
            raise InvalidInputError(f"Unknown claim status: {status}")
        with self.db.read() as conn:
            user = self.directory.user_row(conn, user_id)
            if not user:
                raise ForbiddenError("Unknown principal")
            query = """
                SELECT w.*, cu.user_id AS customer_user_id, p.user_id AS pro_user_id
                FROM warranty_claims w
                JOIN customers cu ON cu.id = w.customer_id
                JOIN pros p ON p.id = w.pro_id
                WHERE 1 = 1
            """
            params: List[object] = []
            if user["role"] == "customer":
                query += " AND cu.user_id = ?"
                params.append(user_id)
            elif user["role"] == "pro":
                query += " AND p.user_id = ?"
                params.append(user_id)
            if status:
                query += " AND w.status = ?"
                params.append(status)
            query += " ORDER BY w.id DESC"
            rows = conn.execute(query, tuple(params)).fetchall()
        return [_claim_from_row(row) for row in rows]


warranty_service = WarrantyService(database, directory_store, job_engine, notification_store)
