import logging
import sqlite3
from typing import List, Optional

from maestro.models import Review
from maestro.services.database import Database, database, utc_now_iso
from maestro.services.errors import (
    DuplicateReviewError,
    ForbiddenError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)
from maestro.services.job_engine import job_row

logger = logging.getLogger(__name__)


def _review_from_row(row: sqlite3.Row) -> Review:
    return Review(
        id=row["id"],
        job_id=row["job_id"],
        author_user_id=row["author_user_id"],
        target_pro_id=row["target_pro_id"],
        rating=row["rating"],
        comment=row["comment"],
        created_at=row["created_at"],
    )


class ReviewStore:
    def __init__(self, db: Database) -> None:
        self.db = db

    def create_review(
        self,
        *,
        customer_user_id: int,
        job_id: int,
        rating: int,
        comment: Optional[str] = None,
    ) -> Review:
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise InvalidInputError("Rating must be between 1 and 5")
        cleaned_comment = (comment or "").strip() or None

        with self.db.transaction() as conn:
            row = job_row(conn, job_id)
            if not row:
                raise NotFoundError("Job not found")
            if int(row["customer_user_id"]) != customer_user_id:
                raise ForbiddenError("Only the job's customer can review it")
            existing = conn.execute(
                "SELECT 1 FROM reviews WHERE job_id = ? AND author_user_id = ?",
                (job_id, customer_user_id),
            ).fetchone()
            if existing:
                raise DuplicateReviewError("Job already reviewed")
            if row["status"] != "done":
                raise InvalidTransitionError("Only completed jobs can be reviewed")
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO reviews (job_id, author_user_id, target_pro_id, rating, comment, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (job_id, customer_user_id, row["pro_id"], rating, cleaned_comment, utc_now_iso()),
                )
            except sqlite3.IntegrityError:
                raise DuplicateReviewError("Job already reviewed") from None
            review = conn.execute("SELECT * FROM reviews WHERE id = ?", (cursor.lastrowid,)).fetchone()

        logger.info("Review created: job_id=%s rating=%s", job_id, rating)
        return _review_from_row(review)

    def list_pro_reviews(self, pro_id: int) -> List[Review]:
        with self.db.read() as conn:
            rows = conn.execute(
                "SELECT * FROM reviews WHERE target_pro_id = ? ORDER BY id DESC",
                (pro_id,),
            ).fetchall()
        return [_review_from_row(row) for row in rows]


review_store = ReviewStore(database)
