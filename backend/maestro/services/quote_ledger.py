import logging
import sqlite3
from typing import Any, List, Optional

from maestro.models import CategoryAveragePrice, Quote
from maestro.services.database import Database, database, utc_now_iso
from maestro.services.directory_store import DirectoryStore, directory_store
from maestro.services.errors import (
    DuplicateQuoteError,
    ForbiddenError,
    InvalidAmountError,
    InvalidInputError,
    NotFoundError,
    RequestClosedError,
)
from maestro.services.notification_store import NotificationStore, format_cents, notification_store

logger = logging.getLogger(__name__)

DEFAULT_AVERAGE_CENTS = 2500


def quote_row(conn: sqlite3.Connection, quote_id: int) -> Optional[sqlite3.Row]:
    return conn.execute(
        """
        SELECT q.*, p.display_name AS pro_name
        FROM quotes q
        JOIN pros p ON p.id = q.pro_id
        WHERE q.id = ?
        """,
        (quote_id,),
    ).fetchone()


def quote_from_row(row: sqlite3.Row) -> Quote:
    return Quote(
        id=row["id"],
        request_id=row["request_id"],
        pro_id=row["pro_id"],
        pro_name=row["pro_name"],
        amount_cents=row["amount_cents"],
        estimated_hours=row["estimated_hours"],
        message=row["message"],
        status=row["status"],
        created_at=row["created_at"],
    )


def _validate_amount(amount_cents: Any) -> int:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise InvalidAmountError("Amount must be a whole number of cents")
    if amount_cents <= 0:
        raise InvalidAmountError("Amount must be positive")
    return amount_cents


class QuoteLedger:
    def __init__(self, db: Database, directory: DirectoryStore, notifications: NotificationStore) -> None:
        self.db = db
        self.directory = directory
        self.notifications = notifications

    def create_quote(
        self,
        *,
        pro_user_id: int,
        request_id: int,
        amount_cents: int,
        estimated_hours: Optional[int] = None,
        message: Optional[str] = None,
    ) -> Quote:
        amount = _validate_amount(amount_cents)
        if estimated_hours is not None and estimated_hours <= 0:
            raise InvalidInputError("Estimated hours must be positive")
        cleaned_message = (message or "").strip() or None

        with self.db.transaction() as conn:
            pro = self.directory.require_pro(conn, pro_user_id)
            if pro["approval_status"] != "approved":
                raise ForbiddenError("Pro is not approved to quote")
            request = conn.execute(
                """
                SELECT r.*, c.name AS category_name, cu.user_id AS customer_user_id
                FROM service_requests r
                JOIN service_categories c ON c.id = r.category_id
                JOIN customers cu ON cu.id = r.customer_id
                WHERE r.id = ?
                """,
                (request_id,),
            ).fetchone()
            if not request:
                raise NotFoundError("Request not found")
            if request["status"] != "open":
                raise RequestClosedError("Request is no longer accepting quotes")

            try:
                cursor = conn.execute(
                    """
                    INSERT INTO quotes (request_id, pro_id, amount_cents, estimated_hours, message, status, created_at)
                    VALUES (?, ?, ?, ?, ?, 'pending', ?)
                    """,
                    (request_id, pro["id"], amount, estimated_hours, cleaned_message, utc_now_iso()),
                )
            except sqlite3.IntegrityError:
                raise DuplicateQuoteError("Pro already quoted on this request") from None
            quote_id = int(cursor.lastrowid)

            conn.execute(
                "UPDATE request_targets SET status = 'viewed' WHERE request_id = ? AND pro_id = ?",
                (request_id, pro["id"]),
            )
            self.notifications.enqueue(
                conn,
                user_id=int(request["customer_user_id"]),
                kind="new_quote",
                title=f"New quote for {request['category_name']}",
                message=f"{pro['display_name']} quoted {format_cents(amount)}",
                link=f"/requests/{request_id}",
            )
            quote = quote_from_row(quote_row(conn, quote_id))

        logger.info("Quote created: quote_id=%s request_id=%s pro_id=%s", quote_id, request_id, pro["id"])
        self.notifications.dispatch_pending()
        return quote

    def get_quote(self, quote_id: int) -> Quote:
        with self.db.read() as conn:
            row = quote_row(conn, quote_id)
        if not row:
            raise NotFoundError("Quote not found")
        return quote_from_row(row)

    def list_request_quotes(self, *, user_id: int, request_id: int) -> List[Quote]:
        """Quotes on a request, cheapest first.

        The owning customer and admins see every quote; a pro sees only its own.
        """
        with self.db.read() as conn:
            request = conn.execute("SELECT * FROM service_requests WHERE id = ?", (request_id,)).fetchone()
            if not request:
                raise NotFoundError("Request not found")
            user = self.directory.user_row(conn, user_id)
            role = user["role"] if user else None
            query = """
                SELECT q.*, p.display_name AS pro_name
                FROM quotes q
                JOIN pros p ON p.id = q.pro_id
                WHERE q.request_id = ?
            """
            params: List[Any] = [request_id]
            if role == "customer":
                customer = self.directory.require_customer(conn, user_id)
                if customer["id"] != request["customer_id"]:
                    raise ForbiddenError("Request belongs to another customer")
            elif role == "pro":
                pro = self.directory.require_pro(conn, user_id)
                query += " AND q.pro_id = ?"
                params.append(pro["id"])
            elif role != "admin":
                raise ForbiddenError("Unknown principal")
            query += " ORDER BY q.amount_cents ASC, q.id ASC"
            rows = conn.execute(query, tuple(params)).fetchall()
        return [quote_from_row(row) for row in rows]

    def average_prices_by_category(self) -> List[CategoryAveragePrice]:
        with self.db.read() as conn:
            rows = conn.execute(
                """
                SELECT c.id, c.name, AVG(q.amount_cents) AS average_cents, COUNT(q.id) AS quote_count
                FROM service_categories c
                LEFT JOIN service_requests r ON r.category_id = c.id
                LEFT JOIN quotes q ON q.request_id = r.id AND q.status IN ('pending', 'accepted')
                GROUP BY c.id, c.name
                ORDER BY c.name
                """
            ).fetchall()
        return [
            CategoryAveragePrice(
                category_id=row["id"],
                category_name=row["name"],
                average_cents=int(round(row["average_cents"])) if row["quote_count"] else DEFAULT_AVERAGE_CENTS,
                quote_count=row["quote_count"],
            )
            for row in rows
        ]


quote_ledger = QuoteLedger(database, directory_store, notification_store)
