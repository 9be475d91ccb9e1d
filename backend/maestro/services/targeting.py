import json
import logging
import sqlite3
from typing import List, Optional, Sequence, Tuple

from maestro.models import RequestTarget, ServiceRequest
from maestro.services import geo
from maestro.services.database import Database, database, utc_now_iso
from maestro.services.directory_store import DirectoryStore, directory_store
from maestro.services.errors import ForbiddenError, InvalidInputError, NotFoundError
from maestro.services.notification_store import NotificationStore, notification_store

logger = logging.getLogger(__name__)

MAX_PHOTOS = 10


def clean_photo_urls(photos: Optional[Sequence[str]]) -> List[str]:
    cleaned: List[str] = []
    for photo in photos or []:
        url = str(photo).strip()
        if not url:
            continue
        if not (url.startswith("http://") or url.startswith("https://")):
            raise InvalidInputError("Photos must be http(s) URLs")
        cleaned.append(url)
    if len(cleaned) > MAX_PHOTOS:
        raise InvalidInputError(f"At most {MAX_PHOTOS} photos are allowed")
    return cleaned


def request_row(conn: sqlite3.Connection, request_id: int) -> Optional[sqlite3.Row]:
    return conn.execute(
        """
        SELECT r.*, c.name AS category_name, a.street, a.city, a.latitude, a.longitude
        FROM service_requests r
        JOIN service_categories c ON c.id = r.category_id
        JOIN addresses a ON a.id = r.address_id
        WHERE r.id = ?
        """,
        (request_id,),
    ).fetchone()


def request_from_row(row: sqlite3.Row) -> ServiceRequest:
    return ServiceRequest(
        id=row["id"],
        customer_id=row["customer_id"],
        category_id=row["category_id"],
        category_name=row["category_name"],
        address_id=row["address_id"],
        street=row["street"],
        city=row["city"],
        latitude=row["latitude"],
        longitude=row["longitude"],
        description=row["description"],
        photos=json.loads(row["photos_json"] or "[]"),
        urgent_mode=bool(row["urgent_mode"]),
        status=row["status"],
        created_at=row["created_at"],
    )


class TargetingService:
    """Creates service requests and decides, once, which pros hear about them."""

    def __init__(self, db: Database, directory: DirectoryStore, notifications: NotificationStore) -> None:
        self.db = db
        self.directory = directory
        self.notifications = notifications

    def _targets_for_request(self, conn: sqlite3.Connection, request_id: int) -> List[RequestTarget]:
        rows = conn.execute(
            "SELECT * FROM request_targets WHERE request_id = ? ORDER BY pro_id ASC",
            (request_id,),
        ).fetchall()
        return [
            RequestTarget(
                request_id=row["request_id"],
                pro_id=row["pro_id"],
                status=row["status"],
                distance_km=row["distance_km"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    def create_request(
        self,
        *,
        customer_user_id: int,
        category_id: int,
        street: str,
        city: str,
        description: str,
        photos: Sequence[str] = (),
        urgent_mode: bool = False,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> Tuple[ServiceRequest, int]:
        cleaned_street = street.strip()
        cleaned_city = city.strip()
        cleaned_description = description.strip()
        if not cleaned_description:
            raise InvalidInputError("Description is required")
        if not cleaned_street:
            raise InvalidInputError("Street is required")
        if not cleaned_city:
            raise InvalidInputError("City is required")
        if (latitude is None) != (longitude is None):
            raise InvalidInputError("Latitude and longitude must be provided together")
        origin = geo.validate_coordinate(latitude, longitude) if latitude is not None else None
        photo_urls = clean_photo_urls(photos)

        now_iso = utc_now_iso()
        with self.db.transaction() as conn:
            customer = self.directory.require_customer(conn, customer_user_id)
            category = self.directory.category_row(conn, category_id)

            address_cursor = conn.execute(
                """
                INSERT INTO addresses (user_id, street, city, latitude, longitude, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    customer_user_id,
                    cleaned_street,
                    cleaned_city,
                    origin[0] if origin else None,
                    origin[1] if origin else None,
                    now_iso,
                ),
            )
            request_cursor = conn.execute(
                """
                INSERT INTO service_requests (
                    customer_id, category_id, address_id, description, photos_json, urgent_mode, status, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, 'open', ?)
                """,
                (
                    customer["id"],
                    category_id,
                    address_cursor.lastrowid,
                    cleaned_description,
                    json.dumps(photo_urls),
                    1 if urgent_mode else 0,
                    now_iso,
                ),
            )
            request_id = int(request_cursor.lastrowid)

            matched = self.directory.matching_pros(conn, category_id)
            urgent_prefix = "URGENT: " if urgent_mode else ""
            for pro in matched:
                distance = None
                if origin and pro["latitude"] is not None and pro["longitude"] is not None:
                    distance = round(geo.distance_km(origin[0], origin[1], pro["latitude"], pro["longitude"]), 3)
                conn.execute(
                    """
                    INSERT INTO request_targets (request_id, pro_id, status, distance_km, created_at)
                    VALUES (?, ?, 'notified', ?, ?)
                    """,
                    (request_id, pro["id"], distance, now_iso),
                )
                self.notifications.enqueue(
                    conn,
                    user_id=int(pro["user_id"]),
                    kind="new_request",
                    title=f"{urgent_prefix}New {category['name']} request",
                    message=f"{cleaned_city}: {cleaned_description[:120]}",
                    link=f"/requests/{request_id}",
                )

            request = request_from_row(request_row(conn, request_id))

        logger.info(
            "Service request created: request_id=%s category=%s matched=%s",
            request_id,
            category["slug"],
            len(matched),
        )
        self.notifications.dispatch_pending()
        return request, len(matched)

    def get_request(self, *, user_id: int, request_id: int) -> Tuple[ServiceRequest, List[RequestTarget], Optional[int]]:
        with self.db.read() as conn:
            row = request_row(conn, request_id)
            if not row:
                raise NotFoundError("Request not found")
            user = self.directory.user_row(conn, user_id)
            role = user["role"] if user else None
            if role == "customer":
                customer = self.directory.require_customer(conn, user_id)
                if customer["id"] != row["customer_id"]:
                    raise ForbiddenError("Request belongs to another customer")
            elif role == "pro":
                pro = self.directory.require_pro(conn, user_id)
                target = conn.execute(
                    "SELECT 1 FROM request_targets WHERE request_id = ? AND pro_id = ?",
                    (request_id, pro["id"]),
                ).fetchone()
                if not target:
                    raise ForbiddenError("Request was not sent to this pro")
            elif role != "admin":
                raise ForbiddenError("Unknown principal")

            targets = self._targets_for_request(conn, request_id) if role != "pro" else []
            job = conn.execute("SELECT id FROM jobs WHERE request_id = ?", (request_id,)).fetchone()
            return request_from_row(row), targets, (int(job["id"]) if job else None)

    def list_customer_requests(self, *, customer_user_id: int) -> List[ServiceRequest]:
        with self.db.read() as conn:
            customer = self.directory.require_customer(conn, customer_user_id)
            ids = conn.execute(
                "SELECT id FROM service_requests WHERE customer_id = ? ORDER BY id DESC",
                (customer["id"],),
            ).fetchall()
            return [request_from_row(request_row(conn, int(item["id"]))) for item in ids]

    def list_opportunities(self, *, pro_user_id: int) -> List[ServiceRequest]:
        """Open requests this pro was targeted for, newest first."""
        with self.db.read() as conn:
            pro = self.directory.require_pro(conn, pro_user_id)
            ids = conn.execute(
                """
                SELECT r.id
                FROM request_targets t
                JOIN service_requests r ON r.id = t.request_id
                WHERE t.pro_id = ? AND r.status = 'open'
                ORDER BY r.id DESC
                """,
                (pro["id"],),
            ).fetchall()
            return [request_from_row(request_row(conn, int(item["id"]))) for item in ids]


targeting_service = TargetingService(database, directory_store, notification_store)
