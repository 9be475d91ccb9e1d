import logging
import os
import sqlite3
from typing import List, Optional, Sequence, Tuple

from maestro.models import CustomerProfile, NearbyPro, ProProfile, ServiceCategory, UserRecord
from maestro.services import geo
from maestro.services.database import Database, database, utc_now_iso
from maestro.services.errors import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from maestro.services.notification_store import NotificationStore, notification_store

logger = logging.getLogger(__name__)

APPROVAL_STATUSES = {"pending", "approved", "rejected", "suspended"}

SEED_CATEGORIES = [
    ("Masonry", "masonry"),
    ("Plumbing", "plumbing"),
    ("Electrical", "electrical"),
    ("Painting", "painting"),
    ("Carpentry", "carpentry"),
    ("Cleaning", "cleaning"),
    ("Gardening", "gardening"),
    ("Locksmith", "locksmith"),
    ("Refrigeration", "refrigeration"),
    ("Roofing", "roofing"),
]


def _parse_radius(raw: str, default: float = 10.0) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


NEARBY_DEFAULT_RADIUS_KM = _parse_radius(os.getenv("NEARBY_DEFAULT_RADIUS_KM", "10"))


class DirectoryStore:
    def __init__(self, db: Database, notifications: NotificationStore) -> None:
        self.db = db
        self.notifications = notifications
        self._seed_if_needed()

    def _seed_if_needed(self) -> None:
        with self.db.transaction() as conn:
            for name, slug in SEED_CATEGORIES:
                conn.execute(
                    "INSERT OR IGNORE INTO service_categories (name, slug) VALUES (?, ?)",
                    (name, slug),
                )

    # Row mapping

    def _user_from_row(self, row: sqlite3.Row) -> UserRecord:
        return UserRecord(
            id=row["id"],
            email=row["email"],
            phone=row["phone"],
            role=row["role"],
            status=row["status"],
            created_at=row["created_at"],
        )

    def _customer_from_row(self, row: sqlite3.Row) -> CustomerProfile:
        return CustomerProfile(
            id=row["id"],
            user_id=row["user_id"],
            full_name=row["full_name"],
            photo_url=row["photo_url"],
        )

    def _pro_categories(self, conn: sqlite3.Connection, pro_id: int) -> List[str]:
        rows = conn.execute(
            """
            SELECT c.slug
            FROM pro_categories pc
            JOIN service_categories c ON c.id = pc.category_id
            WHERE pc.pro_id = ?
            ORDER BY c.slug
            """,
            (pro_id,),
        ).fetchall()
        return [str(row["slug"]) for row in rows]

    def _pro_from_row(self, conn: sqlite3.Connection, row: sqlite3.Row) -> ProProfile:
        return ProProfile(
            id=row["id"],
            user_id=row["user_id"],
            display_name=row["display_name"],
            bio=row["bio"] or "",
            experience_years=row["experience_years"],
            coverage_km=row["coverage_km"],
            approval_status=row["approval_status"],
            approved_at=row["approved_at"],
            is_online=bool(row["is_online"]),
            latitude=row["latitude"],
            longitude=row["longitude"],
            categories=self._pro_categories(conn, int(row["id"])),
        )

    # Lookups shared with the other components

    def user_row(self, conn: sqlite3.Connection, user_id: int) -> Optional[sqlite3.Row]:
        return conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()

    def require_customer(self, conn: sqlite3.Connection, user_id: int) -> sqlite3.Row:
        row = conn.execute("SELECT * FROM customers WHERE user_id = ?", (user_id,)).fetchone()
        if not row:
            raise ForbiddenError("Only customers can perform this action")
        return row

    def require_pro(self, conn: sqlite3.Connection, user_id: int) -> sqlite3.Row:
        row = conn.execute("SELECT * FROM pros WHERE user_id = ?", (user_id,)).fetchone()
        if not row:
            raise ForbiddenError("Only pros can perform this action")
        return row

    def require_admin(self, conn: sqlite3.Connection, user_id: int) -> sqlite3.Row:
        row = self.user_row(conn, user_id)
        if not row or row["role"] != "admin":
            raise ForbiddenError("Only admins can perform this action")
        return row

    def category_row(self, conn: sqlite3.Connection, category_id: int) -> sqlite3.Row:
        row = conn.execute("SELECT * FROM service_categories WHERE id = ?", (category_id,)).fetchone()
        if not row:
            raise NotFoundError("Category not found")
        return row

    def matching_pros(self, conn: sqlite3.Connection, category_id: int) -> List[sqlite3.Row]:
        return conn.execute(
            """
            SELECT p.*
            FROM pros p
            JOIN pro_categories pc ON pc.pro_id = p.id
            WHERE pc.category_id = ?
              AND p.approval_status = 'approved'
              AND p.is_online = 1
            ORDER BY p.id ASC
            """,
            (category_id,),
        ).fetchall()

    # Onboarding

    def _insert_user(self, conn: sqlite3.Connection, *, email: str, phone: Optional[str], role: str) -> int:
        cleaned_email = email.strip().lower()
        if "@" not in cleaned_email:
            raise InvalidInputError("A valid email is required")
        try:
            cursor = conn.execute(
                "INSERT INTO users (email, phone, role, status, created_at) VALUES (?, ?, ?, 'active', ?)",
                (cleaned_email, (phone or "").strip() or None, role, utc_now_iso()),
            )
        except sqlite3.IntegrityError:
            raise ConflictError("Email already registered") from None
        return int(cursor.lastrowid)

    def _category_ids_for_slugs(self, conn: sqlite3.Connection, slugs: Sequence[str]) -> List[int]:
        wanted = sorted({slug.strip().lower() for slug in slugs if slug.strip()})
        if not wanted:
            return []
        placeholders = ", ".join("?" for _ in wanted)
        rows = conn.execute(
            f"SELECT id, slug FROM service_categories WHERE slug IN ({placeholders})",
            tuple(wanted),
        ).fetchall()
        found = {str(row["slug"]) for row in rows}
        missing = [slug for slug in wanted if slug not in found]
        if missing:
            raise InvalidInputError(f"Unknown categories: {', '.join(missing)}")
        return [int(row["id"]) for row in rows]

    def create_customer(
        self,
        *,
        email: str,
        full_name: str,
        phone: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> Tuple[UserRecord, CustomerProfile]:
        cleaned_name = full_name.strip()
        if not cleaned_name:
            raise InvalidInputError("Full name is required")
        with self.db.transaction() as conn:
            user_id = self._insert_user(conn, email=email, phone=phone, role="customer")
            conn.execute(
                "INSERT INTO customers (user_id, full_name, photo_url) VALUES (?, ?, ?)",
                (user_id, cleaned_name, photo_url),
            )
            user_row = self.user_row(conn, user_id)
            customer_row = conn.execute("SELECT * FROM customers WHERE user_id = ?", (user_id,)).fetchone()
            return self._user_from_row(user_row), self._customer_from_row(customer_row)

    def create_pro(
        self,
        *,
        email: str,
        display_name: str,
        phone: Optional[str] = None,
        bio: str = "",
        experience_years: int = 0,
        coverage_km: int = 10,
        categories: Sequence[str] = (),
    ) -> Tuple[UserRecord, ProProfile]:
        cleaned_name = display_name.strip()
        if not cleaned_name:
            raise InvalidInputError("Display name is required")
        if experience_years < 0:
            raise InvalidInputError("Experience years cannot be negative")
        if coverage_km <= 0:
            raise InvalidInputError("Coverage radius must be positive")
        with self.db.transaction() as conn:
            category_ids = self._category_ids_for_slugs(conn, categories)
            user_id = self._insert_user(conn, email=email, phone=phone, role="pro")
            cursor = conn.execute(
                """
                INSERT INTO pros (user_id, display_name, bio, experience_years, coverage_km, approval_status, is_online, updated_at)
                VALUES (?, ?, ?, ?, ?, 'pending', 0, ?)
                """,
                (user_id, cleaned_name, bio.strip(), experience_years, coverage_km, utc_now_iso()),
            )
            pro_id = int(cursor.lastrowid)
            for category_id in category_ids:
                conn.execute(
                    "INSERT INTO pro_categories (pro_id, category_id) VALUES (?, ?)",
                    (pro_id, category_id),
                )
            user_row = self.user_row(conn, user_id)
            pro_row = conn.execute("SELECT * FROM pros WHERE id = ?", (pro_id,)).fetchone()
            return self._user_from_row(user_row), self._pro_from_row(conn, pro_row)

    def create_admin(self, *, email: str, phone: Optional[str] = None) -> UserRecord:
        with self.db.transaction() as conn:
            user_id = self._insert_user(conn, email=email, phone=phone, role="admin")
            return self._user_from_row(self.user_row(conn, user_id))

    # Reads

    def get_user(self, user_id: int) -> Optional[UserRecord]:
        with self.db.read() as conn:
            row = self.user_row(conn, user_id)
        if not row:
            return None
        return self._user_from_row(row)

    def get_pro(self, pro_id: int) -> ProProfile:
        with self.db.read() as conn:
            row = conn.execute("SELECT * FROM pros WHERE id = ?", (pro_id,)).fetchone()
            if not row:
                raise NotFoundError("Pro not found")
            return self._pro_from_row(conn, row)

    def get_pro_by_user(self, user_id: int) -> ProProfile:
        with self.db.read() as conn:
            row = self.require_pro(conn, user_id)
            return self._pro_from_row(conn, row)

    def list_categories(self) -> List[ServiceCategory]:
        with self.db.read() as conn:
            rows = conn.execute("SELECT * FROM service_categories ORDER BY name").fetchall()
        return [ServiceCategory(id=row["id"], name=row["name"], slug=row["slug"]) for row in rows]

    def list_pros(self, *, admin_user_id: int, approval_status: Optional[str] = None) -> List[ProProfile]:
        if approval_status is not None and approval_status not in APPROVAL_STATUSES:
            raise InvalidInputError("Invalid approval status")
        with self.db.read() as conn:
            self.require_admin(conn, admin_user_id)
            if approval_status:
                rows = conn.execute(
                    "SELECT * FROM pros WHERE approval_status = ? ORDER BY id",
                    (approval_status,),
                ).fetchall()
            else:
                rows = conn.execute("SELECT * FROM pros ORDER BY id").fetchall()
            return [self._pro_from_row(conn, row) for row in rows]

    def list_nearby_pros(
        self,
        *,
        latitude: float,
        longitude: float,
        radius_km: Optional[float] = None,
        category_id: Optional[int] = None,
    ) -> List[NearbyPro]:
        origin = geo.validate_coordinate(latitude, longitude)
        radius = NEARBY_DEFAULT_RADIUS_KM if radius_km is None else radius_km
        with self.db.read() as conn:
            if category_id is not None:
                self.category_row(conn, category_id)
                rows = self.matching_pros(conn, category_id)
            else:
                rows = conn.execute(
                    """
                    SELECT * FROM pros
                    WHERE approval_status = 'approved' AND is_online = 1
                    ORDER BY id ASC
                    """
                ).fetchall()
            profiles = [self._pro_from_row(conn, row) for row in rows]

        return [
            NearbyPro(**profile.model_dump(), distance_km=round(distance, 3))
            for profile, distance in geo.filter_within_radius(profiles, origin, radius)
        ]

    # Mutations

    def set_approval_status(self, *, admin_user_id: int, pro_id: int, status: str) -> ProProfile:
        if status not in APPROVAL_STATUSES:
            raise InvalidInputError("Invalid approval status")
        with self.db.transaction() as conn:
            self.require_admin(conn, admin_user_id)
            row = conn.execute("SELECT * FROM pros WHERE id = ?", (pro_id,)).fetchone()
            if not row:
                raise NotFoundError("Pro not found")
            now_iso = utc_now_iso()
            approved_at = row["approved_at"]
            if status == "approved" and not approved_at:
                approved_at = now_iso
            conn.execute(
                "UPDATE pros SET approval_status = ?, approved_at = ?, updated_at = ? WHERE id = ?",
                (status, approved_at, now_iso, pro_id),
            )
            if status != row["approval_status"]:
                self.notifications.enqueue(
                    conn,
                    user_id=int(row["user_id"]),
                    kind="pro_approval",
                    title="Account review updated",
                    message=f"Your pro account is now {status}.",
                    link="/dashboard/pro",
                )
            updated = conn.execute("SELECT * FROM pros WHERE id = ?", (pro_id,)).fetchone()
            profile = self._pro_from_row(conn, updated)
        logger.info("Pro approval changed: pro_id=%s %s -> %s", pro_id, row["approval_status"], status)
        self.notifications.dispatch_pending()
        return profile

    def set_online(self, *, pro_user_id: int, is_online: bool) -> ProProfile:
        with self.db.transaction() as conn:
            row = self.require_pro(conn, pro_user_id)
            conn.execute(
                "UPDATE pros SET is_online = ?, updated_at = ? WHERE id = ?",
                (1 if is_online else 0, utc_now_iso(), row["id"]),
            )
            updated = conn.execute("SELECT * FROM pros WHERE id = ?", (row["id"],)).fetchone()
            return self._pro_from_row(conn, updated)

    def update_location(self, *, pro_user_id: int, latitude: float, longitude: float) -> ProProfile:
        lat, lng = geo.validate_coordinate(latitude, longitude)
        with self.db.transaction() as conn:
            row = self.require_pro(conn, pro_user_id)
            conn.execute(
                "UPDATE pros SET latitude = ?, longitude = ?, updated_at = ? WHERE id = ?",
                (lat, lng, utc_now_iso(), row["id"]),
            )
            updated = conn.execute("SELECT * FROM pros WHERE id = ?", (row["id"],)).fetchone()
            return self._pro_from_row(conn, updated)

    def set_categories(self, *, pro_user_id: int, categories: Sequence[str]) -> ProProfile:
        with self.db.transaction() as conn:
            row = self.require_pro(conn, pro_user_id)
            category_ids = self._category_ids_for_slugs(conn, categories)
            conn.execute("DELETE FROM pro_categories WHERE pro_id = ?", (row["id"],))
            for category_id in category_ids:
                conn.execute(
                    "INSERT INTO pro_categories (pro_id, category_id) VALUES (?, ?)",
                    (row["id"], category_id),
                )
            return self._pro_from_row(conn, row)


directory_store = DirectoryStore(database, notification_store)
