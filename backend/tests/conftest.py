import os
import sys
import tempfile
from uuid import uuid4

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

# The app's stores bind to MAESTRO_DB_PATH at import time.
_API_DB_DIR = tempfile.mkdtemp(prefix="maestro-tests-")
os.environ.setdefault("MAESTRO_DB_PATH", os.path.join(_API_DB_DIR, "api.sqlite3"))

from maestro.services.database import Database  # noqa: E402
from maestro.services.directory_store import DirectoryStore  # noqa: E402
from maestro.services.job_engine import JobEngine  # noqa: E402
from maestro.services.notification_store import NotificationStore  # noqa: E402
from maestro.services.quote_ledger import QuoteLedger  # noqa: E402
from maestro.services.reviews import ReviewStore  # noqa: E402
from maestro.services.stats import StatsService  # noqa: E402
from maestro.services.targeting import TargetingService  # noqa: E402
from maestro.services.warranty import WarrantyService  # noqa: E402


class Marketplace:
    """A full service stack on a throwaway database, with small builders for tests."""

    def __init__(self, db_path: str, max_attempts: int = 3) -> None:
        self.db = Database(db_path=db_path)
        self.notifications = NotificationStore(self.db, max_attempts=max_attempts)
        self.directory = DirectoryStore(self.db, self.notifications)
        self.targeting = TargetingService(self.db, self.directory, self.notifications)
        self.quotes = QuoteLedger(self.db, self.directory, self.notifications)
        self.jobs = JobEngine(self.db, self.directory, self.notifications)
        self.reviews = ReviewStore(self.db)
        self.warranty = WarrantyService(self.db, self.directory, self.jobs, self.notifications)
        self.stats = StatsService(self.db, self.directory)

    def category_id(self, slug: str) -> int:
        for category in self.directory.list_categories():
            if category.slug == slug:
                return category.id
        raise KeyError(slug)

    def customer(self, name: str = "Ana Customer"):
        user, _ = self.directory.create_customer(email=f"c_{uuid4().hex[:8]}@example.com", full_name=name)
        return user.id

    def admin(self):
        return self.directory.create_admin(email=f"a_{uuid4().hex[:8]}@example.com").id

    def pro(
        self,
        name: str = "Pat Pro",
        categories=("plumbing",),
        approved: bool = True,
        online: bool = True,
        location=None,
        admin_user_id=None,
    ):
        user, profile = self.directory.create_pro(
            email=f"p_{uuid4().hex[:8]}@example.com",
            display_name=name,
            categories=list(categories),
        )
        if approved:
            approver = admin_user_id or self.admin()
            self.directory.set_approval_status(admin_user_id=approver, pro_id=profile.id, status="approved")
        if online:
            self.directory.set_online(pro_user_id=user.id, is_online=True)
        if location is not None:
            self.directory.update_location(pro_user_id=user.id, latitude=location[0], longitude=location[1])
        return user.id, profile.id

    def request(self, customer_user_id: int, slug: str = "plumbing", **overrides):
        fields = {
            "street": "Av. Amazonas 123",
            "city": "Quito",
            "description": "Kitchen sink is leaking",
        }
        fields.update(overrides)
        request, matched = self.targeting.create_request(
            customer_user_id=customer_user_id,
            category_id=self.category_id(slug),
            **fields,
        )
        return request, matched

    def done_job(self):
        """Customer, pro and a job already moved to done."""
        customer = self.customer()
        pro_user, _ = self.pro()
        request, _ = self.request(customer)
        quote = self.quotes.create_quote(pro_user_id=pro_user, request_id=request.id, amount_cents=8000)
        job, _ = self.jobs.accept_quote(customer_user_id=customer, quote_id=quote.id)
        self.jobs.update_status(actor_user_id=pro_user, job_id=job.id, new_status="in_progress")
        self.jobs.update_status(actor_user_id=pro_user, job_id=job.id, new_status="done")
        return customer, pro_user, job.id


@pytest.fixture
def market(tmp_path):
    return Marketplace(db_path=str(tmp_path / "market.sqlite3"))
