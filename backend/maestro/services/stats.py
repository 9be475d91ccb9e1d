from maestro.models import CustomerStats, ProStats
from maestro.services.database import Database, database
from maestro.services.directory_store import DirectoryStore, directory_store


def _pct(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return int(round(part * 100 / whole))


class StatsService:
    def __init__(self, db: Database, directory: DirectoryStore) -> None:
        self.db = db
        self.directory = directory

    def customer_stats(self, *, customer_user_id: int) -> CustomerStats:
        with self.db.read() as conn:
            customer = self.directory.require_customer(conn, customer_user_id)
            requests = conn.execute(
                "SELECT COUNT(*) AS n FROM service_requests WHERE customer_id = ?",
                (customer["id"],),
            ).fetchone()
            jobs = conn.execute(
                """
                SELECT COUNT(j.id) AS total,
                       SUM(CASE WHEN j.status = 'done' THEN 1 ELSE 0 END) AS completed,
                       COALESCE(SUM(q.amount_cents), 0) AS spent
                FROM jobs j
                JOIN quotes q ON q.id = j.quote_id
                WHERE j.customer_id = ? AND j.status != 'cancelled'
                """,
                (customer["id"],),
            ).fetchone()
        total_jobs = int(jobs["total"] or 0)
        completed = int(jobs["completed"] or 0)
        return CustomerStats(
            total_spent_cents=int(jobs["spent"] or 0),
            total_requests=int(requests["n"]),
            total_jobs=total_jobs,
            completed_jobs=completed,
            completion_rate_pct=_pct(completed, total_jobs),
        )

    def pro_stats(self, *, pro_user_id: int) -> ProStats:
        with self.db.read() as conn:
            pro = self.directory.require_pro(conn, pro_user_id)
            jobs = conn.execute(
                """
                SELECT COUNT(j.id) AS total,
                       SUM(CASE WHEN j.status = 'done' THEN 1 ELSE 0 END) AS completed,
                       SUM(CASE WHEN j.status IN ('pending', 'in_progress') THEN 1 ELSE 0 END) AS active,
                       COALESCE(SUM(CASE WHEN j.status = 'done' THEN q.amount_cents ELSE 0 END), 0) AS earnings
                FROM jobs j
                JOIN quotes q ON q.id = j.quote_id
                WHERE j.pro_id = ?
                """,
                (pro["id"],),
            ).fetchone()
            reviews = conn.execute(
                "SELECT COUNT(*) AS n, AVG(rating) AS average FROM reviews WHERE target_pro_id = ?",
                (pro["id"],),
            ).fetchone()
            quotes = conn.execute(
                """
                SELECT COUNT(*) AS sent, SUM(CASE WHEN status = 'accepted' THEN 1 ELSE 0 END) AS accepted
                FROM quotes
                WHERE pro_id = ?
                """,
                (pro["id"],),
            ).fetchone()
        quotes_sent = int(quotes["sent"] or 0)
        return ProStats(
            total_earnings_cents=int(jobs["earnings"] or 0),
            total_jobs=int(jobs["total"] or 0),
            completed_jobs=int(jobs["completed"] or 0),
            active_jobs=int(jobs["active"] or 0),
            average_rating=round(float(reviews["average"] or 0.0), 1),
            review_count=int(reviews["n"]),
            quotes_sent=quotes_sent,
            acceptance_rate_pct=_pct(int(quotes["accepted"] or 0), quotes_sent),
        )


stats_service = StatsService(database, directory_store)
