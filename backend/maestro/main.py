import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from maestro.routers import auth, directory, jobs, notifications, onboarding, requests, stats, warranty
from maestro.services.database import database
from maestro.services.notification_store import notification_store

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Maestro API", version="0.1.0")


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


cors_origins = _parse_csv_env("CORS_ORIGINS", "*")
allow_any_origin = len(cors_origins) == 1 and cors_origins[0] == "*"

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    # Browsers reject wildcard CORS with credentials enabled.
    allow_credentials=not allow_any_origin,
    allow_methods=["*"],
    allow_headers=["*"],
)

trusted_hosts = _parse_csv_env("TRUSTED_HOSTS", "*")
if not (len(trusted_hosts) == 1 and trusted_hosts[0] == "*"):
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=trusted_hosts)

app.include_router(auth.router)
app.include_router(onboarding.router)
app.include_router(directory.router)
app.include_router(requests.router)
app.include_router(jobs.router)
app.include_router(warranty.router)
app.include_router(notifications.router)
app.include_router(stats.router)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/ready")
def ready():
    with database.read() as conn:
        categories = conn.execute("SELECT COUNT(*) AS n FROM service_categories").fetchone()
    return {
        "status": "ready",
        "categories": int(categories["n"]),
        "pending_notifications": notification_store.pending_count(),
    }
