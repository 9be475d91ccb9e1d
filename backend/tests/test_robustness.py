import importlib
import os
import sqlite3
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from maestro.auth import create_access_token, parse_bearer_token, verify_access_token
from maestro.services.database import Database, _parse_timeout
from maestro.services.directory_store import _parse_radius
from maestro.services.notification_store import _parse_max_attempts


def test_auth_ttl_invalid_env_falls_back(monkeypatch):
    monkeypatch.setenv("AUTH_TOKEN_TTL_HOURS", "not-a-number")
    sys.modules.pop("maestro.auth", None)
    auth = importlib.import_module("maestro.auth")
    assert auth.TOKEN_TTL_HOURS == 24


def test_auth_ttl_non_positive_env_falls_back(monkeypatch):
    monkeypatch.setenv("AUTH_TOKEN_TTL_HOURS", "0")
    sys.modules.pop("maestro.auth", None)
    auth = importlib.import_module("maestro.auth")
    assert auth.TOKEN_TTL_HOURS == 24


def test_env_number_parsers_fall_back():
    assert _parse_timeout("abc") == 5.0
    assert _parse_timeout("-1") == 5.0
    assert _parse_max_attempts("0") == 5
    assert _parse_max_attempts("7") == 7
    assert _parse_radius("") == 10.0
    assert _parse_radius("2.5") == 2.5


def test_token_round_trip_and_tampering():
    token, _ = create_access_token(user_id=42)
    assert verify_access_token(token) == 42

    other_token, _ = create_access_token(user_id=43)
    payload = other_token.split(".", 1)[0]
    signature = token.split(".", 1)[1]
    assert verify_access_token(f"{payload}.{signature}") is None
    assert verify_access_token("no-dot") is None
    assert parse_bearer_token(f"Bearer {token}") == token
    assert parse_bearer_token("Basic abc") is None
    assert parse_bearer_token(None) is None


def test_schema_rejects_non_positive_amounts_at_the_storage_layer(tmp_path):
    Database(db_path=str(tmp_path / "schema.sqlite3"))
    with sqlite3.connect(str(tmp_path / "schema.sqlite3")) as conn:
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO quotes (request_id, pro_id, amount_cents, status, created_at) VALUES (1, 1, 0, 'pending', 'now')"
            )


def test_transaction_rolls_back_on_error(market):
    with pytest.raises(RuntimeError):
        with market.db.transaction() as conn:
            conn.execute(
                "INSERT INTO users (email, role, status, created_at) VALUES ('rollback@example.com', 'admin', 'active', 'now')"
            )
            raise RuntimeError("abort")
    with market.db.read() as conn:
        row = conn.execute("SELECT COUNT(*) FROM users WHERE email = 'rollback@example.com'").fetchone()
    assert row[0] == 0


def test_reopening_database_keeps_existing_rows(tmp_path):
    db_path = str(tmp_path / "reopen.sqlite3")
    first = Database(db_path=db_path)
    with first.transaction() as conn:
        conn.execute("INSERT INTO service_categories (name, slug) VALUES ('Welding', 'welding')")
    second = Database(db_path=db_path)
    with second.read() as conn:
        slugs = [row["slug"] for row in conn.execute("SELECT slug FROM service_categories").fetchall()]
    assert slugs == ["welding"]
