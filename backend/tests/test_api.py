import os
import sys
from uuid import uuid4

from fastapi.testclient import TestClient

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from maestro.auth import AUTH_DEMO_PASSWORD
from maestro.main import app
from maestro.services.directory_store import directory_store

client = TestClient(app)


def _email(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:8]}@example.com"


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _admin_token() -> str:
    admin = directory_store.create_admin(email=_email("admin"))
    login = client.post("/auth/login", json={"user_id": admin.id, "password": AUTH_DEMO_PASSWORD})
    assert login.status_code == 200
    return login.json()["access_token"]


def _category_id(slug: str) -> int:
    response = client.get("/categories")
    assert response.status_code == 200
    return next(item["id"] for item in response.json() if item["slug"] == slug)


def _customer() -> dict:
    response = client.post(
        "/onboarding/customer",
        json={"email": _email("customer"), "full_name": "Carla Customer"},
    )
    assert response.status_code == 200
    return response.json()


def _approved_pro(admin_token: str, slug: str = "plumbing", name: str = "Pablo Pro") -> dict:
    response = client.post(
        "/onboarding/pro",
        json={
            "email": _email("pro"),
            "display_name": name,
            "experience_years": 5,
            "categories": [slug],
        },
    )
    assert response.status_code == 200
    pro = response.json()
    approval = client.post(
        f"/admin/pros/{pro['profile_id']}/approval",
        json={"status": "approved"},
        headers=_auth(admin_token),
    )
    assert approval.status_code == 200
    online = client.post("/pros/online", json={"is_online": True}, headers=_auth(pro["access_token"]))
    assert online.status_code == 200
    return pro


def test_health_and_ready():
    assert client.get("/health").json()["status"] == "ok"
    ready = client.get("/ready")
    assert ready.status_code == 200
    assert ready.json()["categories"] >= 10


def test_auth_login_and_me():
    customer = _customer()
    login = client.post("/auth/login", json={"user_id": customer["user_id"], "password": AUTH_DEMO_PASSWORD})
    assert login.status_code == 200
    assert login.json()["role"] == "customer"

    me = client.get("/auth/me", headers=_auth(login.json()["access_token"]))
    assert me.status_code == 200
    assert me.json() == {"user_id": customer["user_id"], "role": "customer"}


def test_auth_rejects_bad_credentials_and_tokens():
    customer = _customer()
    wrong = client.post("/auth/login", json={"user_id": customer["user_id"], "password": "nope"})
    assert wrong.status_code == 401
    unknown = client.post("/auth/login", json={"user_id": 999999, "password": AUTH_DEMO_PASSWORD})
    assert unknown.status_code == 401

    assert client.get("/auth/me").status_code == 401
    assert client.get("/auth/me", headers=_auth("garbage.token")).status_code == 401
    missing = client.post("/requests", json={})
    assert missing.status_code == 401
    assert missing.json()["detail"]["error"] == "unauthenticated"


def test_onboarding_rejects_duplicate_email_and_unknown_category():
    email = _email("dup")
    first = client.post("/onboarding/customer", json={"email": email, "full_name": "One"})
    assert first.status_code == 200
    second = client.post("/onboarding/customer", json={"email": email, "full_name": "Two"})
    assert second.status_code == 409

    unknown = client.post(
        "/onboarding/pro",
        json={"email": _email("pro"), "display_name": "Nobody", "categories": ["astrology"]},
    )
    assert unknown.status_code == 400
    assert unknown.json()["detail"]["error"] == "invalid_input"


def test_golden_path_request_quote_accept_complete_review_claim():
    admin_token = _admin_token()
    customer = _customer()
    cheap = _approved_pro(admin_token, name="Cheap Plumbing")
    pricey = _approved_pro(admin_token, name="Pricey Plumbing")

    created = client.post(
        "/requests",
        json={
            "category_id": _category_id("plumbing"),
            "street": "Calle Larga 5",
            "city": "Cuenca",
            "description": "Water heater not working",
            "photos": ["https://cdn.example.com/heater.jpg"],
        },
        headers=_auth(customer["access_token"]),
    )
    assert created.status_code == 200
    request_id = created.json()["request"]["id"]
    assert created.json()["matched_count"] >= 2

    opportunities = client.get("/pros/opportunities", headers=_auth(cheap["access_token"]))
    assert request_id in [item["id"] for item in opportunities.json()]

    pricey_quote = client.post(
        "/quotes",
        json={"request_id": request_id, "amount_cents": 5000},
        headers=_auth(pricey["access_token"]),
    )
    cheap_quote = client.post(
        "/quotes",
        json={"request_id": request_id, "amount_cents": 4000, "estimated_hours": 2, "message": "Can start today"},
        headers=_auth(cheap["access_token"]),
    )
    assert pricey_quote.status_code == 200
    assert cheap_quote.status_code == 200

    quotes = client.get(f"/requests/{request_id}/quotes", headers=_auth(customer["access_token"]))
    assert [item["amount_cents"] for item in quotes.json()] == [4000, 5000]

    accepted = client.post(f"/quotes/{cheap_quote.json()['id']}/accept", headers=_auth(customer["access_token"]))
    assert accepted.status_code == 200
    job = accepted.json()["job"]
    assert job["quote_id"] == cheap_quote.json()["id"]

    again = client.post(f"/quotes/{pricey_quote.json()['id']}/accept", headers=_auth(customer["access_token"]))
    assert again.status_code == 409
    assert again.json()["detail"]["error"] == "already_accepted"

    late = client.post(
        "/quotes",
        json={"request_id": request_id, "amount_cents": 3000},
        headers=_auth(_approved_pro(admin_token)["access_token"]),
    )
    assert late.status_code == 409
    assert late.json()["detail"]["error"] == "request_closed"

    notifications = client.get("/notifications", headers=_auth(cheap["access_token"]))
    assert "quote_accepted" in [item["kind"] for item in notifications.json()["notifications"]]

    skip = client.post(f"/jobs/{job['id']}/status", json={"status": "done"}, headers=_auth(cheap["access_token"]))
    assert skip.status_code == 409
    for status in ("in_progress", "done"):
        moved = client.post(f"/jobs/{job['id']}/status", json={"status": status}, headers=_auth(cheap["access_token"]))
        assert moved.status_code == 200
        assert moved.json()["status"] == status

    review = client.post(
        f"/jobs/{job['id']}/reviews",
        json={"rating": 5, "comment": "Fast and tidy"},
        headers=_auth(customer["access_token"]),
    )
    assert review.status_code == 200
    duplicate_review = client.post(
        f"/jobs/{job['id']}/reviews",
        json={"rating": 4},
        headers=_auth(customer["access_token"]),
    )
    assert duplicate_review.status_code == 409

    claim = client.post(
        "/warranty-claims",
        json={"job_id": job["id"], "description": "Heater stopped again"},
        headers=_auth(customer["access_token"]),
    )
    assert claim.status_code == 200
    claim_id = claim.json()["id"]

    resolved = client.post(
        f"/warranty-claims/{claim_id}/status",
        json={"status": "resolved", "admin_notes": "Part replaced"},
        headers=_auth(admin_token),
    )
    assert resolved.status_code == 200
    resolved_again = client.post(
        f"/warranty-claims/{claim_id}/status",
        json={"status": "resolved"},
        headers=_auth(admin_token),
    )
    assert resolved_again.json()["resolved_at"] == resolved.json()["resolved_at"]

    stats = client.get("/stats/pro", headers=_auth(cheap["access_token"]))
    assert stats.status_code == 200
    assert stats.json()["total_earnings_cents"] == 4000
    assert stats.json()["average_rating"] == 5.0


def test_forbidden_and_not_found_mapping():
    admin_token = _admin_token()
    customer = _customer()
    other = _customer()
    pro = _approved_pro(admin_token, slug="electrical")

    created = client.post(
        "/requests",
        json={
            "category_id": _category_id("electrical"),
            "street": "Av. 10 de Agosto",
            "city": "Quito",
            "description": "Breaker keeps tripping",
        },
        headers=_auth(customer["access_token"]),
    )
    request_id = created.json()["request"]["id"]

    assert client.get(f"/requests/{request_id}", headers=_auth(other["access_token"])).status_code == 403
    assert client.get("/requests/999999", headers=_auth(customer["access_token"])).status_code == 404

    quote = client.post(
        "/quotes",
        json={"request_id": request_id, "amount_cents": 2500},
        headers=_auth(pro["access_token"]),
    )
    stolen = client.post(f"/quotes/{quote.json()['id']}/accept", headers=_auth(other["access_token"]))
    assert stolen.status_code == 403
    assert stolen.json()["detail"]["error"] == "forbidden"

    bad_amount = client.post(
        "/quotes",
        json={"request_id": request_id, "amount_cents": 0},
        headers=_auth(pro["access_token"]),
    )
    assert bad_amount.status_code == 400
    assert bad_amount.json()["detail"]["error"] == "invalid_amount"

    not_admin = client.post(
        f"/admin/pros/{pro['profile_id']}/approval",
        json={"status": "suspended"},
        headers=_auth(customer["access_token"]),
    )
    assert not_admin.status_code == 403


def test_nearby_pros_and_location_validation():
    admin_token = _admin_token()
    pro = _approved_pro(admin_token, slug="locksmith")
    located = client.post(
        "/pros/location",
        json={"latitude": -2.9001, "longitude": -79.0059},
        headers=_auth(pro["access_token"]),
    )
    assert located.status_code == 200

    invalid = client.post(
        "/pros/location",
        json={"latitude": 95, "longitude": 0},
        headers=_auth(pro["access_token"]),
    )
    assert invalid.status_code == 400
    assert invalid.json()["detail"]["error"] == "invalid_coordinate"

    nearby = client.get(
        "/pros/nearby",
        params={"lat": -2.9, "lng": -79.0, "category_id": _category_id("locksmith")},
    )
    assert nearby.status_code == 200
    assert pro["profile_id"] in [item["id"] for item in nearby.json()]

    far_away = client.get("/pros/nearby", params={"lat": 40.4, "lng": -3.7, "category_id": _category_id("locksmith")})
    assert pro["profile_id"] not in [item["id"] for item in far_away.json()]


def test_notifications_read_state():
    admin_token = _admin_token()
    pro = _approved_pro(admin_token)

    listing = client.get("/notifications", headers=_auth(pro["access_token"]))
    assert listing.status_code == 200
    payload = listing.json()
    assert payload["unread_count"] >= 1
    first_id = payload["notifications"][0]["id"]

    marked = client.post(f"/notifications/{first_id}/read", headers=_auth(pro["access_token"]))
    assert marked.status_code == 200
    assert marked.json()["read"] is True

    other = _customer()
    assert client.post(f"/notifications/{first_id}/read", headers=_auth(other["access_token"])).status_code == 404

    cleared = client.post("/notifications/read-all", headers=_auth(pro["access_token"]))
    assert cleared.status_code == 200
    assert client.get("/notifications", headers=_auth(pro["access_token"])).json()["unread_count"] == 0


def test_quote_averages_list_every_category():
    response = client.get("/quotes/average")
    assert response.status_code == 200
    assert len(response.json()) >= 10
    assert all(item["average_cents"] > 0 for item in response.json())
