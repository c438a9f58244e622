from __future__ import annotations

from family_finance.extensions import mail


def test_register_bootstraps_family_with_admin_wallet_and_categories(client, register_user) -> None:
    with mail.record_messages() as outbox:
        resp = register_user(client)

    assert resp.status_code == 201
    payload = resp.get_json()
    assert payload["user"]["role"] == "ADMIN"
    assert payload["user"]["email"] == "budi@example.com"
    assert payload["family"]["name"] == "Budi Santoso's Family"
    assert payload["family"]["currency"] == "IDR"

    wallets = client.get("/api/wallets").get_json()
    assert [w["name"] for w in wallets["wallets"]] == ["Cash"]
    assert wallets["total_balance"] == 0

    categories = client.get("/api/categories").get_json()["categories"]
    assert len(categories) == 11
    assert {"Gaji", "Makan & Minum"} <= {c["name"] for c in categories}

    assert len(outbox) == 1
    assert outbox[0].recipients == ["budi@example.com"]
    assert "Welcome" in outbox[0].subject


def test_register_rejects_duplicate_email_case_insensitively(app, client, register_user) -> None:
    assert register_user(client).status_code == 201

    resp = register_user(app.test_client(), email="BUDI@example.com")

    assert resp.status_code == 409
    assert resp.get_json()["code"] == "EMAIL_EXISTS"


def test_register_validates_password_strength(client, register_user) -> None:
    resp = register_user(client, password="alllowercase1")

    assert resp.status_code == 400
    body = resp.get_json()
    assert body["code"] == "VALIDATION_ERROR"
    assert body["field"] == "password"


def test_login_with_wrong_password_returns_401(app, admin) -> None:
    resp = app.test_client().post("/auth/login", json={"email": "budi@example.com", "password": "Wrong1234"})

    assert resp.status_code == 401
    assert resp.get_json()["code"] == "INVALID_CREDENTIALS"


def test_login_then_session_then_logout(app, admin) -> None:
    other = app.test_client()
    resp = other.post("/auth/login", json={"email": "Budi@Example.com", "password": "Secret123"})
    assert resp.status_code == 200

    session = other.get("/auth/session").get_json()
    assert session["user"]["name"] == "Budi Santoso"
    assert session["family"]["id"] == admin["family"]["id"]

    assert other.post("/auth/logout").status_code == 200
    assert other.get("/auth/session").status_code == 401


def test_protected_endpoint_returns_json_401_when_anonymous(client) -> None:
    resp = client.get("/api/wallets")

    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Authentication required", "code": "UNAUTHORIZED"}


def test_unknown_route_is_json_404(client) -> None:
    resp = client.get("/api/does-not-exist")

    assert resp.status_code == 404
    assert resp.get_json()["code"] == "NOT_FOUND"
