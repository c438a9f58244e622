"""Shared fixtures: a fresh in-memory app per test, plus logged-in clients."""

from __future__ import annotations

from datetime import date

import pytest

from family_finance import create_app
from family_finance.config import Testing
from family_finance.extensions import db

PASSWORD = "Secret123"


@pytest.fixture
def app(tmp_path):
    class _Config(Testing):
        UPLOAD_FOLDER = str(tmp_path / "uploads")

    app = create_app(_Config)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def register(client, email="budi@example.com", name="Budi Santoso", password=PASSWORD, token=None):
    payload = {"email": email, "name": name, "password": password}
    if token:
        payload["token"] = token
    return client.post("/auth/register", json=payload)


@pytest.fixture
def admin(client):
    """Registers the first user (family admin) on `client` and returns the session payload."""
    resp = register(client)
    assert resp.status_code == 201
    return resp.get_json()


@pytest.fixture
def member_client(app, client, admin):
    """Second user who joined the admin's family through an invitation."""
    resp = client.post("/api/family/invite", json={"email": "ani@example.com"})
    assert resp.status_code == 201
    token = resp.get_json()["invite_link"].split("token=")[1]

    other = app.test_client()
    resp = register(other, email="ani@example.com", name="Ani Santoso", token=token)
    assert resp.status_code == 201
    return other


@pytest.fixture
def category_id(client):
    def _lookup(name, ttype="EXPENSE"):
        cats = client.get(f"/api/categories?type={ttype}").get_json()["categories"]
        return next(c["id"] for c in cats if c["name"] == name)
    return _lookup


@pytest.fixture
def cash_wallet(client, admin):
    wallets = client.get("/api/wallets").get_json()["wallets"]
    return next(w for w in wallets if w["name"] == "Cash")


@pytest.fixture
def add_txn(client, category_id, cash_wallet):
    """POST /api/transactions with sensible defaults; returns the response."""
    def _add(amount, ttype="EXPENSE", category="Makan & Minum", wallet_id=None, on_date=None, **extra):
        if ttype == "INCOME" and category == "Makan & Minum":
            category = "Gaji"
        payload = {
            "type": ttype,
            "amount": amount,
            "wallet_id": wallet_id or cash_wallet["id"],
            "category_id": category_id(category, ttype),
            "description": extra.pop("description", f"{ttype.lower()} {amount}"),
            "date": (on_date or date.today()).isoformat(),
            **extra,
        }
        return client.post("/api/transactions", json=payload)
    return _add


@pytest.fixture
def register_user():
    return register


@pytest.fixture
def balance(client):
    def _balance(wallet_id):
        wallets = client.get("/api/wallets").get_json()["wallets"]
        return next(w["balance"] for w in wallets if w["id"] == wallet_id)
    return _balance
