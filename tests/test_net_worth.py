from __future__ import annotations

import pytest


@pytest.fixture
def loan(client, admin):
    resp = client.post("/api/liabilities", json={
        "name": "KPR Rumah", "type": "MORTGAGE", "amount": 1_000_000, "interest_rate": 7.5, "creditor": "BTN",
    })
    assert resp.status_code == 201
    return resp.get_json()["liability"]


def test_new_liability_defaults_remaining_to_amount(loan) -> None:
    assert loan["remaining_amount"] == 1_000_000
    assert loan["paid_amount"] == 0
    assert loan["interest_rate"] == 7.5


def test_payments_reduce_remaining_and_cap_at_zero(client, loan) -> None:
    first = client.post(f"/api/liabilities/{loan['id']}/payment", json={"amount": 300_000}).get_json()
    assert first["applied"] == 300_000
    assert first["liability"]["remaining_amount"] == 700_000
    assert first["paid_off"] is False

    final = client.post(f"/api/liabilities/{loan['id']}/payment", json={"amount": 1_000_000}).get_json()
    assert final["applied"] == 700_000
    assert final["paid_off"] is True
    assert final["liability"]["paid_amount"] == 1_000_000

    again = client.post(f"/api/liabilities/{loan['id']}/payment", json={"amount": 1})
    assert again.status_code == 400
    assert again.get_json()["code"] == "ALREADY_PAID"


def test_remaining_cannot_exceed_amount(client, admin) -> None:
    resp = client.post("/api/liabilities", json={
        "name": "Kartu kredit", "type": "CREDIT_CARD", "amount": 100, "remaining_amount": 150,
    })

    assert resp.status_code == 400
    assert resp.get_json()["field"] == "remaining_amount"


def test_assets_crud_and_total(client, admin) -> None:
    car = client.post("/api/assets", json={"name": "Mobil", "type": "vehicle", "value": 150_000_000}).get_json()
    client.post("/api/assets", json={"name": "Deposito", "type": "SAVINGS", "value": 50_000_000})

    listing = client.get("/api/assets").get_json()
    assert listing["total_value"] == 200_000_000
    assert [a["name"] for a in listing["assets"]] == ["Mobil", "Deposito"]

    asset_id = car["asset"]["id"]
    updated = client.put(f"/api/assets/{asset_id}", json={"value": 140_000_000}).get_json()
    assert updated["asset"]["value"] == 140_000_000

    assert client.delete(f"/api/assets/{asset_id}").status_code == 200
    assert client.get(f"/api/assets/{asset_id}").status_code == 404
