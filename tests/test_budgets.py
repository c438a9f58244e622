from __future__ import annotations

from datetime import date

from family_finance.extensions import mail
from family_finance.utils.helpers import prev_month

TODAY = date.today()


def _budget(client, category_id, amount, year=TODAY.year, month=TODAY.month, **extra):
    return client.post("/api/budgets", json={
        "category_id": category_id, "amount": amount, "year": year, "month": month, **extra,
    })


def test_upsert_creates_then_updates(client, admin, category_id) -> None:
    food = category_id("Makan & Minum")

    created = _budget(client, food, 1_000_000)
    updated = _budget(client, food, 1_500_000)

    assert created.status_code == 201
    assert updated.status_code == 200
    assert updated.get_json()["budget"]["id"] == created.get_json()["budget"]["id"]
    assert updated.get_json()["budget"]["amount"] == 1_500_000

    listing = client.get(f"/api/budgets?year={TODAY.year}&month={TODAY.month}").get_json()
    assert len(listing["budgets"]) == 1


def test_budgets_are_for_expense_categories_only(client, admin, category_id) -> None:
    resp = _budget(client, category_id("Gaji", "INCOME"), 1_000_000)

    assert resp.status_code == 400
    assert resp.get_json()["field"] == "category_id"


def test_only_admins_manage_budgets(member_client, category_id) -> None:
    resp = _budget(member_client, category_id("Transport"), 500_000)

    assert resp.status_code == 403
    assert resp.get_json()["code"] == "FORBIDDEN"
    assert member_client.get("/api/budgets").status_code == 200


def test_status_classifies_each_category(client, add_txn, category_id) -> None:
    _budget(client, category_id("Makan & Minum"), 1_000_000)
    _budget(client, category_id("Transport"), 100_000)
    _budget(client, category_id("Tagihan"), 1_000_000)
    add_txn(5_000_000, "INCOME")
    add_txn(850_000, category="Makan & Minum")
    add_txn(120_000, category="Transport")
    add_txn(100_000, category="Tagihan")
    add_txn(40_000, category="Hiburan")

    status = client.get("/api/budgets/status").get_json()
    by_name = {row["category"]["name"]: row for row in status["items"]}

    assert by_name["Makan & Minum"]["status"] == "warning"
    assert by_name["Transport"]["status"] == "over"
    assert by_name["Transport"]["percentage"] == 100
    assert by_name["Transport"]["actual_percentage"] == 120
    assert by_name["Transport"]["remaining"] == -20_000
    assert by_name["Tagihan"]["status"] == "safe"
    assert by_name["Hiburan"]["status"] == "no-budget"
    assert status["counts"] == {"over": 1, "warning": 1, "safe": 1, "no-budget": 1}
    assert status["totals"]["budget"] == 2_100_000
    assert status["totals"]["realization"] == 1_110_000
    # sorted by actual usage, biggest overrun first
    assert status["items"][0]["category"]["name"] == "Transport"


def test_expense_past_ninety_percent_returns_warning_and_emails(client, add_txn, category_id) -> None:
    _budget(client, category_id("Makan & Minum"), 1_000_000)
    add_txn(2_000_000, "INCOME")

    assert add_txn(500_000).get_json()["budget_warning"] is None
    with mail.record_messages() as outbox:
        warning = add_txn(450_000).get_json()["budget_warning"]

    assert warning["percentage"] == 95
    assert warning["exceeded"] is False
    assert warning["email_sent"] is True
    assert len(outbox) == 1
    assert outbox[0].subject == "Budget warning: Makan & Minum at 95%"


def test_budget_warning_email_respects_family_settings(client, add_txn, category_id) -> None:
    client.put("/api/family/settings", json={"budget_alerts": False})
    _budget(client, category_id("Makan & Minum"), 100_000)
    add_txn(500_000, "INCOME")

    with mail.record_messages() as outbox:
        warning = add_txn(150_000).get_json()["budget_warning"]

    assert warning["exceeded"] is True
    assert "email_sent" not in warning
    assert outbox == []


def test_copy_previous_month_skips_existing(client, admin, category_id) -> None:
    py, pm = prev_month(TODAY.year, TODAY.month)
    _budget(client, category_id("Makan & Minum"), 2_000_000, year=py, month=pm)
    _budget(client, category_id("Transport"), 700_000, year=py, month=pm, alert_threshold=70)
    _budget(client, category_id("Transport"), 900_000)

    resp = client.post("/api/budgets/copy-previous", json={"year": TODAY.year, "month": TODAY.month})

    assert resp.status_code == 200
    assert resp.get_json()["copied"] == 1
    rows = client.get("/api/budgets").get_json()["budgets"]
    amounts = {b["category"]["name"]: b["amount"] for b in rows}
    assert amounts == {"Makan & Minum": 2_000_000, "Transport": 900_000}

    again = client.post("/api/budgets/copy-previous", json={"year": TODAY.year, "month": TODAY.month})
    assert again.get_json()["copied"] == 0


def test_delete_budget(client, admin, category_id) -> None:
    budget_id = _budget(client, category_id("Belanja"), 300_000).get_json()["budget"]["id"]

    assert client.delete(f"/api/budgets/{budget_id}").status_code == 200
    assert client.get("/api/budgets").get_json()["budgets"] == []
