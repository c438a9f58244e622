from __future__ import annotations

from datetime import date, timedelta

import pytest

from family_finance.extensions import db
from family_finance.models import RecurringFrequency, RecurringStatus, RecurringTransaction, Transaction
from family_finance.services.recurring import next_occurrence, run_due

TODAY = date.today()
CRON_HEADERS = {"Authorization": "Bearer test-cron-secret"}


# --------------------------
# Date math
# --------------------------
@pytest.mark.parametrize(
    ("current", "day_of_month", "expected"),
    [
        (date(2024, 1, 31), 31, date(2024, 2, 29)),
        (date(2024, 2, 29), 31, date(2024, 3, 31)),
        (date(2023, 1, 31), None, date(2023, 2, 28)),
        (date(2024, 12, 15), 15, date(2025, 1, 15)),
    ],
)
def test_monthly_keeps_pinned_day_and_clamps(current, day_of_month, expected) -> None:
    assert next_occurrence(current, RecurringFrequency.MONTHLY, day_of_month=day_of_month) == expected


def test_yearly_on_leap_day_falls_back_to_feb_28() -> None:
    assert next_occurrence(date(2024, 2, 29), RecurringFrequency.YEARLY) == date(2025, 2, 28)


def test_weekly_snaps_forward_to_day_of_week() -> None:
    monday = date(2024, 1, 1)
    assert next_occurrence(monday, RecurringFrequency.WEEKLY) == date(2024, 1, 8)
    assert next_occurrence(monday, RecurringFrequency.WEEKLY, day_of_week=4) == date(2024, 1, 12)


def test_daily_adds_one_day() -> None:
    assert next_occurrence(date(2024, 12, 31), RecurringFrequency.DAILY) == date(2025, 1, 1)


# --------------------------
# Rules through the API
# --------------------------
@pytest.fixture
def make_rule(client, admin, cash_wallet, category_id):
    def _make(amount, ttype="INCOME", frequency="DAILY", start=TODAY, **extra):
        category = "Gaji" if ttype == "INCOME" else "Tagihan"
        resp = client.post("/api/recurring-transactions", json={
            "name": extra.pop("name", "Rule"),
            "type": ttype,
            "amount": amount,
            "wallet_id": cash_wallet["id"],
            "category_id": category_id(category, ttype),
            "frequency": frequency,
            "start_date": start.isoformat(),
            **extra,
        })
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()["recurring_transaction"]
    return _make


def test_create_sets_next_date_to_start_date(make_rule) -> None:
    start = TODAY + timedelta(days=3)
    rule = make_rule(50_000, start=start)

    assert rule["next_date"] == start.isoformat()
    assert rule["status"] == "ACTIVE"


def test_end_date_before_start_date_is_rejected(client, admin, cash_wallet, category_id) -> None:
    resp = client.post("/api/recurring-transactions", json={
        "name": "Bad", "type": "INCOME", "amount": 1, "wallet_id": cash_wallet["id"],
        "category_id": category_id("Gaji", "INCOME"), "frequency": "DAILY",
        "start_date": "2024-05-10", "end_date": "2024-05-01",
    })

    assert resp.status_code == 400
    assert resp.get_json()["field"] == "end_date"


def test_run_due_catches_up_every_missed_occurrence(app, make_rule, cash_wallet, balance) -> None:
    rule = make_rule(100_000, start=TODAY - timedelta(days=3), name="Uang saku")

    with app.app_context():
        summary = run_due(today=TODAY)
        stored = db.session.get(RecurringTransaction, rule["id"])
        occurrences = db.session.query(Transaction).filter_by(recurring_id=rule["id"]).order_by(Transaction.date).all()
        assert summary["processed"] == 1
        assert summary["created"] == 4
        assert [t.date for t in occurrences] == [TODAY - timedelta(days=n) for n in (3, 2, 1, 0)]
        assert occurrences[0].description == "Uang saku (Auto-generated)"
        assert stored.next_date == TODAY + timedelta(days=1)
        assert stored.last_run_date == TODAY

    assert balance(cash_wallet["id"]) == 400_000

    with app.app_context():
        assert run_due(today=TODAY)["processed"] == 0


def test_run_due_completes_rule_at_end_date(app, make_rule) -> None:
    rule = make_rule(
        1_000_000, frequency="MONTHLY", start=date(2024, 1, 15),
        end_date="2024-03-20", day_of_month=15,
    )

    with app.app_context():
        summary = run_due(today=date(2024, 6, 1))
        stored = db.session.get(RecurringTransaction, rule["id"])
        assert summary["created"] == 3
        assert summary["completed"] == 1
        assert stored.status == RecurringStatus.COMPLETED
        assert stored.last_run_date == date(2024, 3, 15)


def test_run_due_stops_rule_on_insufficient_funds(app, add_txn, make_rule) -> None:
    add_txn(500_000, "INCOME")
    rule = make_rule(300_000, ttype="EXPENSE", start=TODAY - timedelta(days=2))

    with app.app_context():
        summary = run_due(today=TODAY)
        stored = db.session.get(RecurringTransaction, rule["id"])
        assert summary["created"] == 1
        assert summary["failed"] == 1
        assert "Insufficient balance" in summary["errors"][0]["error"]
        # the occurrence that went through is kept; the rule retries from the failed date
        assert stored.status == RecurringStatus.ACTIVE
        assert stored.next_date == TODAY - timedelta(days=1)


def test_manual_execute_creates_one_occurrence_today(client, make_rule, cash_wallet, balance) -> None:
    rule = make_rule(75_000, frequency="MONTHLY", start=TODAY + timedelta(days=10), name="Arisan")

    resp = client.post(f"/api/recurring-transactions/{rule['id']}/execute")

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["transaction"]["date"] == TODAY.isoformat()
    assert body["transaction"]["description"] == "Arisan (Recurring)"
    assert body["recurring_transaction"]["last_run_date"] == TODAY.isoformat()
    assert body["recurring_transaction"]["next_date"] == next_occurrence(TODAY, RecurringFrequency.MONTHLY).isoformat()
    assert balance(cash_wallet["id"]) == 75_000


def test_paused_rule_cannot_run_and_resume_skips_missed_dates(app, client, make_rule) -> None:
    rule = make_rule(10_000, start=TODAY - timedelta(days=5))

    assert client.post(f"/api/recurring-transactions/{rule['id']}/pause").status_code == 200
    resp = client.post(f"/api/recurring-transactions/{rule['id']}/execute")
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "NOT_ACTIVE"

    with app.app_context():
        assert run_due(today=TODAY)["processed"] == 0

    resumed = client.post(f"/api/recurring-transactions/{rule['id']}/resume").get_json()
    assert resumed["recurring_transaction"]["status"] == "ACTIVE"
    assert resumed["recurring_transaction"]["next_date"] == TODAY.isoformat()


def test_cancelled_rule_is_not_editable(client, make_rule) -> None:
    rule = make_rule(10_000)

    assert client.delete(f"/api/recurring-transactions/{rule['id']}").status_code == 200
    resp = client.put(f"/api/recurring-transactions/{rule['id']}", json={"amount": 20_000})

    assert resp.status_code == 400
    assert resp.get_json()["code"] == "NOT_EDITABLE"


def test_cron_endpoint_requires_the_secret(client, make_rule) -> None:
    make_rule(25_000, start=TODAY - timedelta(days=1))

    assert client.post("/api/cron/execute-recurring").status_code == 401
    assert client.post(
        "/api/cron/execute-recurring", headers={"Authorization": "Bearer wrong"}
    ).status_code == 401

    resp = client.post("/api/cron/execute-recurring", headers=CRON_HEADERS)
    assert resp.status_code == 200
    assert resp.get_json()["created"] == 2

    status = client.get("/api/cron/execute-recurring", headers=CRON_HEADERS).get_json()
    assert status["status_counts"]["ACTIVE"] == 1
    assert status["due_count"] == 0


def test_manual_execute_after_end_date_completes_the_rule(client, make_rule, cash_wallet, balance) -> None:
    rule = make_rule(
        10_000, start=TODAY - timedelta(days=10), end_date=(TODAY - timedelta(days=2)).isoformat(),
    )

    resp = client.post(f"/api/recurring-transactions/{rule['id']}/execute")

    assert resp.status_code == 400
    assert resp.get_json()["code"] == "RECURRING_ENDED"
    stored = client.get(f"/api/recurring-transactions/{rule['id']}").get_json()["recurring_transaction"]
    assert stored["status"] == "COMPLETED"
    assert balance(cash_wallet["id"]) == 0


def test_catch_up_stops_at_the_safety_cap(app, make_rule) -> None:
    rule = make_rule(1_000, start=TODAY - timedelta(days=149))

    with app.app_context():
        summary = run_due(today=TODAY)
        stored = db.session.get(RecurringTransaction, rule["id"])
        assert summary["created"] == 100
        assert summary["errors"][0]["rule_id"] == rule["id"]
        assert summary["errors"][0]["error"].startswith("Aborted")
        assert db.session.query(Transaction).filter_by(recurring_id=rule["id"]).count() == 100
        assert stored.next_date == TODAY - timedelta(days=49)
        assert stored.status == RecurringStatus.ACTIVE


def test_one_failing_rule_does_not_stop_the_others(app, make_rule) -> None:
    failing = make_rule(300_000, ttype="EXPENSE", start=TODAY - timedelta(days=1), name="Listrik")
    salary = make_rule(2_000_000, start=TODAY, name="Gaji bulanan", frequency="MONTHLY")

    with app.app_context():
        summary = run_due(today=TODAY)
        assert summary["processed"] == 2
        assert summary["created"] == 1
        assert summary["failed"] == 1
        assert summary["errors"][0]["rule_id"] == failing["id"]
        assert db.session.query(Transaction).filter_by(recurring_id=salary["id"]).count() == 1
        assert db.session.query(Transaction).filter_by(recurring_id=failing["id"]).count() == 0


def test_cron_status_lists_only_future_rules_as_upcoming(client, make_rule) -> None:
    make_rule(25_000, start=TODAY, name="Due today")
    later = make_rule(25_000, start=TODAY + timedelta(days=3), name="Later")

    status = client.get("/api/cron/execute-recurring", headers=CRON_HEADERS).get_json()

    assert status["due_count"] == 1
    assert [r["id"] for r in status["upcoming"]] == [later["id"]]
    assert status["upcoming"][0]["next_date"] == (TODAY + timedelta(days=3)).isoformat()
