from __future__ import annotations

from datetime import date, timedelta

import pytest

from family_finance.extensions import db, mail
from family_finance.models import Goal, Notification
from family_finance.services.reminders import crossed_milestone, send_due_date_reminders

CRON_HEADERS = {"Authorization": "Bearer test-cron-secret"}
TODAY = date.today()


def _goal(client, name="Dana Darurat", target=1_000_000, days=90):
    resp = client.post("/api/goals", json={
        "name": name, "target_amount": target, "deadline": (TODAY + timedelta(days=days)).isoformat(),
    })
    assert resp.status_code == 201
    return resp.get_json()["goal"]


def _liability(client, name, due_in, amount=5_000_000, **extra):
    payload = {"name": name, "type": "PERSONAL_LOAN", "amount": amount, **extra}
    if due_in is not None:
        payload["due_date"] = (TODAY + timedelta(days=due_in)).isoformat()
    resp = client.post("/api/liabilities", json=payload)
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["liability"]


@pytest.fixture
def due_items(client, admin):
    """A loan due in three days and a goal ending in five."""
    loan = _liability(client, "KPR", 3, creditor="Bank Mandiri")
    goal = _goal(client, "Liburan", days=5)
    _liability(client, "Kartu Kredit", 20)
    return loan, goal


# --------------------------
# Goal hints
# --------------------------
def test_goal_close_to_deadline_is_high_priority(client, admin) -> None:
    near = _goal(client, "Sepeda", days=2)
    _goal(client, "Laptop", days=6)

    body = client.get("/api/goals/notifications").get_json()

    deadlines = [n for n in body["notifications"] if n["type"] == "GOAL_DEADLINE_NEAR"]
    assert [(n["goal_name"], n["priority"]) for n in deadlines] == [("Sepeda", "high"), ("Laptop", "medium")]
    assert deadlines[0]["goal_id"] == near["id"]
    assert deadlines[0]["days_left"] == 2
    assert body["stats"]["high"] == 1
    assert body["reminders_enabled"] is True


def test_unfinished_goal_past_deadline_is_overdue(app, client, admin) -> None:
    goal = _goal(client)
    client.post(f"/api/goals/{goal['id']}/contribute", json={"amount": 300_000})
    with app.app_context():
        db.session.get(Goal, goal["id"]).deadline = TODAY - timedelta(days=4)
        db.session.commit()

    body = client.get("/api/goals/notifications").get_json()

    overdue = body["notifications"][0]
    assert overdue["type"] == "GOAL_OVERDUE"
    assert overdue["priority"] == "high"
    assert overdue["days_overdue"] == 4
    assert overdue["progress"] == 30
    assert not any(n["type"] == "GOAL_DEADLINE_NEAR" for n in body["notifications"])


def test_goal_hints_include_recent_milestone_and_almost_complete(client, admin) -> None:
    half = _goal(client, "Motor")
    almost = _goal(client, "Kulkas")
    client.post(f"/api/goals/{half['id']}/contribute", json={"amount": 520_000})
    client.post(f"/api/goals/{almost['id']}/contribute", json={"amount": 920_000})

    types = {(n["goal_name"], n["type"]) for n in client.get("/api/goals/notifications").get_json()["notifications"]}

    assert ("Motor", "GOAL_MILESTONE") in types
    assert ("Kulkas", "GOAL_ALMOST_COMPLETE") in types


def test_crossed_milestone_reports_the_highest_one() -> None:
    assert crossed_milestone(0, 55) == 50
    assert crossed_milestone(20, 24.9) is None
    assert crossed_milestone(80, 130) == 100


def test_contribution_crossing_a_milestone_notifies_every_member(client, member_client) -> None:
    goal = _goal(client)

    resp = client.post(f"/api/goals/{goal['id']}/contribute", json={"amount": 550_000})

    assert resp.get_json()["milestone"] == 50
    for c in (client, member_client):
        notes = c.get("/api/notifications?type=GOAL_MILESTONE").get_json()["notifications"]
        assert [n["title"] for n in notes] == ["Dana Darurat reached 50%"]
        assert notes[0]["reference_id"] == goal["id"]

    small = client.post(f"/api/goals/{goal['id']}/contribute", json={"amount": 10_000}).get_json()
    assert small["milestone"] is None


def test_milestone_notes_follow_goal_reminder_switch(client, admin) -> None:
    client.put("/api/family/settings", json={"goal_reminders": False})
    goal = _goal(client)

    resp = client.post(f"/api/goals/{goal['id']}/contribute", json={"amount": 1_000_000})

    assert resp.get_json()["milestone"] == 100
    assert client.get("/api/notifications").get_json()["total"] == 0


# --------------------------
# Liability due dates
# --------------------------
def test_liability_reminders_are_bucketed_by_urgency(client, admin) -> None:
    _liability(client, "Cicilan Motor", -4)
    _liability(client, "KPR", 2)
    _liability(client, "Pinjaman Kantor", 10)
    _liability(client, "Kartu Kredit", None, interest_rate=21)
    _liability(client, "Lunas", 1, amount=1_000_000, remaining_amount=0)

    body = client.get("/api/liabilities/due-date-reminders").get_json()

    assert body["days_ahead"] == 30
    assert body["stats"] == {
        "total": 4, "overdue": 1, "critical": 2, "high": 0, "due_in_7_days": 1, "due_in_30_days": 2,
    }
    assert [r["name"] for r in body["categorized"]["overdue"]] == ["Cicilan Motor"]
    assert [r["name"] for r in body["categorized"]["due_soon"]] == ["KPR"]
    assert [r["name"] for r in body["categorized"]["upcoming"]] == ["Pinjaman Kantor"]
    assert body["categorized"]["later"] == []

    by_name = {r["name"]: r for r in body["reminders"]}
    assert by_name["Cicilan Motor"]["is_overdue"] is True
    assert by_name["Pinjaman Kantor"]["urgency"] == "medium"
    assert by_name["Kartu Kredit"]["urgency"] == "low"
    assert by_name["Kartu Kredit"]["due_date"] is None
    assert any("interest" in tip for tip in by_name["Kartu Kredit"]["recommendations"])


def test_liability_reminders_days_ahead_is_validated(client, admin) -> None:
    resp = client.get("/api/liabilities/due-date-reminders?days_ahead=0")

    assert resp.status_code == 400
    assert resp.get_json()["field"] == "days_ahead"


# --------------------------
# Cron delivery
# --------------------------
def test_due_date_reminders_require_cron_secret(client, due_items) -> None:
    assert client.post("/api/notifications/send-due-date-reminders").status_code == 401


def test_due_date_reminders_reach_every_member_once_a_day(client, member_client, due_items) -> None:
    loan, goal = due_items

    with mail.record_messages() as outbox:
        first = client.post("/api/notifications/send-due-date-reminders", headers=CRON_HEADERS).get_json()

    assert first["families"] == 1
    assert first["liabilities"] == 1
    assert first["goals"] == 1
    assert first["notifications"] == 4
    assert first["emails"] == 4
    assert sorted({m.recipients[0] for m in outbox}) == ["ani@example.com", "budi@example.com"]
    assert sorted({m.subject for m in outbox}) == ["Goal deadline approaching: Liburan", "Payment reminder: KPR"]

    notes = member_client.get("/api/notifications").get_json()["notifications"]
    by_type = {n["type"]: n for n in notes}
    assert by_type["PAYMENT_DUE"]["reference_id"] == loan["id"]
    assert by_type["PAYMENT_DUE"]["data"]["days_until_due"] == 3
    assert by_type["PAYMENT_DUE"]["email_sent"] is True
    assert by_type["DUE_DATE_REMINDER"]["reference_id"] == goal["id"]

    with mail.record_messages() as outbox:
        again = client.post("/api/notifications/send-due-date-reminders", headers=CRON_HEADERS).get_json()
    assert again["notifications"] == 0
    assert again["skipped"] == 4
    assert outbox == []


def test_goal_deadlines_follow_goal_reminder_switch(client, due_items) -> None:
    client.put("/api/family/settings", json={"goal_reminders": False})

    body = client.post("/api/notifications/send-due-date-reminders", headers=CRON_HEADERS).get_json()

    assert body["goals"] == 0
    assert body["liabilities"] == 1


def test_reminders_stay_in_app_when_email_is_off(client, due_items) -> None:
    client.put("/api/family/settings", json={"email_notif": False})

    with mail.record_messages() as outbox:
        body = client.post("/api/notifications/send-due-date-reminders", headers=CRON_HEADERS).get_json()

    assert body["notifications"] == 2
    assert body["emails"] == 0
    assert outbox == []
    notes = client.get("/api/notifications").get_json()["notifications"]
    assert all(n["email_sent"] is False for n in notes)


def test_wider_window_reaches_later_liabilities(app, client, due_items) -> None:
    with app.app_context():
        result = send_due_date_reminders(today=TODAY, days_ahead=30)

    assert result["liabilities"] == 2


# --------------------------
# In-app list
# --------------------------
def test_mark_read_and_clear_notifications(client, member_client, due_items) -> None:
    client.post("/api/notifications/send-due-date-reminders", headers=CRON_HEADERS)
    mine = client.get("/api/notifications").get_json()
    assert mine["unread_count"] == 2
    first_id = mine["notifications"][0]["id"]

    assert client.patch("/api/notifications", json={}).get_json()["field"] == "ids"
    marked = client.patch("/api/notifications", json={"ids": [first_id]}).get_json()
    assert marked["count"] == 1
    unread = client.get("/api/notifications?unread_only=true").get_json()
    assert unread["unread_count"] == 1
    assert first_id not in [n["id"] for n in unread["notifications"]]
    assert client.get("/api/notifications?status=READ").get_json()["total"] == 1

    theirs = member_client.get("/api/notifications").get_json()["notifications"][0]["id"]
    assert client.delete(f"/api/notifications/{theirs}").status_code == 404

    client.patch("/api/notifications", json={"mark_all": True})
    cleared = client.delete("/api/notifications").get_json()
    assert cleared["count"] == 2
    assert client.get("/api/notifications").get_json()["total"] == 0
    assert member_client.get("/api/notifications").get_json()["unread_count"] == 2


def test_delete_single_notification(app, client, due_items) -> None:
    client.post("/api/notifications/send-due-date-reminders", headers=CRON_HEADERS)
    note_id = client.get("/api/notifications").get_json()["notifications"][0]["id"]

    assert client.delete(f"/api/notifications/{note_id}").status_code == 200

    with app.app_context():
        assert db.session.get(Notification, note_id) is None


def test_budget_warning_is_kept_as_notification(client, add_txn, category_id) -> None:
    client.post("/api/budgets", json={
        "category_id": category_id("Makan & Minum"), "amount": 100_000, "year": TODAY.year, "month": TODAY.month,
    })
    add_txn(500_000, "INCOME")

    add_txn(95_000)

    notes = client.get("/api/notifications?type=BUDGET_ALERT").get_json()["notifications"]
    assert len(notes) == 1
    assert notes[0]["title"] == "Budget warning: Makan & Minum"
    assert notes[0]["data"]["percentage"] == 95
    assert notes[0]["email_sent"] is True
