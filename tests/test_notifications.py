from __future__ import annotations

from datetime import date

from family_finance.extensions import mail
from family_finance.models import Family
from family_finance.services.notifications import period_summary, send_summaries

CRON_HEADERS = {"Authorization": "Bearer test-cron-secret"}


def test_monthly_summary_goes_to_every_member(app, client, member_client) -> None:
    with mail.record_messages() as outbox:
        resp = client.post("/api/notifications/send-monthly-summary", headers=CRON_HEADERS)

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["kind"] == "monthly"
    assert body["families"] == 1
    assert body["sent"] == 2
    assert sorted(m.recipients[0] for m in outbox) == ["ani@example.com", "budi@example.com"]
    assert outbox[0].subject.startswith("Monthly summary for Budi Santoso's Family")


def test_weekly_summary_is_opt_in(client, admin) -> None:
    with mail.record_messages() as outbox:
        off = client.post("/api/notifications/send-weekly-summary", headers=CRON_HEADERS).get_json()
    assert off["families"] == 0
    assert outbox == []

    client.put("/api/family/settings", json={"weekly_report": True})
    with mail.record_messages() as outbox:
        on = client.post("/api/notifications/send-weekly-summary", headers=CRON_HEADERS).get_json()
    assert on["sent"] == 1
    assert "Weekly summary" in outbox[0].subject


def test_summaries_respect_email_switch(client, admin) -> None:
    client.put("/api/family/settings", json={"email_notif": False})

    resp = client.post("/api/notifications/send-monthly-summary", headers=CRON_HEADERS)

    assert resp.get_json()["families"] == 0


def test_summary_endpoints_require_cron_secret(client) -> None:
    assert client.post("/api/notifications/send-monthly-summary").status_code == 401


def test_period_summary_numbers(app, add_txn, category_id) -> None:
    day = date(2024, 5, 10)
    add_txn(1_000_000, "INCOME", on_date=day)
    add_txn(300_000, category="Makan & Minum", on_date=day)
    add_txn(100_000, category="Transport", on_date=day)

    with app.app_context():
        family = Family.query.one()
        summary = period_summary(family, date(2024, 5, 1), date(2024, 5, 31))
        weekly = send_summaries("weekly", today=date(2024, 5, 13))

    assert summary["income"] == 1_000_000
    assert summary["expense"] == 400_000
    assert summary["net"] == 600_000
    assert summary["count"] == 3
    assert [c["category"] for c in summary["top_categories"]] == ["Makan & Minum", "Transport"]
    assert summary["top_categories"][0]["percentage"] == 75
    assert (weekly["start"], weekly["end"]) == ("2024-05-06", "2024-05-12")
