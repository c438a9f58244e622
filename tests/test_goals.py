from __future__ import annotations

from datetime import date, timedelta

import pytest


@pytest.fixture
def goal(client, admin):
    resp = client.post("/api/goals", json={
        "name": "Dana Darurat",
        "target_amount": 1_000_000,
        "deadline": (date.today() + timedelta(days=90)).isoformat(),
    })
    assert resp.status_code == 201
    return resp.get_json()["goal"]


def test_new_goal_starts_active_and_empty(goal) -> None:
    assert goal["status"] == "ACTIVE"
    assert goal["current_amount"] == 0
    assert goal["progress"] == 0
    assert goal["days_left"] == 90


def test_deadline_must_be_in_the_future(client, admin) -> None:
    resp = client.post("/api/goals", json={
        "name": "Late", "target_amount": 100, "deadline": date.today().isoformat(),
    })

    assert resp.status_code == 400
    assert resp.get_json()["field"] == "deadline"


def test_contributions_complete_the_goal_and_deleting_reopens_it(client, goal) -> None:
    first = client.post(f"/api/goals/{goal['id']}/contribute", json={"amount": 400_000})
    assert first.status_code == 201
    assert first.get_json()["completed"] is False
    assert first.get_json()["goal"]["progress"] == 40

    second = client.post(f"/api/goals/{goal['id']}/contribute", json={"amount": 700_000, "description": "Bonus"})
    body = second.get_json()
    assert body["completed"] is True
    assert body["goal"]["status"] == "COMPLETED"
    assert body["goal"]["current_amount"] == 1_100_000
    assert body["goal"]["progress"] == 100

    blocked = client.post(f"/api/goals/{goal['id']}/contribute", json={"amount": 1})
    assert blocked.status_code == 400
    assert blocked.get_json()["code"] == "GOAL_NOT_ACTIVE"

    contribution_id = body["contribution"]["id"]
    resp = client.delete(f"/api/goals/{goal['id']}/contributions/{contribution_id}")
    assert resp.status_code == 200
    reopened = resp.get_json()["goal"]
    assert reopened["status"] == "ACTIVE"
    assert reopened["current_amount"] == 400_000
    assert reopened["contribution_count"] == 1


def test_lowering_the_target_completes_the_goal(client, goal) -> None:
    client.post(f"/api/goals/{goal['id']}/contribute", json={"amount": 600_000})

    resp = client.put(f"/api/goals/{goal['id']}", json={"target_amount": 500_000})

    assert resp.get_json()["goal"]["status"] == "COMPLETED"


def test_list_summarises_goals(client, goal) -> None:
    client.post("/api/goals", json={"name": "Liburan", "target_amount": 2_000_000})
    client.post(f"/api/goals/{goal['id']}/contribute", json={"amount": 250_000})

    listing = client.get("/api/goals").get_json()

    assert listing["summary"]["total"] == 2
    assert listing["summary"]["active"] == 2
    assert listing["summary"]["total_target"] == 3_000_000
    assert listing["summary"]["total_current"] == 250_000
    assert client.get("/api/goals?status=completed").get_json()["goals"] == []


def test_delete_goal(client, goal) -> None:
    client.post(f"/api/goals/{goal['id']}/contribute", json={"amount": 10_000})

    assert client.delete(f"/api/goals/{goal['id']}").status_code == 200
    assert client.get(f"/api/goals/{goal['id']}").status_code == 404
