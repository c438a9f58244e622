from __future__ import annotations

from datetime import datetime, timedelta

from family_finance.extensions import db, mail
from family_finance.models import FamilyInvite


def _invite(client, email="ani@example.com"):
    return client.post("/api/family/invite", json={"email": email})


def _token(resp) -> str:
    return resp.get_json()["invite_link"].split("token=")[1]


def test_invite_sends_email_with_registration_link(client, admin) -> None:
    with mail.record_messages() as outbox:
        resp = _invite(client)

    assert resp.status_code == 201
    body = resp.get_json()
    assert body["email_sent"] is True
    assert body["invite_link"].startswith("http://testserver/register?token=")
    assert body["invite"]["status"] == "PENDING"
    assert len(outbox) == 1
    assert outbox[0].recipients == ["ani@example.com"]
    assert body["invite_link"] in outbox[0].body


def test_public_token_check(app, client, admin) -> None:
    token = _token(_invite(client))
    anonymous = app.test_client()

    valid = anonymous.get(f"/api/family/invite/{token}").get_json()
    assert valid["valid"] is True
    assert valid["email"] == "ani@example.com"
    assert valid["family"]["name"] == "Budi Santoso's Family"
    assert valid["invited_by"] == "Budi Santoso"

    missing = anonymous.get("/api/family/invite/not-a-token").get_json()
    assert missing == {"valid": False, "reason": "NOT_FOUND"}


def test_expired_token_is_flagged(app, client, admin) -> None:
    token = _token(_invite(client))
    with app.app_context():
        invite = db.session.query(FamilyInvite).filter_by(token=token).one()
        invite.expires_at = datetime.utcnow() - timedelta(minutes=1)
        db.session.commit()

    assert client.get(f"/api/family/invite/{token}").get_json()["reason"] == "EXPIRED"
    assert client.get(f"/api/family/invite/{token}").get_json()["reason"] == "NOT_PENDING"


def test_register_with_token_joins_the_family_as_member(client, admin, member_client) -> None:
    session = member_client.get("/auth/session").get_json()
    assert session["user"]["role"] == "MEMBER"
    assert session["family"]["id"] == admin["family"]["id"]

    members = client.get("/api/family/members").get_json()["members"]
    assert [m["email"] for m in members] == ["budi@example.com", "ani@example.com"]
    assert client.get("/api/family/invites").get_json()["invites"] == []


def test_register_with_token_for_other_email_is_refused(app, client, admin, register_user) -> None:
    token = _token(_invite(client))

    resp = register_user(app.test_client(), email="someone@example.com", name="Someone", token=token)

    assert resp.status_code == 400
    assert resp.get_json()["code"] == "EMAIL_MISMATCH"


def test_inviting_an_existing_member_fails(client, member_client) -> None:
    resp = _invite(client, "ani@example.com")

    assert resp.status_code == 400
    assert resp.get_json()["code"] == "ALREADY_MEMBER"


def test_reinvite_replaces_pending_invite(client, admin) -> None:
    first = _token(_invite(client))
    second = _token(_invite(client))

    assert first != second
    assert len(client.get("/api/family/invites").get_json()["invites"]) == 1
    assert client.get(f"/api/family/invite/{first}").get_json()["reason"] == "NOT_FOUND"


def test_revoke_invite(client, admin) -> None:
    invite_id = _invite(client).get_json()["invite"]["id"]

    assert client.delete(f"/api/family/invites/{invite_id}").status_code == 200
    again = client.delete(f"/api/family/invites/{invite_id}")
    assert again.status_code == 400
    assert again.get_json()["code"] == "INVITE_NOT_PENDING"


def test_accept_invite_moves_a_solo_user(app, client, admin, register_user) -> None:
    token = _token(_invite(client, "rina@example.com"))
    rina = app.test_client()
    register_user(rina, email="rina@example.com", name="Rina")

    resp = rina.post("/api/family/accept-invite", json={"token": token})

    assert resp.status_code == 200
    assert resp.get_json()["family"]["id"] == admin["family"]["id"]
    assert rina.get("/auth/session").get_json()["user"]["role"] == "MEMBER"


def test_members_cannot_invite(member_client) -> None:
    resp = _invite(member_client, "x@example.com")

    assert resp.status_code == 403


def test_last_admin_cannot_step_down(client, admin, member_client) -> None:
    me = admin["user"]["id"]

    resp = client.put(f"/api/family/members/{me}/role", json={"role": "MEMBER"})
    assert resp.status_code == 400
    assert resp.get_json()["code"] == "LAST_ADMIN"

    ani = next(m for m in client.get("/api/family/members").get_json()["members"] if m["role"] == "MEMBER")
    assert client.put(f"/api/family/members/{ani['id']}/role", json={"role": "admin"}).status_code == 200
    assert client.put(f"/api/family/members/{me}/role", json={"role": "MEMBER"}).status_code == 200


def test_removed_member_loses_family_access(client, admin, member_client) -> None:
    me = admin["user"]["id"]
    assert client.delete(f"/api/family/members/{me}").get_json()["code"] == "CANNOT_REMOVE_SELF"

    ani = next(m for m in client.get("/api/family/members").get_json()["members"] if m["role"] == "MEMBER")
    assert client.delete(f"/api/family/members/{ani['id']}").status_code == 200

    resp = member_client.get("/api/wallets")
    assert resp.status_code == 403
    assert resp.get_json()["code"] == "NO_FAMILY"


def test_settings_update_is_audited_with_changes(client, admin) -> None:
    resp = client.put("/api/family/settings", json={
        "currency": "usd", "language": "en", "weekly_report": True, "name": "Keluarga Santoso",
    })

    assert resp.status_code == 200
    changes = resp.get_json()["changes"]
    assert changes["currency"] == {"from": "IDR", "to": "USD"}
    assert changes["weekly_report"] == {"from": False, "to": True}

    activity = client.get("/api/family/activity?action=update_family_settings").get_json()
    assert activity["pagination"]["total"] == 1
    assert activity["activities"][0]["details"]["changes"]["name"]["to"] == "Keluarga Santoso"


def test_settings_validation(client, admin) -> None:
    assert client.put("/api/family/settings", json={"language": "fr"}).get_json()["field"] == "language"
    assert client.put("/api/family/settings", json={"currency": "RP"}).get_json()["field"] == "currency"
    assert client.put("/api/family/settings", json={"date_format": "D.M.Y"}).status_code == 400


def test_members_can_read_but_not_change_settings(member_client) -> None:
    assert member_client.get("/api/family/settings").status_code == 200
    assert member_client.put("/api/family/settings", json={"currency": "USD"}).status_code == 403


def test_inviting_another_familys_user_fails(app, client, admin, register_user) -> None:
    register_user(app.test_client(), email="rina@example.com", name="Rina")

    resp = _invite(client, "rina@example.com")

    assert resp.status_code == 400
    assert resp.get_json()["code"] == "USER_EXISTS"


def test_accept_invite_refused_while_own_family_has_members(app, client, admin, register_user) -> None:
    token = _token(_invite(client, "rina@example.com"))
    rina = app.test_client()
    register_user(rina, email="rina@example.com", name="Rina")
    dodi_token = _token(_invite(rina, "dodi@example.com"))
    assert register_user(app.test_client(), email="dodi@example.com", name="Dodi", token=dodi_token).status_code == 201

    resp = rina.post("/api/family/accept-invite", json={"token": token})

    assert resp.status_code == 400
    assert resp.get_json()["code"] == "ALREADY_IN_FAMILY"
    assert rina.get("/auth/session").get_json()["user"]["role"] == "ADMIN"
