# family_finance/api/family.py
# ------------------------------------------------------------
# Family membership routes:
# - invites   (create / validate / accept / list / revoke)
# - members   (list / change role / remove)
# - settings  (GET any member, PUT admins only; audit lists changes)
# - activity  (paginated audit log)
# ------------------------------------------------------------
import logging
from datetime import datetime, time

from flask import jsonify, request
from flask_login import current_user, login_required

from ..errors import BusinessRuleError, NotFoundError, ValidationError
from ..extensions import db
from ..models import AuditLog, FamilyInvite, InviteStatus, Role, User
from ..services import families
from ..services.audit import log_action
from ..services.notifications import send_invite
from ..utils.helpers import (
    admin_required, family_id, json_body, page_args, parse_amount, parse_bool, parse_date, parse_email,
    parse_enum, parse_int, parse_str,
)
from . import api

logger = logging.getLogger(__name__)

LANGUAGES = ("id", "en")
DATE_FORMATS = ("DD/MM/YYYY", "MM/DD/YYYY", "YYYY-MM-DD")
NOTIFICATION_FLAGS = ("budget_alerts", "goal_reminders", "weekly_report", "monthly_report", "email_notif")


# --------------------------
# Invitations
# --------------------------
@api.route("/family/invite", methods=["POST"])
@login_required
@admin_required
def family_invite():
    family_id()
    email = parse_email(json_body().get("email"))
    invite = families.create_invite(current_user, email)
    link = families.invite_link(invite.token)
    log_action(current_user.id, invite.family_id, "INVITE_MEMBER", "FamilyInvite", invite.id, {"email": email})
    db.session.commit()

    email_sent = send_invite(invite, link)
    return jsonify({
        "message": "Invitation sent" if email_sent else "Invitation created; email could not be sent",
        "invite": invite.to_dict(),
        "invite_link": link,
        "email_sent": email_sent,
    }), 201


@api.route("/family/invite/<token>", methods=["GET"])
def family_invite_validate(token: str):
    """Public: lets the registration page check a token before signup."""
    invite, reason = families.validate_token(token)
    if reason:
        return jsonify({"valid": False, "reason": reason})
    return jsonify({
        "valid": True,
        "email": invite.email,
        "family": {"id": invite.family.id, "name": invite.family.name},
        "invited_by": invite.sender.name if invite.sender else None,
        "expires_at": invite.expires_at.isoformat(),
    })


@api.route("/family/accept-invite", methods=["POST"])
@login_required
def family_accept_invite():
    token = parse_str(json_body().get("token"), "token")
    invite = families.usable_invite(token, current_user.email)

    if current_user.family_id == invite.family_id:
        raise BusinessRuleError("You are already a member of this family", "ALREADY_MEMBER")
    if current_user.family_id:
        others = (
            db.session.query(User)
            .filter(User.family_id == current_user.family_id, User.id != current_user.id)
            .count()
        )
        if others:
            raise BusinessRuleError(
                "Leave your current family before joining another one", "ALREADY_IN_FAMILY"
            )

    old_family_id = current_user.family_id
    families.join_family(current_user, invite)
    log_action(current_user.id, invite.family_id, "ACCEPT_INVITATION", "FamilyInvite", invite.id,
               {"previous_family_id": old_family_id})
    db.session.commit()
    logger.info(f"[family] user={current_user.id} joined family={invite.family_id}")
    return jsonify({"message": "Joined family", "family": invite.family.to_dict()})


@api.route("/family/invites", methods=["GET"])
@login_required
@admin_required
def family_invites_list():
    fid = family_id()
    rows = (
        db.session.query(FamilyInvite)
        .filter_by(family_id=fid, status=InviteStatus.PENDING)
        .order_by(FamilyInvite.created_at.desc())
        .all()
    )
    return jsonify({"invites": [i.to_dict() for i in rows]})


@api.route("/family/invites/<int:invite_id>", methods=["DELETE"])
@login_required
@admin_required
def family_invite_revoke(invite_id: int):
    fid = family_id()
    invite = db.session.query(FamilyInvite).filter_by(id=invite_id, family_id=fid).first()
    if not invite:
        raise NotFoundError("Invitation not found")
    if invite.status != InviteStatus.PENDING:
        raise BusinessRuleError("Only pending invitations can be revoked", "INVITE_NOT_PENDING")
    invite.status = InviteStatus.REJECTED
    log_action(current_user.id, fid, "REVOKE_INVITATION", "FamilyInvite", invite.id, {"email": invite.email})
    db.session.commit()
    return jsonify({"message": "Invitation revoked"})


# --------------------------
# Members
# --------------------------
def _get_member(fid: int, user_id: int) -> User:
    member = db.session.query(User).filter_by(id=user_id, family_id=fid).first()
    if not member:
        raise NotFoundError("Member not found")
    return member


@api.route("/family/members", methods=["GET"])
@login_required
def family_members():
    fid = family_id()
    members = db.session.query(User).filter_by(family_id=fid).all()
    # ADMIN first, then join date
    members.sort(key=lambda u: (u.role != Role.ADMIN, u.created_at))
    return jsonify({"members": [m.to_dict() for m in members]})


@api.route("/family/members/<int:user_id>/role", methods=["PUT"])
@login_required
@admin_required
def family_member_role(user_id: int):
    fid = family_id()
    member = _get_member(fid, user_id)
    role = parse_enum(Role, json_body().get("role"), "role")
    if member.role == Role.ADMIN and role != Role.ADMIN and families.admin_count(fid) <= 1:
        raise BusinessRuleError("The family must keep at least one admin", "LAST_ADMIN")

    old = member.role
    member.role = role
    log_action(current_user.id, fid, "CHANGE_ROLE", "User", member.id, {"from": old.value, "to": role.value})
    db.session.commit()
    return jsonify({"member": member.to_dict()})


@api.route("/family/members/<int:user_id>", methods=["DELETE"])
@login_required
@admin_required
def family_member_remove(user_id: int):
    fid = family_id()
    if user_id == current_user.id:
        raise BusinessRuleError("You cannot remove yourself", "CANNOT_REMOVE_SELF")
    member = _get_member(fid, user_id)
    member.family_id = None
    member.role = Role.MEMBER
    log_action(current_user.id, fid, "REMOVE_MEMBER", "User", member.id, {"email": member.email})
    db.session.commit()
    return jsonify({"message": "Member removed"})


# --------------------------
# Settings
# --------------------------
@api.route("/family/settings", methods=["GET"])
@login_required
def family_settings_get():
    family_id()
    return jsonify({"settings": current_user.family.to_dict()})


def _validated_settings(data: dict) -> dict:
    out = {}
    if "name" in data:
        out["name"] = parse_str(data.get("name"), "name", max_len=100)
    if "description" in data:
        out["description"] = parse_str(data.get("description"), "description", required=False)
    if "currency" in data:
        currency = (str(data.get("currency") or "")).strip().upper()
        if len(currency) != 3 or not currency.isalpha():
            raise ValidationError("Currency must be a 3-letter code", field="currency")
        out["currency"] = currency
    if "timezone" in data:
        out["timezone"] = parse_str(data.get("timezone"), "timezone", max_len=64)
    if "language" in data:
        if data.get("language") not in LANGUAGES:
            raise ValidationError(f"Language must be one of: {', '.join(LANGUAGES)}", field="language")
        out["language"] = data["language"]
    if "date_format" in data:
        if data.get("date_format") not in DATE_FORMATS:
            raise ValidationError(f"Date format must be one of: {', '.join(DATE_FORMATS)}", field="date_format")
        out["date_format"] = data["date_format"]
    if "default_budget_alert" in data:
        out["default_budget_alert"] = parse_amount(
            data.get("default_budget_alert"), "default_budget_alert", allow_zero=True, max_value=100
        )
    for flag in NOTIFICATION_FLAGS:
        if flag in data:
            out[flag] = parse_bool(data.get(flag))
    return out


def _plain(value):
    return float(value) if hasattr(value, "as_tuple") else value


@api.route("/family/settings", methods=["PUT"])
@login_required
@admin_required
def family_settings_update():
    fid = family_id()
    family = current_user.family
    changes = {}
    for field, new in _validated_settings(json_body()).items():
        old = getattr(family, field)
        if _plain(old) != _plain(new):
            changes[field] = {"from": _plain(old), "to": _plain(new)}
            setattr(family, field, new)

    if changes:
        log_action(current_user.id, fid, "UPDATE_FAMILY_SETTINGS", "Family", fid, {"changes": changes})
    db.session.commit()
    return jsonify({"settings": family.to_dict(), "changes": changes})


# --------------------------
# Activity log
# --------------------------
@api.route("/family/activity", methods=["GET"])
@login_required
def family_activity():
    fid = family_id()
    page, limit = page_args(default_limit=20, max_limit=100)
    args = request.args

    q = db.session.query(AuditLog).filter(AuditLog.family_id == fid)
    if args.get("action"):
        q = q.filter(AuditLog.action == args["action"].strip().upper())
    if args.get("entity_type"):
        q = q.filter(AuditLog.entity_type == args["entity_type"].strip())
    user_id = parse_int(args.get("user_id"), "user_id", required=False)
    if user_id:
        q = q.filter(AuditLog.user_id == user_id)
    start = parse_date(args.get("start_date"), "start_date", required=False)
    if start:
        q = q.filter(AuditLog.created_at >= datetime.combine(start, time.min))
    end = parse_date(args.get("end_date"), "end_date", required=False)
    if end:
        q = q.filter(AuditLog.created_at <= datetime.combine(end, time.max))

    total = q.count()
    rows = q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return jsonify({
        "activities": [r.to_dict() for r in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": (total + limit - 1) // limit,
        },
    })
