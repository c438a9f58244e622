# family_finance/api/notifications.py
# ------------------------------------------------------------
# In-app notifications of the logged-in user, plus the cron hooks
# that send summaries and due-date reminders.
# ------------------------------------------------------------
from datetime import datetime

from flask import jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import func

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Notification, NotificationStatus, NotificationType
from ..services.notifications import send_summaries
from ..services.reminders import send_due_date_reminders
from ..utils.helpers import json_body, parse_bool, parse_enum, parse_int
from . import api
from .cron import cron_secret_required


@api.route("/notifications", methods=["GET"])
@login_required
def notifications_list():
    args = request.args
    q = db.session.query(Notification).filter(Notification.user_id == current_user.id)
    status = parse_enum(NotificationStatus, args.get("status"), "status", required=False)
    if status:
        q = q.filter(Notification.status == status)
    ntype = parse_enum(NotificationType, args.get("type"), "type", required=False)
    if ntype:
        q = q.filter(Notification.type == ntype)
    if parse_bool(args.get("unread_only")):
        q = q.filter(Notification.read_at.is_(None))
    limit = parse_int(args.get("limit"), "limit", min_value=1, max_value=100, required=False) or 50

    rows = q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
    unread = (
        db.session.query(func.count(Notification.id))
        .filter(Notification.user_id == current_user.id, Notification.read_at.is_(None))
        .scalar()
    )
    return jsonify({
        "notifications": [n.to_dict() for n in rows],
        "unread_count": unread or 0,
        "total": len(rows),
    })


@api.route("/notifications", methods=["PATCH"])
@login_required
def notifications_mark_read():
    """Body: {"ids": [...]} or {"mark_all": true}."""
    data = json_body()
    q = db.session.query(Notification).filter(
        Notification.user_id == current_user.id, Notification.read_at.is_(None)
    )
    if not parse_bool(data.get("mark_all")):
        ids = data.get("ids")
        if not isinstance(ids, list) or not ids:
            raise ValidationError("ids (a list) or mark_all is required", field="ids")
        q = q.filter(Notification.id.in_([parse_int(i, "ids") for i in ids]))

    count = q.update(
        {"read_at": datetime.utcnow(), "status": NotificationStatus.READ}, synchronize_session=False
    )
    db.session.commit()
    return jsonify({"message": "Notifications marked as read", "count": count})


@api.route("/notifications/<int:notification_id>", methods=["DELETE"])
@login_required
def notifications_delete(notification_id: int):
    row = db.session.query(Notification).filter_by(id=notification_id, user_id=current_user.id).first()
    if not row:
        raise NotFoundError("Notification not found")
    db.session.delete(row)
    db.session.commit()
    return jsonify({"message": "Notification deleted"})


@api.route("/notifications", methods=["DELETE"])
@login_required
def notifications_clear_read():
    count = (
        db.session.query(Notification)
        .filter(Notification.user_id == current_user.id, Notification.read_at.isnot(None))
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return jsonify({"message": "Read notifications deleted", "count": count})


@api.route("/notifications/send-weekly-summary", methods=["POST"])
@cron_secret_required
def notifications_weekly():
    return jsonify(send_summaries("weekly"))


@api.route("/notifications/send-monthly-summary", methods=["POST"])
@cron_secret_required
def notifications_monthly():
    return jsonify(send_summaries("monthly"))


@api.route("/notifications/send-due-date-reminders", methods=["POST"])
@cron_secret_required
def notifications_due_date_reminders():
    days_ahead = parse_int(request.args.get("days_ahead"), "days_ahead", min_value=0, max_value=90,
                           required=False)
    return jsonify(send_due_date_reminders(days_ahead=7 if days_ahead is None else days_ahead))
