# family_finance/api/cron.py
# ------------------------------------------------------------
# External-scheduler hooks. When CRON_SECRET is set, callers must send
#     Authorization: Bearer <CRON_SECRET>
# ------------------------------------------------------------
import hmac
from datetime import date
from functools import wraps

from flask import current_app, jsonify, request
from sqlalchemy import func

from ..errors import AuthenticationError
from ..extensions import db
from ..models import RecurringStatus, RecurringTransaction
from ..services.recurring import run_due
from . import api


def cron_secret_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        secret = current_app.config.get("CRON_SECRET")
        if secret:
            supplied = request.headers.get("Authorization", "")
            if not hmac.compare_digest(supplied, f"Bearer {secret}"):
                raise AuthenticationError("Invalid cron secret", "UNAUTHORIZED")
        return view(*args, **kwargs)
    return wrapper


@api.route("/cron/execute-recurring", methods=["POST"])
@cron_secret_required
def cron_execute_recurring():
    summary = run_due(today=date.today())
    return jsonify({"success": True, "executed_at": date.today().isoformat(), **summary})


@api.route("/cron/execute-recurring", methods=["GET"])
@cron_secret_required
def cron_recurring_status():
    """Counts per status, how many are due today and the next 10 upcoming."""
    today = date.today()
    counts = dict(
        db.session.query(RecurringTransaction.status, func.count(RecurringTransaction.id))
        .group_by(RecurringTransaction.status)
        .all()
    )
    due = (
        db.session.query(func.count(RecurringTransaction.id))
        .filter(RecurringTransaction.status == RecurringStatus.ACTIVE, RecurringTransaction.next_date <= today)
        .scalar()
    )
    upcoming = (
        db.session.query(RecurringTransaction)
        .filter(RecurringTransaction.status == RecurringStatus.ACTIVE, RecurringTransaction.next_date > today)
        .order_by(RecurringTransaction.next_date.asc(), RecurringTransaction.id.asc())
        .limit(10)
        .all()
    )
    return jsonify({
        "date": today.isoformat(),
        "status_counts": {s.value: counts.get(s, 0) for s in RecurringStatus},
        "due_count": due or 0,
        "upcoming": [
            {"id": r.id, "family_id": r.family_id, "name": r.name, "amount": float(r.amount),
             "type": r.type.value, "next_date": r.next_date.isoformat()}
            for r in upcoming
        ],
    })
