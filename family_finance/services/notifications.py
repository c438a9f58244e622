# family_finance/services/notifications.py
# ------------------------------------------------------------
# Outgoing email (welcome, invitation, budget warning, weekly and
# monthly family summaries) and the in-app notification rows.
# ------------------------------------------------------------
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, select

from ..extensions import db
from ..models import (
    Category, Family, FamilyInvite, Notification, NotificationStatus, NotificationType, Transaction, TxnType, User,
)
from ..utils.email_utils import send_template
from ..utils.helpers import month_bounds, prev_month
from .budgeting import budgets_for, spent_by_category

logger = logging.getLogger(__name__)


# --------------------------
# In-app
# --------------------------
def notify(
    user: User,
    ntype: NotificationType,
    title: str,
    message: str,
    *,
    data: dict | None = None,
    reference: tuple[str, int] | None = None,
) -> Notification:
    """Queue one in-app notification for `user`; the caller commits."""
    ref_type, ref_id = reference or (None, None)
    row = Notification(
        family_id=user.family_id,
        user_id=user.id,
        type=ntype,
        status=NotificationStatus.SENT,
        title=title[:200],
        message=message,
        data=data,
        reference_type=ref_type,
        reference_id=ref_id,
        email_sent=False,
    )
    db.session.add(row)
    return row


def mark_emailed(row: Notification, ok: bool) -> None:
    row.email_sent = ok
    row.email_sent_at = datetime.utcnow() if ok else None


# --------------------------
# Email
# --------------------------
def send_welcome(user: User, family: Family) -> bool:
    return send_template(
        user.email, "Welcome to Family Finance Tracker", "welcome", user=user, family=family,
    )


def send_invite(invite: FamilyInvite, link: str) -> bool:
    return send_template(
        invite.email,
        f"{invite.sender.name} invited you to join {invite.family.name}",
        "invite",
        invite=invite,
        link=link,
    )


def send_budget_warning(user: User, family: Family, warning: dict) -> bool:
    subject = (
        f"Budget exceeded: {warning['category']}" if warning.get("exceeded")
        else f"Budget warning: {warning['category']} at {warning['percentage']:.0f}%"
    )
    return send_template(
        user.email, subject, "budget_warning", user=user, family=family, warning=warning,
    )


# --------------------------
# Summaries
# --------------------------
def period_summary(family: Family, start: date, end: date) -> dict:
    """Totals, top 5 expense categories and budget performance for [start, end]."""
    base = [
        Transaction.family_id == family.id,
        Transaction.transfer_group_id.is_(None),
        Transaction.date >= start,
        Transaction.date <= end,
    ]
    totals = dict(
        db.session.execute(
            select(Transaction.type, func.coalesce(func.sum(Transaction.amount), 0))
            .where(*base)
            .group_by(Transaction.type)
        ).all()
    )
    income = Decimal(str(totals.get(TxnType.INCOME, 0)))
    expense = Decimal(str(totals.get(TxnType.EXPENSE, 0)))
    count = db.session.execute(select(func.count(Transaction.id)).where(*base)).scalar() or 0

    top_rows = db.session.execute(
        select(Category.name, func.sum(Transaction.amount).label("total"))
        .join(Category, Category.id == Transaction.category_id)
        .where(*base, Transaction.type == TxnType.EXPENSE)
        .group_by(Category.name)
        .order_by(func.sum(Transaction.amount).desc())
        .limit(5)
    ).all()
    top = [
        {
            "category": name,
            "amount": float(total),
            "percentage": round(float(Decimal(str(total)) / expense * 100), 1) if expense else 0.0,
        }
        for name, total in top_rows
    ]

    # budget performance for the month the period ends in
    b_start, b_end = month_bounds(end.year, end.month)
    spent = spent_by_category(family.id, b_start, b_end)
    budgets = budgets_for(family.id, end.year, end.month)
    exceeded = sum(1 for b in budgets if spent.get(b.category_id, Decimal(0)) > Decimal(b.amount or 0))

    return {
        "start": start,
        "end": end,
        "income": float(income),
        "expense": float(expense),
        "net": float(income - expense),
        "count": count,
        "top_categories": top,
        "budgets": {"total": len(budgets), "exceeded": exceeded, "on_track": len(budgets) - exceeded},
    }


def _summary_period(kind: str, today: date) -> tuple[date, date]:
    if kind == "weekly":
        return today - timedelta(days=7), today - timedelta(days=1)
    y, m = prev_month(today.year, today.month)
    return month_bounds(y, m)


def send_summaries(kind: str, today: date | None = None) -> dict:
    """Email the weekly/monthly summary to every member of each opted-in family."""
    if kind not in ("weekly", "monthly"):
        raise ValueError(f"Unknown summary kind: {kind}")
    today = today or date.today()
    start, end = _summary_period(kind, today)
    flag = Family.weekly_report if kind == "weekly" else Family.monthly_report

    families = (
        db.session.query(Family)
        .filter(Family.email_notif.is_(True), flag.is_(True))
        .order_by(Family.id)
        .all()
    )
    result = {"kind": kind, "start": start.isoformat(), "end": end.isoformat(),
              "families": len(families), "sent": 0, "failed": 0}
    for family in families:
        summary = period_summary(family, start, end)
        subject = (
            f"Weekly summary for {family.name}" if kind == "weekly"
            else f"Monthly summary for {family.name}: {start.strftime('%B %Y')}"
        )
        for member in family.members:
            ok = send_template(
                member.email, subject, f"{kind}_summary", user=member, family=family, summary=summary,
            )
            result["sent" if ok else "failed"] += 1
    logger.info(f"[mail] {kind} summaries: families={result['families']} sent={result['sent']} "
                f"failed={result['failed']}")
    return result
