# family_finance/services/reminders.py
# ------------------------------------------------------------
# Goal and liability reminders.
# - goal_notifications(): computed on read, nothing stored
# - liability_reminders(): due-date view with urgency buckets
# - send_due_date_reminders(): cron/scheduler entry; stores in-app
#   notifications for every member and emails them when enabled
# ------------------------------------------------------------
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal

from ..extensions import db
from ..models import (
    Family, Goal, GoalContribution, GoalStatus, Liability, Notification, NotificationType, User,
)
from ..utils.email_utils import send_template
from .notifications import mark_emailed, notify

logger = logging.getLogger(__name__)

PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}
URGENCY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}
MILESTONES = (25, 50, 75)
GOAL_DEADLINE_DAYS = 7
INACTIVE_AFTER_DAYS = 30
# one reminder per member and item per daily run
RESEND_AFTER_HOURS = 20


def raw_progress(goal: Goal) -> float:
    """Uncapped percentage of target reached."""
    target = Decimal(goal.target_amount or 0)
    if target <= 0:
        return 0.0
    return float(Decimal(goal.current_amount or 0) / target * 100)


# --------------------------
# Goals
# --------------------------
def goal_notifications(family: Family, today: date | None = None) -> dict:
    today = today or date.today()
    goals = (
        db.session.query(Goal)
        .filter_by(family_id=family.id, status=GoalStatus.ACTIVE)
        .order_by(Goal.id.asc())
        .all()
    )

    out = []
    for goal in goals:
        progress = raw_progress(goal)
        days_left = goal.days_left(today)
        base = {"goal_id": goal.id, "goal_name": goal.name, "progress": round(progress, 1)}

        def add(kind, priority, title, message, **extra):
            out.append({"id": f"goal-{kind}-{goal.id}", "priority": priority, "title": title,
                        "message": message, **base, **extra})

        if 90 <= progress < 100:
            add("almost", "medium", "Goal almost reached",
                f"{goal.name} is at {progress:.1f}%. Almost there!", type="GOAL_ALMOST_COMPLETE")
        if progress >= 100:
            add("complete", "high", "Goal reached",
                f"{goal.name} reached {progress:.1f}% of its target.", type="GOAL_COMPLETED")
        if days_left is not None and 0 < days_left <= GOAL_DEADLINE_DAYS and progress < 100:
            add("deadline", "high" if days_left <= 3 else "medium", "Deadline approaching",
                f"{goal.name} ends in {days_left} day(s) ({progress:.1f}% reached).",
                type="GOAL_DEADLINE_NEAR", days_left=days_left)
        if days_left is not None and days_left < 0 and progress < 100:
            add("overdue", "high", "Goal past its deadline",
                f"{goal.name} passed its deadline {-days_left} day(s) ago ({progress:.1f}% reached).",
                type="GOAL_OVERDUE", days_overdue=-days_left)

        last = (
            db.session.query(GoalContribution.date)
            .filter_by(goal_id=goal.id)
            .order_by(GoalContribution.date.desc())
            .limit(1)
            .scalar()
        )
        if last and progress < 100:
            idle = (today - last).days
            if idle >= INACTIVE_AFTER_DAYS:
                add("inactive", "low", "Goal inactive",
                    f"{goal.name} has had no contribution for {idle} days.",
                    type="GOAL_INACTIVE", days_since_last_contribution=idle)

        for milestone in MILESTONES:
            if milestone <= progress < milestone + 5:
                out.append({
                    "id": f"goal-milestone-{goal.id}-{milestone}", "type": "GOAL_MILESTONE", "priority": "low",
                    "title": f"Milestone {milestone}%", "message": f"{goal.name} reached {milestone}%!",
                    "milestone": milestone, **base,
                })

    out.sort(key=lambda n: PRIORITY_ORDER[n["priority"]])
    return {
        "notifications": out,
        "total": len(out),
        "stats": {p: sum(1 for n in out if n["priority"] == p) for p in PRIORITY_ORDER},
        "reminders_enabled": family.goal_reminders,
    }


def crossed_milestone(before: float, after: float) -> int | None:
    """Highest of 25/50/75/100 passed by moving from `before` to `after` percent."""
    passed = [m for m in (*MILESTONES, 100) if before < m <= after]
    return passed[-1] if passed else None


def notify_goal_milestone(goal: Goal, family: Family, milestone: int) -> int:
    """In-app note for every member; caller commits."""
    if not family.goal_reminders:
        return 0
    title = f"{goal.name} reached its target" if milestone == 100 else f"{goal.name} reached {milestone}%"
    for member in family.members:
        notify(member, NotificationType.GOAL_MILESTONE, title,
               f"Savings goal {goal.name}: {milestone}% of {float(goal.target_amount):,.0f} reached.",
               data={"goal_id": goal.id, "milestone": milestone}, reference=("goal", goal.id))
    return len(family.members)


# --------------------------
# Liabilities
# --------------------------
def _urgency(days: int | None) -> str:
    if days is None:
        return "low"
    if days <= 3:
        return "critical"
    if days <= 7:
        return "high"
    if days <= 14:
        return "medium"
    return "low"


def liability_reminders(family: Family, today: date | None = None, days_ahead: int = 30) -> dict:
    today = today or date.today()
    rows = (
        db.session.query(Liability)
        .filter(Liability.family_id == family.id, Liability.remaining_amount > 0)
        .order_by(Liability.due_date.is_(None), Liability.due_date.asc(), Liability.id.asc())
        .all()
    )

    reminders = []
    for lb in rows:
        days = (lb.due_date - today).days if lb.due_date else None
        overdue = days is not None and days < 0
        rate = float(lb.interest_rate) if lb.interest_rate is not None else 0.0

        tips = []
        if overdue:
            tips.append(f"Payment was due {-days} day(s) ago.")
        elif days is not None and days <= 7:
            tips.append(f"Payment due in {days} day(s). Consider paying now.")
        if rate > 15:
            tips.append("High interest rate. Consider refinancing or paying this debt first.")

        reminders.append({
            "liability_id": lb.id,
            "name": lb.name,
            "type": lb.type.value,
            "creditor": lb.creditor,
            "remaining_amount": float(lb.remaining_amount),
            "interest_rate": rate,
            "due_date": lb.due_date.isoformat() if lb.due_date else None,
            "days_until_due": days,
            "is_overdue": overdue,
            "urgency": _urgency(days),
            "recommendations": tips,
        })
    reminders.sort(key=lambda r: URGENCY_ORDER[r["urgency"]])

    dated = [r for r in reminders if r["days_until_due"] is not None]
    return {
        "stats": {
            "total": len(reminders),
            "overdue": sum(1 for r in reminders if r["is_overdue"]),
            "critical": sum(1 for r in reminders if r["urgency"] == "critical"),
            "high": sum(1 for r in reminders if r["urgency"] == "high"),
            "due_in_7_days": sum(1 for r in dated if 0 <= r["days_until_due"] <= 7),
            "due_in_30_days": sum(1 for r in dated if 0 <= r["days_until_due"] <= 30),
        },
        "categorized": {
            "overdue": [r for r in dated if r["is_overdue"]],
            "due_soon": [r for r in dated if 0 <= r["days_until_due"] <= 7],
            "upcoming": [r for r in dated if 7 < r["days_until_due"] <= days_ahead],
            "later": [r for r in dated if r["days_until_due"] > days_ahead],
        },
        "reminders": reminders,
    }


# --------------------------
# Cron / scheduler
# --------------------------
def _already_sent(user: User, ntype: NotificationType, ref_type: str, ref_id: int) -> bool:
    return db.session.query(Notification.id).filter(
        Notification.user_id == user.id,
        Notification.type == ntype,
        Notification.reference_type == ref_type,
        Notification.reference_id == ref_id,
        Notification.created_at >= datetime.utcnow() - timedelta(hours=RESEND_AFTER_HOURS),
    ).first() is not None


def _deliver(family: Family, ntype, ref, title, message, template, data, result, **ctx) -> None:
    for member in family.members:
        if _already_sent(member, ntype, ref[0], ref[1]):
            result["skipped"] += 1
            continue
        row = notify(member, ntype, title, message, data=data, reference=ref)
        result["notifications"] += 1
        if family.email_notif:
            ok = send_template(member.email, title, template, user=member, family=family, **ctx)
            mark_emailed(row, ok)
            result["emails" if ok else "email_failures"] += 1


def send_due_date_reminders(today: date | None = None, days_ahead: int = 7) -> dict:
    """
    Liabilities due within `days_ahead` days, plus goals whose deadline is
    within a week or already passed (when the family keeps goal reminders on).
    One in-app notification per member and item per day; email when
    the family has email notifications on.
    """
    today = today or date.today()
    horizon = today + timedelta(days=days_ahead)
    result = {"date": today.isoformat(), "families": 0, "liabilities": 0, "goals": 0,
              "notifications": 0, "emails": 0, "email_failures": 0, "skipped": 0}

    for family in db.session.query(Family).order_by(Family.id).all():
        if not family.members:
            continue
        liabilities = (
            db.session.query(Liability)
            .filter(
                Liability.family_id == family.id,
                Liability.remaining_amount > 0,
                Liability.due_date >= today,
                Liability.due_date <= horizon,
            )
            .order_by(Liability.due_date.asc())
            .all()
        )
        goals = []
        if family.goal_reminders:
            goals = [
                g for g in db.session.query(Goal).filter(
                    Goal.family_id == family.id,
                    Goal.status == GoalStatus.ACTIVE,
                    Goal.deadline.isnot(None),
                    Goal.deadline <= today + timedelta(days=GOAL_DEADLINE_DAYS),
                ).order_by(Goal.deadline.asc()).all()
                if raw_progress(g) < 100 and g.deadline != today
            ]
        if not liabilities and not goals:
            continue
        result["families"] += 1

        for lb in liabilities:
            days = (lb.due_date - today).days
            when = "today" if days == 0 else f"in {days} day{'s' if days > 1 else ''}"
            title = f"Payment reminder: {lb.name}"
            message = (f"Your payment for {lb.name} is due {when}. "
                       f"Remaining: {family.currency} {float(lb.remaining_amount):,.2f}")
            _deliver(family, NotificationType.PAYMENT_DUE, ("liability", lb.id), title, message,
                     "payment_reminder",
                     {"liability_id": lb.id, "amount": float(lb.remaining_amount),
                      "due_date": lb.due_date.isoformat(), "days_until_due": days},
                     result, liability=lb, days=days)
            result["liabilities"] += 1

        for goal in goals:
            days = goal.days_left(today)
            progress = raw_progress(goal)
            if days < 0:
                title = f"Goal past its deadline: {goal.name}"
                message = f"{goal.name} passed its deadline {-days} day(s) ago at {progress:.1f}%."
            else:
                title = f"Goal deadline approaching: {goal.name}"
                message = f"{goal.name} ends in {days} day(s) and is at {progress:.1f}%."
            _deliver(family, NotificationType.DUE_DATE_REMINDER, ("goal", goal.id), title, message,
                     "goal_reminder",
                     {"goal_id": goal.id, "progress": round(progress, 1), "days_left": days},
                     result, goal=goal, days=days, progress=progress)
            result["goals"] += 1

        db.session.commit()

    logger.info(
        f"[mail] due-date reminders: families={result['families']} liabilities={result['liabilities']} "
        f"goals={result['goals']} notifications={result['notifications']} emails={result['emails']}"
    )
    return result
