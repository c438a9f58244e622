# family_finance/services/budgeting.py
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select

from ..extensions import db
from ..models import Budget, Category, Family, NotificationType, Transaction, TxnType, User
from ..utils.helpers import month_bounds, prev_month

logger = logging.getLogger(__name__)

WARNING_EMAIL_PCT = Decimal("90")
DEFAULT_ALERT_PCT = Decimal("80")


# --------------------------
# Utilities
# --------------------------
def spent_by_category(family_id: int, start: date, end: date) -> dict[int, Decimal]:
    """Sum of EXPENSE amounts per category in [start, end], transfer legs excluded."""
    rows = db.session.execute(
        select(Transaction.category_id, func.coalesce(func.sum(Transaction.amount), 0))
        .where(
            Transaction.family_id == family_id,
            Transaction.type == TxnType.EXPENSE,
            Transaction.transfer_group_id.is_(None),
            Transaction.date >= start,
            Transaction.date <= end,
        )
        .group_by(Transaction.category_id)
    ).all()
    return {cid: Decimal(str(total)) for cid, total in rows if cid is not None}


def budgets_for(family_id: int, year: int, month: int) -> list[Budget]:
    return (
        db.session.query(Budget)
        .filter_by(family_id=family_id, year=year, month=month)
        .all()
    )


def _pct(spent: Decimal, budget: Decimal) -> Decimal:
    if budget <= 0:
        return Decimal(0)
    return spent / budget * 100


def classify(actual_pct: Decimal, threshold: Decimal, has_budget: bool) -> str:
    if not has_budget:
        return "no-budget"
    if actual_pct >= 100:
        return "over"
    if actual_pct >= threshold:
        return "warning"
    return "safe"


# --------------------------
# Status per month
# --------------------------
def budget_status(family: Family, year: int, month: int) -> dict:
    """
    One row per EXPENSE category: budget vs. realization for the month.
    percentage is capped at 100 for display; actual_percentage is not.
    """
    start, end = month_bounds(year, month)
    spent = spent_by_category(family.id, start, end)
    budgets = {b.category_id: b for b in budgets_for(family.id, year, month)}
    default_threshold = Decimal(family.default_budget_alert if family.default_budget_alert is not None
                                else DEFAULT_ALERT_PCT)

    categories = (
        db.session.query(Category)
        .filter_by(family_id=family.id, type=TxnType.EXPENSE)
        .order_by(Category.name.asc())
        .all()
    )

    items = []
    total_budget = total_spent = Decimal(0)
    counts = {"over": 0, "warning": 0, "safe": 0, "no-budget": 0}
    for cat in categories:
        b = budgets.get(cat.id)
        realized = spent.get(cat.id, Decimal(0))
        if b is None and realized == 0:
            continue
        amount = Decimal(b.amount) if b else Decimal(0)
        threshold = (
            Decimal(b.alert_threshold) if b is not None and b.alert_threshold is not None else default_threshold
        )
        actual = _pct(realized, amount)
        status = classify(actual, threshold, b is not None and amount > 0)
        counts[status] += 1
        total_budget += amount
        total_spent += realized
        items.append({
            "budget_id": b.id if b else None,
            "category": cat.brief(),
            "budget": float(amount),
            "realization": float(realized),
            "remaining": float(amount - realized),
            "percentage": round(float(min(actual, Decimal(100))), 2),
            "actual_percentage": round(float(actual), 2),
            "alert_threshold": float(threshold),
            "status": status,
        })

    # biggest overruns first
    items.sort(key=lambda r: r["actual_percentage"], reverse=True)
    overall = _pct(total_spent, total_budget)
    return {
        "year": year,
        "month": month,
        "items": items,
        "totals": {
            "budget": float(total_budget),
            "realization": float(total_spent),
            "remaining": float(total_budget - total_spent),
            "percentage": round(float(overall), 2),
        },
        "counts": counts,
    }


def copy_previous(family_id: int, user_id: int, year: int, month: int) -> list[Budget]:
    """Copy last month's budgets into (year, month) for categories that have none yet."""
    py, pm = prev_month(year, month)
    existing = {b.category_id for b in budgets_for(family_id, year, month)}
    created = []
    for prev in budgets_for(family_id, py, pm):
        if prev.category_id in existing:
            continue
        b = Budget(
            family_id=family_id,
            category_id=prev.category_id,
            created_by_id=user_id,
            year=year,
            month=month,
            amount=prev.amount,
            alert_threshold=prev.alert_threshold,
        )
        db.session.add(b)
        created.append(b)
    db.session.flush()
    return created


# --------------------------
# Warning after an expense
# --------------------------
def check_budget_warning(user: User, category_id: int, on_date: date) -> dict | None:
    """
    After an EXPENSE: when the month's spend in the category reaches 90% of
    its budget, email the acting user (if the family wants budget emails).
    Returns the warning payload or None.
    """
    family = user.family
    if not family:
        return None
    budget = (
        db.session.query(Budget)
        .filter_by(family_id=family.id, category_id=category_id, year=on_date.year, month=on_date.month)
        .first()
    )
    if not budget or Decimal(budget.amount or 0) <= 0:
        return None

    start, end = month_bounds(on_date.year, on_date.month)
    spent = spent_by_category(family.id, start, end).get(category_id, Decimal(0))
    pct = _pct(spent, Decimal(budget.amount))
    if pct < WARNING_EMAIL_PCT:
        return None

    warning = {
        "category": budget.category.name,
        "budget": float(budget.amount),
        "spent": float(spent),
        "percentage": round(float(pct), 2),
        "exceeded": pct >= 100,
    }
    logger.info(f"[budget] family={family.id} category={category_id} at {warning['percentage']}%")
    if family.budget_alerts:
        from .notifications import mark_emailed, notify, send_budget_warning
        row = notify(
            user, NotificationType.BUDGET_ALERT,
            f"Budget {'exceeded' if warning['exceeded'] else 'warning'}: {warning['category']}",
            f"{warning['category']} spending is at {warning['percentage']:.0f}% of this month's budget.",
            data=dict(warning), reference=("budget", budget.id),
        )
        if family.email_notif:
            warning["email_sent"] = send_budget_warning(user, family, warning)
            mark_emailed(row, warning["email_sent"])
        db.session.commit()
    return warning
