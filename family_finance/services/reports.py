# family_finance/services/reports.py
# ------------------------------------------------------------
# Aggregations for the dashboard and the monthly / yearly reports.
# Transfer legs (transfer_group_id set) never count as income or expense.
# ------------------------------------------------------------
from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import extract, func, select

from ..extensions import db
from ..models import (
    Asset, Category, Family, Goal, Liability, Transaction, TxnType, Wallet,
)
from ..utils.helpers import month_bounds, prev_month
from .budgeting import budget_status

ZERO = Decimal(0)


def _d(value) -> Decimal:
    return Decimal(str(value or 0))


def _base(family_id: int, start: date, end: date) -> list:
    return [
        Transaction.family_id == family_id,
        Transaction.transfer_group_id.is_(None),
        Transaction.date >= start,
        Transaction.date <= end,
    ]


# --------------------------
# Building blocks
# --------------------------
def totals(family_id: int, start: date, end: date) -> dict:
    rows = db.session.execute(
        select(Transaction.type, func.coalesce(func.sum(Transaction.amount), 0), func.count(Transaction.id))
        .where(*_base(family_id, start, end))
        .group_by(Transaction.type)
    ).all()
    by_type = {t: (_d(s), c) for t, s, c in rows}
    income, n_in = by_type.get(TxnType.INCOME, (ZERO, 0))
    expense, n_out = by_type.get(TxnType.EXPENSE, (ZERO, 0))
    return {
        "income": float(income),
        "expense": float(expense),
        "balance": float(income - expense),
        "income_count": n_in,
        "expense_count": n_out,
        "transaction_count": n_in + n_out,
    }


def category_breakdown(family_id: int, start: date, end: date, ttype: TxnType) -> list[dict]:
    rows = db.session.execute(
        select(
            Category.id, Category.name, Category.icon, Category.color,
            func.sum(Transaction.amount), func.count(Transaction.id),
        )
        .join(Category, Category.id == Transaction.category_id)
        .where(*_base(family_id, start, end), Transaction.type == ttype)
        .group_by(Category.id, Category.name, Category.icon, Category.color)
        .order_by(func.sum(Transaction.amount).desc())
    ).all()
    grand = sum((_d(r[4]) for r in rows), ZERO)
    return [
        {
            "category_id": cid,
            "name": name,
            "icon": icon,
            "color": color,
            "amount": float(_d(total)),
            "count": count,
            "percentage": round(float(_d(total) / grand * 100), 2) if grand else 0.0,
        }
        for cid, name, icon, color, total, count in rows
    ]


def daily_trend(family_id: int, start: date, end: date) -> list[dict]:
    rows = db.session.execute(
        select(Transaction.date, Transaction.type, func.sum(Transaction.amount))
        .where(*_base(family_id, start, end))
        .group_by(Transaction.date, Transaction.type)
    ).all()
    per_day: dict[date, dict] = defaultdict(lambda: {"income": ZERO, "expense": ZERO})
    for d, t, s in rows:
        per_day[d]["income" if t == TxnType.INCOME else "expense"] += _d(s)

    out = []
    cur = start
    while cur <= end:
        v = per_day.get(cur, {"income": ZERO, "expense": ZERO})
        out.append({"date": cur.isoformat(), "income": float(v["income"]), "expense": float(v["expense"])})
        cur += timedelta(days=1)
    return out


def month_totals(family_id: int, year: int) -> dict[int, dict]:
    start, end = date(year, 1, 1), date(year, 12, 31)
    month_col = extract("month", Transaction.date)
    rows = db.session.execute(
        select(month_col, Transaction.type, func.sum(Transaction.amount), func.count(Transaction.id))
        .where(*_base(family_id, start, end))
        .group_by(month_col, Transaction.type)
    ).all()
    out = {m: {"income": ZERO, "expense": ZERO, "count": 0} for m in range(1, 13)}
    for m, t, s, c in rows:
        slot = out[int(m)]
        slot["income" if t == TxnType.INCOME else "expense"] += _d(s)
        slot["count"] += c
    return out


def top_expenses(family_id: int, start: date, end: date, limit: int) -> list[dict]:
    rows = (
        db.session.query(Transaction)
        .filter(*_base(family_id, start, end), Transaction.type == TxnType.EXPENSE)
        .order_by(Transaction.amount.desc(), Transaction.date.desc())
        .limit(limit)
        .all()
    )
    return [t.to_dict() for t in rows]


def wallet_summary(family_id: int) -> tuple[list[dict], Decimal]:
    wallets = db.session.query(Wallet).filter_by(family_id=family_id).order_by(Wallet.name).all()
    return [w.to_dict() for w in wallets], sum((_d(w.balance) for w in wallets), ZERO)


def net_worth(family_id: int) -> dict:
    assets = _d(db.session.query(func.coalesce(func.sum(Asset.value), 0)).filter_by(family_id=family_id).scalar())
    liabilities = _d(
        db.session.query(func.coalesce(func.sum(Liability.remaining_amount), 0))
        .filter_by(family_id=family_id).scalar()
    )
    _, wallets = wallet_summary(family_id)
    return {
        "assets": float(assets),
        "liabilities": float(liabilities),
        "wallets": float(wallets),
        "net_worth": float(assets + wallets - liabilities),
    }


def savings_rate(income: float, expense: float) -> float:
    return round((income - expense) / income * 100, 2) if income else 0.0


# --------------------------
# Endpoints' payloads
# --------------------------
def dashboard_stats(family: Family, start: date, end: date, today: date | None = None) -> dict:
    today = today or date.today()

    trend = []
    y, m = today.year, today.month
    months = []
    for _ in range(6):
        months.append((y, m))
        y, m = prev_month(y, m)
    for y, m in reversed(months):
        s, e = month_bounds(y, m)
        t = totals(family.id, s, e)
        trend.append({"year": y, "month": m, "label": s.strftime("%b %Y"),
                      "income": t["income"], "expense": t["expense"]})

    recent = (
        db.session.query(Transaction)
        .filter(Transaction.family_id == family.id)
        .order_by(Transaction.date.desc(), Transaction.id.desc())
        .limit(10)
        .all()
    )
    return {
        "period": {"start_date": start.isoformat(), "end_date": end.isoformat()},
        "summary": totals(family.id, start, end),
        "expense_by_category": category_breakdown(family.id, start, end, TxnType.EXPENSE),
        "budget_status": budget_status(family, today.year, today.month),
        "net_worth": net_worth(family.id),
        "trend": trend,
        "recent_transactions": [t.to_dict() for t in recent],
    }


def monthly_report(family: Family, year: int, month: int) -> dict:
    start, end = month_bounds(year, month)
    t = totals(family.id, start, end)
    wallets, total_balance = wallet_summary(family.id)
    return {
        "year": year,
        "month": month,
        "period": {"start_date": start.isoformat(), "end_date": end.isoformat()},
        "summary": {**t, "savings_rate": savings_rate(t["income"], t["expense"])},
        "expense_by_category": category_breakdown(family.id, start, end, TxnType.EXPENSE),
        "income_by_category": category_breakdown(family.id, start, end, TxnType.INCOME),
        "daily_trend": daily_trend(family.id, start, end),
        "budget_comparison": budget_status(family, year, month),
        "wallets": wallets,
        "total_balance": float(total_balance),
        "top_expenses": top_expenses(family.id, start, end, 10),
    }


def yearly_report(family: Family, year: int, today: date | None = None) -> dict:
    today = today or date.today()
    start, end = date(year, 1, 1), date(year, 12, 31)
    t = totals(family.id, start, end)
    per_month = month_totals(family.id, year)

    monthly = []
    for m in range(1, 13):
        inc, exp = per_month[m]["income"], per_month[m]["expense"]
        monthly.append({
            "month": m,
            "label": date(year, m, 1).strftime("%b"),
            "income": float(inc),
            "expense": float(exp),
            "net": float(inc - exp),
            "count": per_month[m]["count"],
        })

    quarterly = []
    for q in range(4):
        chunk = monthly[q * 3:(q + 1) * 3]
        inc = sum(r["income"] for r in chunk)
        exp = sum(r["expense"] for r in chunk)
        quarterly.append({"quarter": q + 1, "income": inc, "expense": exp, "net": inc - exp})

    # average over months elapsed in the current year, 12 otherwise
    months_elapsed = today.month if year == today.year else 12
    goals = db.session.query(Goal).filter_by(family_id=family.id).order_by(Goal.created_at).all()
    _, total_balance = wallet_summary(family.id)

    return {
        "year": year,
        "summary": {**t, "savings_rate": savings_rate(t["income"], t["expense"])},
        "averages": {
            "monthly_income": round(t["income"] / months_elapsed, 2),
            "monthly_expense": round(t["expense"] / months_elapsed, 2),
        },
        "monthly": monthly,
        "quarterly": quarterly,
        "expense_by_category": category_breakdown(family.id, start, end, TxnType.EXPENSE),
        "income_by_category": category_breakdown(family.id, start, end, TxnType.INCOME),
        "goals": [g.to_dict(with_contributions=False) for g in goals],
        "total_balance": float(total_balance),
        "top_expenses": top_expenses(family.id, start, end, 20),
    }
