# family_finance/services/recurring.py
# ------------------------------------------------------------
# Recurring transactions: next-occurrence date math, manual execution
# of one occurrence, and the catch-up run used by the scheduler, the
# cron endpoint and `flask run-recurring`.
# ------------------------------------------------------------
from __future__ import annotations

import logging
from calendar import monthrange
from datetime import date, timedelta

from ..errors import ApiError, BusinessRuleError, NotFoundError
from ..extensions import db
from ..models import (
    RecurringFrequency,
    RecurringStatus,
    RecurringTransaction,
    Transaction,
    TxnType,
    Wallet,
)
from .audit import log_action
from .ledger import apply_delta, signed

logger = logging.getLogger(__name__)

SAFETY_CAP = 100  # max occurrences created per rule in one run


def _clamp_day(y: int, m: int, desired_day: int) -> int:
    return min(desired_day, monthrange(y, m)[1])


def _add_months(d: date, n: int, pinned_day: int | None) -> date:
    y = d.year + (d.month - 1 + n) // 12
    m = (d.month - 1 + n) % 12 + 1
    day = pinned_day or d.day
    return date(y, m, _clamp_day(y, m, day))


def next_occurrence(
    current: date,
    frequency: RecurringFrequency,
    day_of_month: int | None = None,
    day_of_week: int | None = None,
) -> date:
    """
    DAILY   -> +1 day
    WEEKLY  -> +7 days, then forward to day_of_week (0=Mon) when given
    MONTHLY -> +1 month, day pinned to day_of_month (or current day), clamped
    YEARLY  -> +1 year, Feb 29 becomes Feb 28
    """
    if frequency == RecurringFrequency.DAILY:
        return current + timedelta(days=1)
    if frequency == RecurringFrequency.WEEKLY:
        nxt = current + timedelta(weeks=1)
        if day_of_week is not None:
            diff = (day_of_week - nxt.weekday()) % 7
            nxt = nxt + timedelta(days=diff)
        return nxt
    if frequency == RecurringFrequency.MONTHLY:
        return _add_months(current, 1, day_of_month)
    if frequency == RecurringFrequency.YEARLY:
        return _add_months(current, 12, None)
    raise ValueError(f"Unknown frequency: {frequency}")


def compute_next_run(prev: date, rule: RecurringTransaction) -> date:
    return next_occurrence(prev, rule.frequency, rule.day_of_month, rule.day_of_week)


def _create_occurrence(rule: RecurringTransaction, wallet: Wallet, run_date: date, description: str) -> Transaction:
    apply_delta(wallet, signed(rule.type, rule.amount), check_funds=(rule.type == TxnType.EXPENSE))
    txn = Transaction(
        family_id=rule.family_id,
        user_id=rule.created_by_id,
        wallet_id=wallet.id,
        category_id=rule.category_id,
        type=rule.type,
        amount=rule.amount,
        description=description,
        notes=rule.notes,
        date=run_date,
        recurring_id=rule.id,
    )
    db.session.add(txn)
    db.session.flush()
    return txn


def _rule_wallet(rule: RecurringTransaction) -> Wallet | None:
    return (
        db.session.query(Wallet)
        .filter_by(id=rule.wallet_id, family_id=rule.family_id)
        .with_for_update()
        .first()
    )


def execute_rule(rule: RecurringTransaction, user_id: int, today: date | None = None) -> Transaction:
    """
    Manual "run now": one occurrence dated today, next date computed from today.
    Commits on success; raises ApiError otherwise.
    """
    today = today or date.today()
    if rule.status != RecurringStatus.ACTIVE:
        raise BusinessRuleError("Only active recurring transactions can be executed", "NOT_ACTIVE")
    if rule.end_date and rule.end_date < today:
        rule.status = RecurringStatus.COMPLETED
        db.session.commit()
        raise BusinessRuleError("This recurring transaction has already ended", "RECURRING_ENDED")

    wallet = _rule_wallet(rule)
    if not wallet:
        raise NotFoundError("Wallet not found", "WALLET_NOT_FOUND")

    try:
        txn = _create_occurrence(rule, wallet, today, rule.description or f"{rule.name} (Recurring)")
        rule.last_run_date = today
        nxt = compute_next_run(today, rule)
        if rule.end_date and nxt > rule.end_date:
            rule.status = RecurringStatus.COMPLETED
        else:
            rule.next_date = nxt
        log_action(
            user_id, rule.family_id, "EXECUTE_RECURRING", "RecurringTransaction", rule.id,
            {"transaction_id": txn.id, "amount": float(rule.amount), "date": today.isoformat()},
        )
        db.session.commit()
    except ApiError:
        db.session.rollback()
        raise
    logger.info(f"[recurring] rule={rule.id} executed manually -> txn={txn.id}")
    return txn


def _catch_up(rule: RecurringTransaction, today: date, summary: dict) -> None:
    wallet = _rule_wallet(rule)
    if not wallet:
        summary["failed"] += 1
        summary["errors"].append({"rule_id": rule.id, "name": rule.name, "error": "Wallet not found"})
        return

    safety_cap = SAFETY_CAP
    while rule.next_date <= today:
        if rule.end_date and rule.next_date > rule.end_date:
            rule.status = RecurringStatus.COMPLETED
            summary["completed"] += 1
            break

        run_date = rule.next_date
        try:
            txn = _create_occurrence(rule, wallet, run_date, f"{rule.name} (Auto-generated)")
        except BusinessRuleError as e:
            # insufficient funds: stop this rule, keep occurrences already created
            summary["failed"] += 1
            summary["errors"].append({"rule_id": rule.id, "name": rule.name, "error": e.message})
            break

        log_action(
            rule.created_by_id, rule.family_id, "AUTO_EXECUTE_RECURRING", "RecurringTransaction", rule.id,
            {"transaction_id": txn.id, "amount": float(rule.amount), "date": run_date.isoformat()},
        )
        rule.last_run_date = run_date
        rule.next_date = compute_next_run(run_date, rule)
        summary["created"] += 1

        if rule.end_date and rule.next_date > rule.end_date:
            rule.status = RecurringStatus.COMPLETED
            summary["completed"] += 1
            break

        safety_cap -= 1
        if safety_cap <= 0:
            summary["errors"].append(
                {"rule_id": rule.id, "name": rule.name, "error": "Aborted: too many catch-up iterations"}
            )
            break


def run_due(today: date | None = None, family_id: int | None = None) -> dict:
    """
    Execute every ACTIVE rule whose next_date <= today, catching up each
    missed occurrence in order. Each rule commits on its own so one failure
    does not undo the others.
    """
    today = today or date.today()
    q = db.session.query(RecurringTransaction).filter(
        RecurringTransaction.status == RecurringStatus.ACTIVE,
        RecurringTransaction.next_date <= today,
    )
    if family_id is not None:
        q = q.filter(RecurringTransaction.family_id == family_id)
    rule_ids = [r.id for r in q.order_by(RecurringTransaction.next_date.asc(), RecurringTransaction.id.asc())]

    summary = {"processed": 0, "created": 0, "completed": 0, "failed": 0, "errors": []}
    for rid in rule_ids:
        rule = db.session.get(RecurringTransaction, rid)
        summary["processed"] += 1
        try:
            _catch_up(rule, today, summary)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.exception(f"[recurring] rule={rid} failed")
            summary["failed"] += 1
            summary["errors"].append({"rule_id": rid, "name": rule.name if rule else None, "error": str(e)})

    logger.info(
        f"[recurring] run_due(today={today}) processed={summary['processed']} created={summary['created']} "
        f"completed={summary['completed']} failed={summary['failed']}"
    )
    for err in summary["errors"]:
        logger.warning(f"[recurring]  - rule={err['rule_id']}: {err['error']}")
    return summary


def get_rule(family_id: int, rule_id: int) -> RecurringTransaction:
    rule = db.session.query(RecurringTransaction).filter_by(id=rule_id, family_id=family_id).first()
    if not rule:
        raise NotFoundError("Recurring transaction not found")
    return rule
