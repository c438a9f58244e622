# family_finance/api/recurring.py
from datetime import date

from flask import jsonify, request
from flask_login import current_user, login_required

from ..errors import BusinessRuleError, ValidationError
from ..extensions import db
from ..models import RecurringFrequency, RecurringStatus, RecurringTransaction, TxnType
from ..services import ledger
from ..services.audit import log_action
from ..services.recurring import execute_rule, get_rule
from ..utils.helpers import (
    family_id, json_body, parse_amount, parse_date, parse_enum, parse_int, parse_str,
)
from . import api

MAX_AMOUNT = 999_999_999_999


def _schedule_fields(data: dict, rule: RecurringTransaction | None = None) -> dict:
    """Validate the schedule part of a create/update payload."""
    out = {}
    if rule is None or "frequency" in data:
        out["frequency"] = parse_enum(RecurringFrequency, data.get("frequency"), "frequency")
    if rule is None or "start_date" in data:
        out["start_date"] = parse_date(data.get("start_date"), "start_date")
    if rule is None or "end_date" in data:
        out["end_date"] = parse_date(data.get("end_date"), "end_date", required=False)
    if rule is None or "day_of_month" in data:
        out["day_of_month"] = parse_int(data.get("day_of_month"), "day_of_month",
                                        min_value=1, max_value=31, required=False)
    if rule is None or "day_of_week" in data:
        out["day_of_week"] = parse_int(data.get("day_of_week"), "day_of_week",
                                       min_value=0, max_value=6, required=False)

    start = out.get("start_date", rule.start_date if rule else None)
    end = out.get("end_date", rule.end_date if rule else None)
    if start and end and end < start:
        raise ValidationError("end_date must be on or after start_date", field="end_date")
    return out


@api.route("/recurring-transactions", methods=["GET"])
@login_required
def recurring_list():
    fid = family_id()
    q = db.session.query(RecurringTransaction).filter_by(family_id=fid)
    status = parse_enum(RecurringStatus, request.args.get("status"), "status", required=False)
    if status:
        q = q.filter(RecurringTransaction.status == status)
    ttype = parse_enum(TxnType, request.args.get("type"), "type", required=False)
    if ttype:
        q = q.filter(RecurringTransaction.type == ttype)
    rules = q.order_by(RecurringTransaction.next_date.asc(), RecurringTransaction.id.asc()).all()
    return jsonify({"recurring_transactions": [r.to_dict() for r in rules]})


@api.route("/recurring-transactions", methods=["POST"])
@login_required
def recurring_create():
    fid = family_id()
    data = json_body()
    ttype = parse_enum(TxnType, data.get("type"), "type")
    schedule = _schedule_fields(data)
    category = ledger.get_category(fid, parse_int(data.get("category_id"), "category_id"), ttype)
    wallet = ledger.get_wallet(fid, parse_int(data.get("wallet_id"), "wallet_id"))

    rule = RecurringTransaction(
        family_id=fid,
        created_by_id=current_user.id,
        wallet_id=wallet.id,
        category_id=category.id,
        name=parse_str(data.get("name"), "name", max_len=100),
        type=ttype,
        amount=parse_amount(data.get("amount"), max_value=MAX_AMOUNT),
        description=parse_str(data.get("description"), "description", max_len=500, required=False),
        notes=parse_str(data.get("notes"), "notes", required=False),
        next_date=schedule["start_date"],
        status=RecurringStatus.ACTIVE,
        **schedule,
    )
    db.session.add(rule)
    db.session.flush()
    log_action(current_user.id, fid, "CREATE_RECURRING", "RecurringTransaction", rule.id, {
        "name": rule.name, "amount": float(rule.amount), "frequency": rule.frequency.value,
    })
    db.session.commit()
    return jsonify({"recurring_transaction": rule.to_dict()}), 201


@api.route("/recurring-transactions/<int:rule_id>", methods=["GET"])
@login_required
def recurring_get(rule_id: int):
    return jsonify({"recurring_transaction": get_rule(family_id(), rule_id).to_dict()})


@api.route("/recurring-transactions/<int:rule_id>", methods=["PUT"])
@login_required
def recurring_update(rule_id: int):
    fid = family_id()
    rule = get_rule(fid, rule_id)
    if rule.status in (RecurringStatus.COMPLETED, RecurringStatus.CANCELLED):
        raise BusinessRuleError(f"A {rule.status.value.lower()} recurring transaction cannot be edited",
                                "NOT_EDITABLE")
    data = json_body()

    ttype = parse_enum(TxnType, data["type"], "type") if "type" in data else rule.type
    category_id = parse_int(data["category_id"], "category_id") if "category_id" in data else rule.category_id
    rule.category_id = ledger.get_category(fid, category_id, ttype).id
    rule.type = ttype
    if "wallet_id" in data:
        rule.wallet_id = ledger.get_wallet(fid, parse_int(data.get("wallet_id"), "wallet_id")).id
    if "name" in data:
        rule.name = parse_str(data.get("name"), "name", max_len=100)
    if "amount" in data:
        rule.amount = parse_amount(data.get("amount"), max_value=MAX_AMOUNT)
    if "description" in data:
        rule.description = parse_str(data.get("description"), "description", max_len=500, required=False)
    if "notes" in data:
        rule.notes = parse_str(data.get("notes"), "notes", required=False)

    schedule = _schedule_fields(data, rule)
    for key, value in schedule.items():
        setattr(rule, key, value)
    if "next_date" in data:
        rule.next_date = parse_date(data.get("next_date"), "next_date")
    elif "start_date" in schedule and rule.last_run_date is None:
        rule.next_date = schedule["start_date"]

    log_action(current_user.id, fid, "UPDATE_RECURRING", "RecurringTransaction", rule.id,
               {"fields": sorted(data.keys())})
    db.session.commit()
    return jsonify({"recurring_transaction": rule.to_dict()})


def _set_status(rule_id: int, allowed_from: tuple, new_status: RecurringStatus, action: str):
    fid = family_id()
    rule = get_rule(fid, rule_id)
    if rule.status not in allowed_from:
        raise BusinessRuleError(
            f"Cannot change status from {rule.status.value} to {new_status.value}", "INVALID_STATUS"
        )
    old = rule.status
    rule.status = new_status
    if new_status == RecurringStatus.ACTIVE and rule.next_date < date.today():
        # occurrences missed while paused are skipped
        rule.next_date = date.today()
    log_action(current_user.id, fid, action, "RecurringTransaction", rule.id,
               {"from": old.value, "to": new_status.value})
    db.session.commit()
    return rule


@api.route("/recurring-transactions/<int:rule_id>/pause", methods=["POST"])
@login_required
def recurring_pause(rule_id: int):
    rule = _set_status(rule_id, (RecurringStatus.ACTIVE,), RecurringStatus.PAUSED, "PAUSE_RECURRING")
    return jsonify({"recurring_transaction": rule.to_dict()})


@api.route("/recurring-transactions/<int:rule_id>/resume", methods=["POST"])
@login_required
def recurring_resume(rule_id: int):
    rule = _set_status(rule_id, (RecurringStatus.PAUSED,), RecurringStatus.ACTIVE, "RESUME_RECURRING")
    return jsonify({"recurring_transaction": rule.to_dict()})


@api.route("/recurring-transactions/<int:rule_id>", methods=["DELETE"])
@login_required
def recurring_cancel(rule_id: int):
    rule = _set_status(
        rule_id, (RecurringStatus.ACTIVE, RecurringStatus.PAUSED), RecurringStatus.CANCELLED, "CANCEL_RECURRING"
    )
    return jsonify({"message": "Recurring transaction cancelled", "recurring_transaction": rule.to_dict()})


@api.route("/recurring-transactions/<int:rule_id>/execute", methods=["POST"])
@login_required
def recurring_execute(rule_id: int):
    fid = family_id()
    rule = get_rule(fid, rule_id)
    txn = execute_rule(rule, current_user.id)
    return jsonify({"transaction": txn.to_dict(), "recurring_transaction": rule.to_dict()}), 201
