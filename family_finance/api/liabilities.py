# family_finance/api/liabilities.py
from datetime import date
from decimal import Decimal

from flask import jsonify, request
from flask_login import current_user, login_required

from ..errors import BusinessRuleError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Family, Liability, LiabilityType
from ..services.audit import log_action
from ..services.reminders import liability_reminders
from ..utils.helpers import family_id, json_body, parse_amount, parse_date, parse_enum, parse_int, parse_str
from . import api

MAX_VALUE = 999_999_999_999


def _get_liability(fid: int, liability_id: int) -> Liability:
    liability = db.session.query(Liability).filter_by(id=liability_id, family_id=fid).first()
    if not liability:
        raise NotFoundError("Liability not found")
    return liability


def _apply(liability: Liability, data: dict, *, creating: bool) -> None:
    if creating or "name" in data:
        liability.name = parse_str(data.get("name"), "name", max_len=100)
    if creating or "type" in data:
        liability.type = parse_enum(LiabilityType, data.get("type"), "type")
    if creating or "amount" in data:
        liability.amount = parse_amount(data.get("amount"), max_value=MAX_VALUE)
    if creating or "remaining_amount" in data:
        remaining = parse_amount(data.get("remaining_amount"), "remaining_amount", allow_zero=True,
                                 max_value=MAX_VALUE, required=False)
        liability.remaining_amount = remaining if remaining is not None else liability.amount
    if Decimal(liability.remaining_amount) > Decimal(liability.amount):
        raise ValidationError("remaining_amount cannot exceed amount", field="remaining_amount")
    if creating or "interest_rate" in data:
        liability.interest_rate = parse_amount(data.get("interest_rate"), "interest_rate", allow_zero=True,
                                               max_value=100, required=False)
    if creating or "creditor" in data:
        liability.creditor = parse_str(data.get("creditor"), "creditor", max_len=100, required=False)
    if creating or "due_date" in data:
        liability.due_date = parse_date(data.get("due_date"), "due_date", required=False)
    if creating or "start_date" in data:
        liability.start_date = parse_date(data.get("start_date"), "start_date", required=False)
    if creating or "description" in data:
        liability.description = parse_str(data.get("description"), "description", required=False)


@api.route("/liabilities", methods=["GET"])
@login_required
def liabilities_list():
    fid = family_id()
    q = db.session.query(Liability).filter_by(family_id=fid)
    ltype = parse_enum(LiabilityType, request.args.get("type"), "type", required=False)
    if ltype:
        q = q.filter(Liability.type == ltype)
    rows = q.order_by(Liability.due_date.asc(), Liability.name.asc()).all()
    total = sum((Decimal(r.remaining_amount) for r in rows), Decimal(0))
    return jsonify({"liabilities": [r.to_dict() for r in rows], "total_remaining": float(total)})


@api.route("/liabilities", methods=["POST"])
@login_required
def liabilities_create():
    fid = family_id()
    liability = Liability(family_id=fid)
    _apply(liability, json_body(), creating=True)
    db.session.add(liability)
    db.session.flush()
    log_action(current_user.id, fid, "CREATE_LIABILITY", "Liability", liability.id,
               {"name": liability.name, "amount": float(liability.amount)})
    db.session.commit()
    return jsonify({"liability": liability.to_dict()}), 201


@api.route("/liabilities/<int:liability_id>", methods=["GET"])
@login_required
def liabilities_get(liability_id: int):
    return jsonify({"liability": _get_liability(family_id(), liability_id).to_dict()})


@api.route("/liabilities/<int:liability_id>", methods=["PUT"])
@login_required
def liabilities_update(liability_id: int):
    fid = family_id()
    liability = _get_liability(fid, liability_id)
    data = json_body()
    _apply(liability, data, creating=False)
    log_action(current_user.id, fid, "UPDATE_LIABILITY", "Liability", liability.id,
               {"fields": sorted(data.keys())})
    db.session.commit()
    return jsonify({"liability": liability.to_dict()})


@api.route("/liabilities/<int:liability_id>", methods=["DELETE"])
@login_required
def liabilities_delete(liability_id: int):
    fid = family_id()
    liability = _get_liability(fid, liability_id)
    log_action(current_user.id, fid, "DELETE_LIABILITY", "Liability", liability.id, {"name": liability.name})
    db.session.delete(liability)
    db.session.commit()
    return jsonify({"message": "Liability deleted"})


@api.route("/liabilities/<int:liability_id>/payment", methods=["POST"])
@login_required
def liabilities_payment(liability_id: int):
    fid = family_id()
    liability = _get_liability(fid, liability_id)
    remaining = Decimal(liability.remaining_amount or 0)
    if remaining <= 0:
        raise BusinessRuleError("This liability is already paid off", "ALREADY_PAID")
    amount = parse_amount(json_body().get("amount"), max_value=MAX_VALUE)

    applied = min(amount, remaining)
    liability.remaining_amount = remaining - applied
    log_action(current_user.id, fid, "LIABILITY_PAYMENT", "Liability", liability.id, {
        "amount": float(amount), "applied": float(applied), "remaining": float(liability.remaining_amount),
    })
    db.session.commit()
    return jsonify({
        "liability": liability.to_dict(),
        "applied": float(applied),
        "paid_off": liability.remaining_amount == 0,
    })


@api.route("/liabilities/due-date-reminders", methods=["GET"])
@login_required
def liabilities_due_date_reminders():
    family = db.session.get(Family, family_id())
    days_ahead = parse_int(request.args.get("days_ahead"), "days_ahead", min_value=1, max_value=365,
                           required=False) or 30
    return jsonify({"date": date.today().isoformat(), "days_ahead": days_ahead,
                    **liability_reminders(family, days_ahead=days_ahead)})
