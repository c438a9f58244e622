# family_finance/api/templates.py
from datetime import date, datetime

from flask import jsonify
from flask_login import current_user, login_required

from ..errors import NotFoundError
from ..extensions import db
from ..models import TransactionTemplate, TxnType
from ..services import ledger
from ..services.audit import log_action
from ..utils.helpers import family_id, json_body, parse_amount, parse_enum, parse_int, parse_str
from . import api
from .transactions import MAX_AMOUNT, budget_warning_for, create_from_payload


def _get_template(fid: int, template_id: int) -> TransactionTemplate:
    tpl = db.session.query(TransactionTemplate).filter_by(id=template_id, family_id=fid).first()
    if not tpl:
        raise NotFoundError("Template not found")
    return tpl


def _apply(tpl: TransactionTemplate, fid: int, data: dict, *, creating: bool) -> None:
    if creating or "name" in data:
        tpl.name = parse_str(data.get("name"), "name", max_len=100)
    if creating or "type" in data:
        tpl.type = parse_enum(TxnType, data.get("type"), "type")
    if creating or "amount" in data:
        tpl.amount = parse_amount(data.get("amount"), max_value=MAX_AMOUNT, required=False)
    if creating or "category_id" in data:
        cid = parse_int(data.get("category_id"), "category_id", required=False)
        tpl.category_id = ledger.get_category(fid, cid, tpl.type).id if cid else None
    elif tpl.category_id and tpl.category and tpl.category.type != tpl.type:
        tpl.category_id = None
    if creating or "wallet_id" in data:
        wid = parse_int(data.get("wallet_id"), "wallet_id", required=False)
        tpl.wallet_id = ledger.get_wallet(fid, wid).id if wid else None
    if creating or "description" in data:
        tpl.description = parse_str(data.get("description"), "description", max_len=500, required=False)
    if creating or "notes" in data:
        tpl.notes = parse_str(data.get("notes"), "notes", required=False)


@api.route("/templates", methods=["GET"])
@login_required
def templates_list():
    fid = family_id()
    rows = (
        db.session.query(TransactionTemplate)
        .filter_by(family_id=fid)
        .order_by(TransactionTemplate.usage_count.desc(), TransactionTemplate.name.asc())
        .all()
    )
    return jsonify({"templates": [t.to_dict() for t in rows]})


@api.route("/templates", methods=["POST"])
@login_required
def templates_create():
    fid = family_id()
    tpl = TransactionTemplate(family_id=fid, created_by_id=current_user.id, usage_count=0)
    _apply(tpl, fid, json_body(), creating=True)
    db.session.add(tpl)
    db.session.flush()
    log_action(current_user.id, fid, "CREATE_TEMPLATE", "TransactionTemplate", tpl.id, {"name": tpl.name})
    db.session.commit()
    return jsonify({"template": tpl.to_dict()}), 201


@api.route("/templates/<int:template_id>", methods=["GET"])
@login_required
def templates_get(template_id: int):
    return jsonify({"template": _get_template(family_id(), template_id).to_dict()})


@api.route("/templates/<int:template_id>", methods=["PUT"])
@login_required
def templates_update(template_id: int):
    fid = family_id()
    tpl = _get_template(fid, template_id)
    data = json_body()
    _apply(tpl, fid, data, creating=False)
    log_action(current_user.id, fid, "UPDATE_TEMPLATE", "TransactionTemplate", tpl.id,
               {"fields": sorted(data.keys())})
    db.session.commit()
    db.session.refresh(tpl)
    return jsonify({"template": tpl.to_dict()})


@api.route("/templates/<int:template_id>", methods=["DELETE"])
@login_required
def templates_delete(template_id: int):
    fid = family_id()
    tpl = _get_template(fid, template_id)
    log_action(current_user.id, fid, "DELETE_TEMPLATE", "TransactionTemplate", tpl.id, {"name": tpl.name})
    db.session.delete(tpl)
    db.session.commit()
    return jsonify({"message": "Template deleted"})


@api.route("/templates/<int:template_id>/use", methods=["POST"])
@login_required
def templates_use(template_id: int):
    """Create a transaction from the template; body fields override its defaults."""
    fid = family_id()
    tpl = _get_template(fid, template_id)
    body = json_body()

    defaults = {
        "type": tpl.type.value,
        "amount": str(tpl.amount) if tpl.amount is not None else None,
        "wallet_id": tpl.wallet_id,
        "category_id": tpl.category_id,
        "description": tpl.description or tpl.name,
        "notes": tpl.notes,
        "date": date.today().isoformat(),
    }
    overrides = {k: body.get(k) for k in ("amount", "wallet_id", "category_id", "description", "notes", "date")}
    txn = create_from_payload(fid, defaults, **overrides)

    tpl.usage_count = (tpl.usage_count or 0) + 1
    tpl.last_used_at = datetime.utcnow()
    db.session.commit()
    warning = budget_warning_for(txn)
    return jsonify({"transaction": txn.to_dict(), "template": tpl.to_dict(), "budget_warning": warning}), 201
