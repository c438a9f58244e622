# family_finance/api/transactions.py
# ------------------------------------------------------------
# Transactions CRUD (JSON).
# - Every write moves the wallet balance in the same commit as the row.
# - Transfer legs come in pairs: deleting one removes both; editing is refused.
# ------------------------------------------------------------
import logging
from decimal import Decimal

from flask import jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import func, or_

from ..errors import ApiError, BusinessRuleError, NotFoundError
from ..extensions import db
from ..models import Transaction, TxnType
from ..services import ledger
from ..services.audit import log_action
from ..services.budgeting import check_budget_warning
from ..services.uploads import save_upload
from ..utils.helpers import (
    family_id, json_body, page_args, parse_amount, parse_date, parse_enum, parse_int, parse_str,
)
from . import api

logger = logging.getLogger(__name__)

MAX_AMOUNT = 999_999_999_999


def get_transaction(fid: int, txn_id: int) -> Transaction:
    txn = db.session.query(Transaction).filter_by(id=txn_id, family_id=fid).first()
    if not txn:
        raise NotFoundError("Transaction not found")
    return txn


def _filters(fid: int) -> list:
    args = request.args
    flt = [Transaction.family_id == fid]

    ttype = parse_enum(TxnType, args.get("type"), "type", required=False)
    if ttype:
        flt.append(Transaction.type == ttype)
    category_id = parse_int(args.get("category_id"), "category_id", required=False)
    if category_id:
        flt.append(Transaction.category_id == category_id)
    wallet_id = parse_int(args.get("wallet_id"), "wallet_id", required=False)
    if wallet_id:
        flt.append(Transaction.wallet_id == wallet_id)
    start = parse_date(args.get("start_date"), "start_date", required=False)
    if start:
        flt.append(Transaction.date >= start)
    end = parse_date(args.get("end_date"), "end_date", required=False)
    if end:
        flt.append(Transaction.date <= end)
    min_amount = parse_amount(args.get("min_amount"), "min_amount", allow_zero=True, required=False)
    if min_amount is not None:
        flt.append(Transaction.amount >= min_amount)
    max_amount = parse_amount(args.get("max_amount"), "max_amount", allow_zero=True, required=False)
    if max_amount is not None:
        flt.append(Transaction.amount <= max_amount)
    search = (args.get("search") or "").strip()
    if search:
        like = f"%{search.lower()}%"
        flt.append(or_(func.lower(Transaction.description).like(like),
                       func.lower(func.coalesce(Transaction.notes, "")).like(like)))
    return flt


def _summary(flt: list) -> dict:
    rows = (
        db.session.query(Transaction.type, func.coalesce(func.sum(Transaction.amount), 0))
        .filter(*flt, Transaction.transfer_group_id.is_(None))
        .group_by(Transaction.type)
        .all()
    )
    sums = {t: Decimal(str(s)) for t, s in rows}
    income = sums.get(TxnType.INCOME, Decimal(0))
    expense = sums.get(TxnType.EXPENSE, Decimal(0))
    count = db.session.query(func.count(Transaction.id)).filter(*flt).scalar() or 0
    return {
        "total_income": float(income),
        "total_expense": float(expense),
        "balance": float(income - expense),
        "count": count,
    }


def create_from_payload(fid: int, data: dict, **overrides):
    """Shared by POST /transactions and POST /templates/<id>/use."""
    data = {**data, **{k: v for k, v in overrides.items() if v is not None}}
    ttype = parse_enum(TxnType, data.get("type"), "type")
    amount = parse_amount(data.get("amount"), max_value=MAX_AMOUNT)
    txn = ledger.record_transaction(
        user=current_user,
        family_id=fid,
        ttype=ttype,
        amount=amount,
        wallet_id=parse_int(data.get("wallet_id"), "wallet_id"),
        category_id=parse_int(data.get("category_id"), "category_id"),
        description=parse_str(data.get("description"), "description", max_len=500),
        notes=parse_str(data.get("notes"), "notes", required=False),
        on_date=parse_date(data.get("date")),
        attachment=parse_str(data.get("attachment"), "attachment", required=False),
    )
    log_action(current_user.id, fid, "CREATE_TRANSACTION", "Transaction", txn.id, {
        "type": ttype.value, "amount": float(amount), "description": txn.description,
    })
    return txn


def budget_warning_for(txn: Transaction) -> dict | None:
    if txn.type != TxnType.EXPENSE or txn.category_id is None:
        return None
    return check_budget_warning(current_user, txn.category_id, txn.date)


@api.route("/transactions", methods=["GET"])
@login_required
def transactions_list():
    fid = family_id()
    flt = _filters(fid)
    page, limit = page_args(default_limit=50, max_limit=100)

    q = db.session.query(Transaction).filter(*flt)
    total = q.count()
    rows = (
        q.order_by(Transaction.date.desc(), Transaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return jsonify({
        "transactions": [t.to_dict() for t in rows],
        "summary": _summary(flt),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": (total + limit - 1) // limit,
        },
    })


@api.route("/transactions", methods=["POST"])
@login_required
def transactions_create():
    fid = family_id()
    txn = create_from_payload(fid, json_body())
    db.session.commit()
    warning = budget_warning_for(txn)
    return jsonify({"transaction": txn.to_dict(), "budget_warning": warning}), 201


@api.route("/transactions/<int:txn_id>", methods=["GET"])
@login_required
def transactions_get(txn_id: int):
    return jsonify({"transaction": get_transaction(family_id(), txn_id).to_dict()})


@api.route("/transactions/<int:txn_id>", methods=["PUT"])
@login_required
def transactions_update(txn_id: int):
    fid = family_id()
    txn = get_transaction(fid, txn_id)
    if txn.is_transfer:
        raise BusinessRuleError("Transfer legs cannot be edited; delete the transfer instead", "TRANSFER_LEG")
    data = json_body()

    try:
        ledger.reverse(txn)

        ttype = parse_enum(TxnType, data["type"], "type") if "type" in data else txn.type
        amount = parse_amount(data["amount"], max_value=MAX_AMOUNT) if "amount" in data else Decimal(txn.amount)
        wallet_id = parse_int(data["wallet_id"], "wallet_id") if "wallet_id" in data else txn.wallet_id
        category_id = parse_int(data["category_id"], "category_id") if "category_id" in data else txn.category_id

        category = ledger.get_category(fid, category_id, ttype)
        wallet = ledger.get_wallet(fid, wallet_id, lock=True)
        ledger.apply_delta(wallet, ledger.signed(ttype, amount), check_funds=(ttype == TxnType.EXPENSE))

        txn.type = ttype
        txn.amount = amount
        txn.wallet_id = wallet.id
        txn.category_id = category.id
        if "description" in data:
            txn.description = parse_str(data.get("description"), "description", max_len=500)
        if "notes" in data:
            txn.notes = parse_str(data.get("notes"), "notes", required=False)
        if "date" in data:
            txn.date = parse_date(data.get("date"))
        if "attachment" in data:
            txn.attachment = parse_str(data.get("attachment"), "attachment", required=False)

        log_action(current_user.id, fid, "UPDATE_TRANSACTION", "Transaction", txn.id,
                   {"fields": sorted(data.keys()), "amount": float(amount)})
        db.session.commit()
    except ApiError:
        db.session.rollback()
        raise

    db.session.refresh(txn)
    warning = budget_warning_for(txn)
    return jsonify({"transaction": txn.to_dict(), "budget_warning": warning})


@api.route("/transactions/<int:txn_id>", methods=["DELETE"])
@login_required
def transactions_delete(txn_id: int):
    fid = family_id()
    txn = get_transaction(fid, txn_id)
    details = {"type": txn.type.value, "amount": float(txn.amount), "description": txn.description}
    if txn.transfer_group_id:
        details["transfer_group_id"] = txn.transfer_group_id
    removed = ledger.delete_transaction(txn)
    log_action(current_user.id, fid, "DELETE_TRANSACTION", "Transaction", txn_id, details)
    db.session.commit()
    if removed > 1:
        logger.info(f"[ledger] family={fid} deleted transfer {details['transfer_group_id']} ({removed} legs)")
    return jsonify({"message": "Transaction deleted", "deleted": removed})


@api.route("/transactions/<int:txn_id>/attachment", methods=["POST"])
@login_required
def transactions_attachment(txn_id: int):
    fid = family_id()
    txn = get_transaction(fid, txn_id)
    stored = save_upload(request.files.get("file"), fid)
    txn.attachment = stored["url"]
    db.session.commit()
    return jsonify({"transaction": txn.to_dict(), "file": stored}), 201
