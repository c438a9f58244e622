# family_finance/api/wallets.py
from decimal import Decimal

from flask import jsonify
from flask_login import current_user, login_required

from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import LIVE_RECURRING, RecurringTransaction, Transaction, TransactionTemplate, Wallet, WalletType
from ..services import ledger
from ..services.audit import log_action
from ..utils.helpers import (
    family_id, json_body, parse_amount, parse_date, parse_enum, parse_int, parse_str,
)
from . import api

MAX_WALLET_BALANCE = 1_000_000_000
MAX_TRANSFER = 999_999_999_999


def _get_wallet(fid: int, wallet_id: int) -> Wallet:
    w = db.session.query(Wallet).filter_by(id=wallet_id, family_id=fid).first()
    if not w:
        raise NotFoundError("Wallet not found")
    return w


@api.route("/wallets", methods=["GET"])
@login_required
def wallets_list():
    fid = family_id()
    wallets = db.session.query(Wallet).filter_by(family_id=fid).order_by(Wallet.name.asc()).all()
    total = sum((Decimal(w.balance or 0) for w in wallets), Decimal(0))
    return jsonify({"wallets": [w.to_dict() for w in wallets], "total_balance": float(total)})


@api.route("/wallets", methods=["POST"])
@login_required
def wallets_create():
    fid = family_id()
    data = json_body()
    wallet = Wallet(
        family_id=fid,
        name=parse_str(data.get("name"), "name", max_len=50),
        type=parse_enum(WalletType, data.get("type"), "type"),
        balance=parse_amount(data.get("balance", 0), "balance", allow_zero=True,
                             max_value=MAX_WALLET_BALANCE, required=False) or Decimal("0"),
        description=parse_str(data.get("description"), "description", required=False),
        icon=parse_str(data.get("icon"), "icon", max_len=16, required=False),
        color=parse_str(data.get("color"), "color", max_len=7, required=False),
    )
    db.session.add(wallet)
    db.session.flush()
    log_action(current_user.id, fid, "CREATE_WALLET", "Wallet", wallet.id,
               {"name": wallet.name, "balance": float(wallet.balance)})
    db.session.commit()
    return jsonify({"wallet": wallet.to_dict()}), 201


@api.route("/wallets/<int:wallet_id>", methods=["PUT"])
@login_required
def wallets_update(wallet_id: int):
    fid = family_id()
    wallet = _get_wallet(fid, wallet_id)
    data = json_body()

    if "name" in data:
        wallet.name = parse_str(data.get("name"), "name", max_len=50)
    if "type" in data:
        wallet.type = parse_enum(WalletType, data.get("type"), "type")
    if "balance" in data:
        wallet.balance = parse_amount(data.get("balance"), "balance", allow_zero=True,
                                      max_value=MAX_WALLET_BALANCE)
    for field, max_len in (("description", None), ("icon", 16), ("color", 7)):
        if field in data:
            setattr(wallet, field, parse_str(data.get(field), field, max_len=max_len, required=False))

    log_action(current_user.id, fid, "UPDATE_WALLET", "Wallet", wallet.id, {"fields": sorted(data.keys())})
    db.session.commit()
    return jsonify({"wallet": wallet.to_dict()})


@api.route("/wallets/<int:wallet_id>", methods=["DELETE"])
@login_required
def wallets_delete(wallet_id: int):
    fid = family_id()
    wallet = _get_wallet(fid, wallet_id)
    used = db.session.query(Transaction.id).filter_by(wallet_id=wallet.id).count()
    rules = (
        db.session.query(RecurringTransaction.id)
        .filter(RecurringTransaction.wallet_id == wallet.id, RecurringTransaction.status.in_(LIVE_RECURRING))
        .count()
    )
    templates = db.session.query(TransactionTemplate.id).filter_by(wallet_id=wallet.id).count()
    if used or rules or templates:
        raise ConflictError(
            "Wallet is in use and cannot be deleted", "WALLET_IN_USE",
            details={"transactions": used, "recurring": rules, "templates": templates},
        )
    # finished rules keep their history without the wallet
    db.session.query(RecurringTransaction).filter_by(wallet_id=wallet.id).update(
        {"wallet_id": None}, synchronize_session=False
    )
    log_action(current_user.id, fid, "DELETE_WALLET", "Wallet", wallet.id, {"name": wallet.name})
    db.session.delete(wallet)
    db.session.commit()
    return jsonify({"message": "Wallet deleted"})


@api.route("/wallets/transfer", methods=["POST"])
@login_required
def wallets_transfer():
    fid = family_id()
    data = json_body()
    from_id = parse_int(data.get("from_wallet_id"), "from_wallet_id")
    to_id = parse_int(data.get("to_wallet_id"), "to_wallet_id")
    amount = parse_amount(data.get("amount"), max_value=MAX_TRANSFER)
    description = parse_str(data.get("description"), "description", max_len=450, required=False)
    on_date = parse_date(data.get("date"), required=False)

    out_leg, in_leg = ledger.transfer(
        user=current_user, family_id=fid,
        from_wallet_id=from_id, to_wallet_id=to_id,
        amount=amount, description=description, on_date=on_date,
    )
    log_action(current_user.id, fid, "WALLET_TRANSFER", "Wallet", from_id, {
        "from_wallet_id": from_id,
        "to_wallet_id": to_id,
        "amount": float(amount),
        "transfer_group_id": out_leg.transfer_group_id,
    })
    db.session.commit()
    return jsonify({
        "message": "Transfer completed",
        "transfer_group_id": out_leg.transfer_group_id,
        "from_wallet": out_leg.wallet.to_dict(),
        "to_wallet": in_leg.wallet.to_dict(),
        "transactions": [out_leg.to_dict(), in_leg.to_dict()],
    }), 201
