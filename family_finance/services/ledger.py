# family_finance/services/ledger.py
# ------------------------------------------------------------
# Wallet balance bookkeeping shared by transactions, transfers,
# templates and recurring runs.
#
# Amounts are stored positive; the transaction type carries the sign:
#   INCOME  -> wallet.balance += amount
#   EXPENSE -> wallet.balance -= amount
# Nothing here commits; callers commit once so the balance change and the
# row(s) it belongs to land together.
# ------------------------------------------------------------
from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import uuid4

from ..errors import BusinessRuleError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Category, Transaction, TxnType, User, Wallet

TRANSFER_CATEGORY = "Transfer"


def signed(ttype: TxnType, amount: Decimal) -> Decimal:
    amount = Decimal(amount or 0)
    return amount if ttype == TxnType.INCOME else -amount


def apply_delta(wallet: Wallet, delta: Decimal, *, check_funds: bool = True) -> None:
    """Mutate live balance; refuse to go below zero when check_funds is set."""
    curr = Decimal(wallet.balance or 0)
    new_balance = curr + Decimal(delta)
    if check_funds and delta < 0 and new_balance < 0:
        raise BusinessRuleError(
            f"Insufficient balance in wallet '{wallet.name}'",
            "INSUFFICIENT_BALANCE",
            details={"wallet_id": wallet.id, "balance": float(curr), "required": float(-delta)},
        )
    wallet.balance = new_balance


def get_wallet(family_id: int, wallet_id: int | None, *, lock: bool = False) -> Wallet:
    if not wallet_id:
        raise ValidationError("wallet_id is required", field="wallet_id")
    q = db.session.query(Wallet).filter_by(id=wallet_id, family_id=family_id)
    if lock:
        q = q.with_for_update()
    wallet = q.first()
    if not wallet:
        raise NotFoundError("Wallet not found", "WALLET_NOT_FOUND")
    return wallet


def get_category(family_id: int, category_id: int | None, ttype: TxnType) -> Category:
    if not category_id:
        raise ValidationError("category_id is required", field="category_id")
    category = db.session.query(Category).filter_by(id=category_id, family_id=family_id).first()
    if not category:
        raise NotFoundError("Category not found", "CATEGORY_NOT_FOUND")
    if category.type != ttype:
        raise ValidationError(
            f"Category type ({category.type.value}) does not match transaction type ({ttype.value})",
            "CATEGORY_TYPE_MISMATCH",
            field="category_id",
        )
    return category


def record_transaction(
    *,
    user: User,
    family_id: int,
    ttype: TxnType,
    amount: Decimal,
    wallet_id: int,
    category_id: int | None,
    description: str,
    on_date: date,
    notes: str | None = None,
    attachment: str | None = None,
    recurring_id: int | None = None,
) -> Transaction:
    """Validate references, move the wallet balance and stage the row."""
    category = get_category(family_id, category_id, ttype)
    wallet = get_wallet(family_id, wallet_id, lock=True)
    apply_delta(wallet, signed(ttype, amount), check_funds=(ttype == TxnType.EXPENSE))

    txn = Transaction(
        family_id=family_id,
        user_id=user.id,
        wallet_id=wallet.id,
        category_id=category.id,
        type=ttype,
        amount=amount,
        description=description,
        notes=notes,
        date=on_date,
        attachment=attachment,
        recurring_id=recurring_id,
    )
    db.session.add(txn)
    db.session.flush()
    return txn


def reverse(txn: Transaction) -> None:
    """Roll a stored transaction's effect back out of its wallet."""
    wallet = db.session.get(Wallet, txn.wallet_id)
    if wallet:
        apply_delta(wallet, -signed(txn.type, txn.amount), check_funds=False)


def transfer_legs(txn: Transaction) -> list[Transaction]:
    if not txn.transfer_group_id:
        return [txn]
    return (
        db.session.query(Transaction)
        .filter_by(family_id=txn.family_id, transfer_group_id=txn.transfer_group_id)
        .all()
    )


def delete_transaction(txn: Transaction) -> int:
    """Reverse and delete the row; a transfer leg takes its partner with it."""
    legs = transfer_legs(txn)
    for leg in legs:
        reverse(leg)
        db.session.delete(leg)
    return len(legs)


def transfer_category(family_id: int, ttype: TxnType) -> Category:
    cat = db.session.query(Category).filter_by(family_id=family_id, name=TRANSFER_CATEGORY, type=ttype).first()
    if cat:
        return cat
    cat = Category(
        family_id=family_id,
        name=TRANSFER_CATEGORY,
        type=ttype,
        icon="🔁",
        description="Transfers between family wallets",
    )
    db.session.add(cat)
    db.session.flush()
    return cat


def transfer(
    *,
    user: User,
    family_id: int,
    from_wallet_id: int,
    to_wallet_id: int,
    amount: Decimal,
    description: str | None = None,
    on_date: date | None = None,
) -> tuple[Transaction, Transaction]:
    if from_wallet_id == to_wallet_id:
        raise BusinessRuleError("Cannot transfer to the same wallet", "SAME_WALLET")

    src = get_wallet(family_id, from_wallet_id, lock=True)
    dst = get_wallet(family_id, to_wallet_id, lock=True)
    apply_delta(src, -amount)
    apply_delta(dst, amount, check_funds=False)

    on_date = on_date or date.today()
    gid = str(uuid4())
    note = description or f"Transfer {src.name} → {dst.name}"
    out_leg = Transaction(
        family_id=family_id,
        user_id=user.id,
        wallet_id=src.id,
        category_id=transfer_category(family_id, TxnType.EXPENSE).id,
        type=TxnType.EXPENSE,
        amount=amount,
        description=f"{note} (to {dst.name})" if description else note,
        date=on_date,
        transfer_group_id=gid,
    )
    in_leg = Transaction(
        family_id=family_id,
        user_id=user.id,
        wallet_id=dst.id,
        category_id=transfer_category(family_id, TxnType.INCOME).id,
        type=TxnType.INCOME,
        amount=amount,
        description=f"{note} (from {src.name})" if description else note,
        date=on_date,
        transfer_group_id=gid,
    )
    db.session.add_all([out_leg, in_leg])
    db.session.flush()
    return out_leg, in_leg
