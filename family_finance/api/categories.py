# family_finance/api/categories.py
from flask import jsonify, request
from flask_login import current_user, login_required

from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import (
    Budget, Category, LIVE_RECURRING, RecurringTransaction, Transaction, TransactionTemplate, TxnType,
)
from ..services.audit import log_action
from ..utils.helpers import family_id, json_body, parse_enum, parse_str
from . import api


def _get_category(fid: int, category_id: int) -> Category:
    c = db.session.query(Category).filter_by(id=category_id, family_id=fid).first()
    if not c:
        raise NotFoundError("Category not found")
    return c


def _ensure_unique(fid: int, name: str, ttype: TxnType, exclude_id: int | None = None) -> None:
    q = db.session.query(Category).filter(
        Category.family_id == fid, Category.type == ttype, db.func.lower(Category.name) == name.lower()
    )
    if exclude_id:
        q = q.filter(Category.id != exclude_id)
    if q.first():
        raise ConflictError(f"Category '{name}' already exists", "CATEGORY_EXISTS", field="name")


@api.route("/categories", methods=["GET"])
@login_required
def categories_list():
    fid = family_id()
    q = db.session.query(Category).filter_by(family_id=fid)
    ttype = parse_enum(TxnType, request.args.get("type"), "type", required=False)
    if ttype:
        q = q.filter(Category.type == ttype)
    cats = q.order_by(Category.type.asc(), Category.name.asc()).all()
    return jsonify({"categories": [c.to_dict() for c in cats]})


@api.route("/categories", methods=["POST"])
@login_required
def categories_create():
    fid = family_id()
    data = json_body()
    name = parse_str(data.get("name"), "name", max_len=50)
    ttype = parse_enum(TxnType, data.get("type"), "type")
    _ensure_unique(fid, name, ttype)

    cat = Category(
        family_id=fid,
        name=name,
        type=ttype,
        icon=parse_str(data.get("icon"), "icon", max_len=16, required=False),
        color=parse_str(data.get("color"), "color", max_len=7, required=False),
        description=parse_str(data.get("description"), "description", required=False),
    )
    db.session.add(cat)
    db.session.flush()
    log_action(current_user.id, fid, "CREATE_CATEGORY", "Category", cat.id, {"name": name, "type": ttype.value})
    db.session.commit()
    return jsonify({"category": cat.to_dict()}), 201


@api.route("/categories/<int:category_id>", methods=["PUT"])
@login_required
def categories_update(category_id: int):
    fid = family_id()
    cat = _get_category(fid, category_id)
    data = json_body()

    if "name" in data:
        name = parse_str(data.get("name"), "name", max_len=50)
        _ensure_unique(fid, name, cat.type, exclude_id=cat.id)
        cat.name = name
    for field, max_len in (("icon", 16), ("color", 7), ("description", None)):
        if field in data:
            setattr(cat, field, parse_str(data.get(field), field, max_len=max_len, required=False))

    log_action(current_user.id, fid, "UPDATE_CATEGORY", "Category", cat.id, {"fields": sorted(data.keys())})
    db.session.commit()
    return jsonify({"category": cat.to_dict()})


@api.route("/categories/<int:category_id>", methods=["DELETE"])
@login_required
def categories_delete(category_id: int):
    fid = family_id()
    cat = _get_category(fid, category_id)
    n_txn = db.session.query(Transaction.id).filter_by(category_id=cat.id).count()
    n_budget = db.session.query(Budget.id).filter_by(category_id=cat.id).count()
    n_rules = (
        db.session.query(RecurringTransaction.id)
        .filter(RecurringTransaction.category_id == cat.id, RecurringTransaction.status.in_(LIVE_RECURRING))
        .count()
    )
    n_templates = db.session.query(TransactionTemplate.id).filter_by(category_id=cat.id).count()
    if n_txn or n_budget or n_rules or n_templates:
        raise ConflictError(
            "Category is in use and cannot be deleted", "CATEGORY_IN_USE",
            details={"transactions": n_txn, "budgets": n_budget, "recurring": n_rules, "templates": n_templates},
        )
    db.session.query(RecurringTransaction).filter_by(category_id=cat.id).update(
        {"category_id": None}, synchronize_session=False
    )
    log_action(current_user.id, fid, "DELETE_CATEGORY", "Category", cat.id, {"name": cat.name})
    db.session.delete(cat)
    db.session.commit()
    return jsonify({"message": "Category deleted"})
