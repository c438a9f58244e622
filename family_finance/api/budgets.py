# family_finance/api/budgets.py
from datetime import date

from flask import jsonify, request
from flask_login import current_user, login_required

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Budget, Category, TxnType
from ..services.audit import log_action
from ..services.budgeting import budget_status, budgets_for, copy_previous
from ..utils.helpers import admin_required, family_id, json_body, parse_amount, parse_int
from . import api

MAX_BUDGET = 999_999_999_999


def month_year_args(source: dict) -> tuple[int, int]:
    today = date.today()
    month = parse_int(source.get("month"), "month", min_value=1, max_value=12, required=False) or today.month
    year = parse_int(source.get("year"), "year", min_value=2000, max_value=2100, required=False) or today.year
    return year, month


@api.route("/budgets", methods=["GET"])
@login_required
def budgets_list():
    fid = family_id()
    year, month = month_year_args(request.args)
    rows = sorted(budgets_for(fid, year, month), key=lambda b: b.category.name if b.category else "")
    return jsonify({"year": year, "month": month, "budgets": [b.to_dict() for b in rows]})


@api.route("/budgets", methods=["POST"])
@login_required
@admin_required
def budgets_upsert():
    fid = family_id()
    data = json_body()
    category_id = parse_int(data.get("category_id"), "category_id")
    amount = parse_amount(data.get("amount"), allow_zero=True, max_value=MAX_BUDGET)
    month = parse_int(data.get("month"), "month", min_value=1, max_value=12)
    year = parse_int(data.get("year"), "year", min_value=2000, max_value=2100)
    threshold = parse_amount(data.get("alert_threshold"), "alert_threshold", allow_zero=True,
                             max_value=100, required=False)

    category = db.session.query(Category).filter_by(id=category_id, family_id=fid).first()
    if not category:
        raise NotFoundError("Category not found", "CATEGORY_NOT_FOUND")
    if category.type != TxnType.EXPENSE:
        raise ValidationError("Budgets can only be set for expense categories", field="category_id")

    budget = (
        db.session.query(Budget)
        .filter_by(family_id=fid, category_id=category_id, year=year, month=month)
        .first()
    )
    created = budget is None
    if created:
        budget = Budget(family_id=fid, category_id=category_id, year=year, month=month,
                        created_by_id=current_user.id)
        db.session.add(budget)
    budget.amount = amount
    if "alert_threshold" in data:
        budget.alert_threshold = threshold
    db.session.flush()

    log_action(current_user.id, fid, "CREATE_BUDGET" if created else "UPDATE_BUDGET", "Budget", budget.id, {
        "category": category.name, "amount": float(amount), "month": month, "year": year,
    })
    db.session.commit()
    return jsonify({"budget": budget.to_dict()}), (201 if created else 200)


@api.route("/budgets/<int:budget_id>", methods=["DELETE"])
@login_required
@admin_required
def budgets_delete(budget_id: int):
    fid = family_id()
    budget = db.session.query(Budget).filter_by(id=budget_id, family_id=fid).first()
    if not budget:
        raise NotFoundError("Budget not found")
    log_action(current_user.id, fid, "DELETE_BUDGET", "Budget", budget.id, {
        "category_id": budget.category_id, "month": budget.month, "year": budget.year,
    })
    db.session.delete(budget)
    db.session.commit()
    return jsonify({"message": "Budget deleted"})


@api.route("/budgets/copy-previous", methods=["POST"])
@login_required
@admin_required
def budgets_copy_previous():
    fid = family_id()
    data = json_body()
    month = parse_int(data.get("month"), "month", min_value=1, max_value=12)
    year = parse_int(data.get("year"), "year", min_value=2000, max_value=2100)
    created = copy_previous(fid, current_user.id, year, month)
    if created:
        log_action(current_user.id, fid, "COPY_BUDGETS", "Budget", None,
                   {"month": month, "year": year, "copied": len(created)})
    db.session.commit()
    return jsonify({"copied": len(created), "budgets": [b.to_dict() for b in created]})


@api.route("/budgets/status", methods=["GET"])
@login_required
def budgets_status():
    family_id()
    year, month = month_year_args(request.args)
    return jsonify(budget_status(current_user.family, year, month))
