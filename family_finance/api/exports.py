# family_finance/api/exports.py
# ------------------------------------------------------------
# GET /api/export/transactions?format=csv|xlsx|pdf&start_date&end_date&type
# GET /api/export/budgets?format=xlsx|pdf&month&year
# ------------------------------------------------------------
from datetime import date

from flask import Response, jsonify, request, send_file
from flask_login import current_user, login_required

from ..errors import ValidationError
from ..extensions import db
from ..models import Transaction, TxnType
from ..services import exports
from ..services.audit import log_action
from ..services.budgeting import budget_status
from ..utils.helpers import family_id, parse_date
from . import api
from .budgets import month_year_args

PDF_MIMETYPE = "application/pdf"


def _format(allowed: tuple[str, ...]) -> str:
    fmt = (request.args.get("format") or allowed[0]).strip().lower()
    if fmt not in allowed:
        raise ValidationError(f"format must be one of: {', '.join(allowed)}", field="format")
    return fmt


def _record_export(fid: int, what: str, fmt: str, details: dict) -> None:
    log_action(current_user.id, fid, "EXPORT", what, None, {"format": fmt, **details})
    db.session.commit()


@api.route("/export/transactions", methods=["GET"])
@login_required
def export_transactions():
    fid = family_id()
    fmt = _format(("csv", "xlsx", "pdf"))
    start = parse_date(request.args.get("start_date"), "start_date", required=False)
    end = parse_date(request.args.get("end_date"), "end_date", required=False)
    ttype_raw = (request.args.get("type") or "ALL").strip().upper()
    if ttype_raw not in ("ALL", "INCOME", "EXPENSE"):
        raise ValidationError("type must be one of: ALL, INCOME, EXPENSE", field="type")

    q = db.session.query(Transaction).filter(Transaction.family_id == fid)
    if start:
        q = q.filter(Transaction.date >= start)
    if end:
        q = q.filter(Transaction.date <= end)
    if ttype_raw != "ALL":
        q = q.filter(Transaction.type == TxnType(ttype_raw))
    rows = q.order_by(Transaction.date.asc(), Transaction.id.asc()).all()

    family = current_user.family
    meta = {
        "family": family.name,
        "currency": family.currency,
        "period": f"{start.isoformat() if start else 'Start'} → {end.isoformat() if end else 'Today'}",
        "type": ttype_raw,
    }
    stamp = date.today().strftime("%Y%m%d")

    # build before committing the audit row; commit expires the loaded rows
    if fmt == "csv":
        resp = Response(
            exports.transactions_csv(rows, meta),
            mimetype="text/csv",
            headers={"Content-Disposition": f'attachment; filename="transactions_{stamp}.csv"'},
        )
    elif fmt == "xlsx":
        resp = send_file(exports.transactions_xlsx(rows, meta), as_attachment=True,
                         download_name=f"transactions_{stamp}.xlsx", mimetype=exports.XLSX_MIMETYPE)
    else:
        resp = send_file(exports.transactions_pdf(rows, meta), as_attachment=True,
                         download_name=f"transactions_{stamp}.pdf", mimetype=PDF_MIMETYPE)
    _record_export(fid, "Transaction", fmt, {"rows": len(rows), "type": ttype_raw})
    return resp


@api.route("/export/budgets", methods=["GET"])
@login_required
def export_budgets():
    fid = family_id()
    fmt = _format(("xlsx", "pdf"))
    year, month = month_year_args(request.args)
    family = current_user.family
    status = budget_status(family, year, month)
    meta = {
        "family": family.name,
        "currency": family.currency,
        "period": date(year, month, 1).strftime("%B %Y"),
    }
    name = f"budgets_{year}{month:02d}.{fmt}"
    if fmt == "xlsx":
        resp = send_file(exports.budgets_xlsx(status, meta), as_attachment=True,
                         download_name=name, mimetype=exports.XLSX_MIMETYPE)
    else:
        resp = send_file(exports.budgets_pdf(status, meta), as_attachment=True,
                         download_name=name, mimetype=PDF_MIMETYPE)
    _record_export(fid, "Budget", fmt, {"month": month, "year": year})
    return resp


@api.route("/export/formats", methods=["GET"])
@login_required
def export_formats():
    return jsonify({"transactions": ["csv", "xlsx", "pdf"], "budgets": ["xlsx", "pdf"]})
