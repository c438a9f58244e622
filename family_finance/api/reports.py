# family_finance/api/reports.py
from datetime import date

from flask import jsonify, request
from flask_login import current_user, login_required

from ..errors import ValidationError
from ..services.reports import dashboard_stats, monthly_report, yearly_report
from ..utils.helpers import family_id, month_bounds, parse_date, parse_int
from . import api


@api.route("/dashboard/stats", methods=["GET"])
@login_required
def dashboard():
    family_id()
    today = date.today()
    default_start, default_end = month_bounds(today.year, today.month)
    start = parse_date(request.args.get("start_date"), "start_date", required=False) or default_start
    end = parse_date(request.args.get("end_date"), "end_date", required=False) or default_end
    if end < start:
        raise ValidationError("end_date must be on or after start_date", field="end_date")
    return jsonify(dashboard_stats(current_user.family, start, end, today=today))


@api.route("/reports/monthly", methods=["GET"])
@login_required
def report_monthly():
    family_id()
    today = date.today()
    year = parse_int(request.args.get("year"), "year", min_value=2000, max_value=2100, required=False) or today.year
    month = parse_int(request.args.get("month"), "month", min_value=1, max_value=12, required=False) or today.month
    return jsonify(monthly_report(current_user.family, year, month))


@api.route("/reports/yearly", methods=["GET"])
@login_required
def report_yearly():
    family_id()
    today = date.today()
    year = parse_int(request.args.get("year"), "year", min_value=2000, max_value=2100, required=False) or today.year
    return jsonify(yearly_report(current_user.family, year, today=today))
