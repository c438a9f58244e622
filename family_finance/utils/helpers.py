# family_finance/utils/helpers.py
# ------------------------------------------------------------
# Request parsing helpers shared by the API routes. Each parser raises
# ValidationError (-> 400 JSON) with the offending field name.
# ------------------------------------------------------------
from __future__ import annotations

import re
from calendar import monthrange
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from functools import wraps
from typing import Any, TypeVar

from flask import request
from flask_login import current_user

from ..errors import AuthorizationError, ValidationError

E = TypeVar("E", bound=Enum)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
TWO_PLACES = Decimal("0.01")


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_amount(
    value: Any,
    field: str = "amount",
    *,
    allow_zero: bool = False,
    max_value: Decimal | int | None = None,
    required: bool = True,
) -> Decimal | None:
    if _blank(value):
        if required:
            raise ValidationError(f"{field} is required", field=field)
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field=field)
    try:
        amt = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number", field=field)
    if not amt.is_finite():
        raise ValidationError(f"{field} must be a number", field=field)
    if allow_zero:
        if amt < 0:
            raise ValidationError(f"{field} cannot be negative", field=field)
    elif amt <= 0:
        raise ValidationError(f"{field} must be greater than 0", field=field)
    if max_value is not None and amt > Decimal(max_value):
        raise ValidationError(f"{field} is too large", field=field)
    return amt.quantize(TWO_PLACES)


def parse_date(value: Any, field: str = "date", *, required: bool = True) -> date | None:
    """Accept YYYY-MM-DD or a full ISO timestamp."""
    if _blank(value):
        if required:
            raise ValidationError(f"{field} is required", field=field)
        return None
    s = str(value).strip()
    try:
        return date.fromisoformat(s[:10])
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
    except ValueError:
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD)", field=field)


def parse_int(
    value: Any,
    field: str,
    *,
    min_value: int | None = None,
    max_value: int | None = None,
    required: bool = True,
) -> int | None:
    if _blank(value):
        if required:
            raise ValidationError(f"{field} is required", field=field)
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", field=field)
    try:
        n = int(str(value).strip())
    except ValueError:
        raise ValidationError(f"{field} must be an integer", field=field)
    if min_value is not None and n < min_value:
        raise ValidationError(f"{field} must be at least {min_value}", field=field)
    if max_value is not None and n > max_value:
        raise ValidationError(f"{field} must be at most {max_value}", field=field)
    return n


def parse_enum(enum_cls: type[E], value: Any, field: str, *, required: bool = True) -> E | None:
    if _blank(value):
        if required:
            raise ValidationError(f"{field} is required", field=field)
        return None
    try:
        return enum_cls(str(value).strip().upper())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}", field=field)


def parse_str(
    value: Any,
    field: str,
    *,
    min_len: int = 1,
    max_len: int | None = None,
    required: bool = True,
) -> str | None:
    if _blank(value):
        if required:
            raise ValidationError(f"{field} is required", field=field)
        return None
    s = str(value).strip()
    if len(s) < min_len:
        raise ValidationError(f"{field} must be at least {min_len} characters", field=field)
    if max_len is not None and len(s) > max_len:
        raise ValidationError(f"{field} must be at most {max_len} characters", field=field)
    return s


def parse_email(value: Any, field: str = "email") -> str:
    email = (str(value or "")).strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError("Invalid email address", field=field)
    return email


def validate_password(password: Any, field: str = "password") -> str:
    pw = password if isinstance(password, str) else ""
    if len(pw) < 8:
        raise ValidationError("Password must be at least 8 characters", field=field)
    if len(pw) > 100:
        raise ValidationError("Password must be at most 100 characters", field=field)
    if not (re.search(r"[a-z]", pw) and re.search(r"[A-Z]", pw) and re.search(r"\d", pw)):
        raise ValidationError(
            "Password must contain an uppercase letter, a lowercase letter and a digit", field=field
        )
    return pw


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


def month_bounds(year: int, month: int) -> tuple[date, date]:
    return date(year, month, 1), date(year, month, monthrange(year, month)[1])


def prev_month(y: int, m: int) -> tuple[int, int]:
    return (y - 1, 12) if m == 1 else (y, m - 1)


def page_args(default_limit: int = 50, max_limit: int = 100) -> tuple[int, int]:
    page = parse_int(request.args.get("page"), "page", min_value=1, required=False) or 1
    limit = parse_int(request.args.get("limit"), "limit", min_value=1, required=False) or default_limit
    return page, min(limit, max_limit)


def family_id() -> int:
    """Family of the logged-in user; members removed from a family have none."""
    fid = getattr(current_user, "family_id", None)
    if not fid:
        raise AuthorizationError("You are not a member of any family", "NO_FAMILY")
    return fid


def admin_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if not getattr(current_user, "is_admin", False):
            raise AuthorizationError("Only family admins can do this")
        return view(*args, **kwargs)
    return wrapper
