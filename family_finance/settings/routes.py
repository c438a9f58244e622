# family_finance/settings/routes.py
from flask import jsonify, request
from flask_login import current_user, login_required

from ..errors import ValidationError
from ..extensions import db
from ..utils.helpers import json_body, parse_str, validate_password
from . import settings


@settings.route("/profile", methods=["GET", "PUT"])
@login_required
def profile():
    """GET the profile; PUT {name} updates it."""
    if request.method == "PUT":
        data = json_body()
        current_user.name = parse_str(data.get("name"), "name", min_len=2, max_len=100)
        db.session.commit()
    return jsonify({"user": current_user.to_dict()})


@settings.route("/password", methods=["POST"])
@login_required
def change_password():
    data = json_body()
    current_pw = data.get("current_password") or ""
    new_pw = data.get("new_password") or ""
    new_pw2 = data.get("new_password_confirm") or ""

    if not current_user.check_password(current_pw):
        raise ValidationError("Current password is incorrect", "INVALID_PASSWORD", field="current_password")
    validate_password(new_pw, "new_password")
    if new_pw != new_pw2:
        raise ValidationError("Passwords do not match", field="new_password_confirm")

    current_user.set_password(new_pw)
    db.session.commit()
    return jsonify({"message": "Your password has been changed."})
