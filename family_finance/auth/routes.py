# family_finance/auth/routes.py
# ------------------------------------------------------------
# Authentication routes (JSON):
# - POST /auth/register   -> new family, or join one with an invite token
# - POST /auth/login      -> start a session (Flask-Login cookie)
# - POST /auth/logout     -> end the session
# - GET  /auth/session    -> current user + family
#
# Notes:
# - Passwords hashed with werkzeug.security (User.set_password).
# - Emails are stored lower-cased.
# ------------------------------------------------------------
import logging

from flask import jsonify
from flask_login import current_user, login_required, login_user, logout_user

from ..errors import AuthenticationError, ConflictError
from ..extensions import db
from ..models import Role, User
from ..services.audit import log_action
from ..services.families import create_family_for, join_family, usable_invite
from ..services.notifications import send_welcome
from ..utils.helpers import json_body, parse_bool, parse_email, parse_str, validate_password
from . import auth  # blueprint: defined in family_finance/auth/__init__.py

logger = logging.getLogger(__name__)


def _session_payload(user: User) -> dict:
    return {
        "user": user.to_dict(),
        "family": user.family.to_dict() if user.family else None,
    }


@auth.route("/register", methods=["POST"])
def register():
    data = json_body()
    name = parse_str(data.get("name"), "name", min_len=2, max_len=100)
    email = parse_email(data.get("email"))
    password = validate_password(data.get("password"))
    token = (data.get("token") or "").strip() or None

    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError("Email is already registered", "EMAIL_EXISTS", field="email")

    invite = usable_invite(token, email) if token else None

    user = User(email=email, name=name, role=Role.MEMBER)
    user.set_password(password)
    db.session.add(user)
    db.session.flush()

    if invite:
        join_family(user, invite)
        family = invite.family
    else:
        family = create_family_for(user)

    log_action(user.id, family.id, "REGISTER", "User", user.id,
               {"email": email, "via_invite": bool(invite)})
    db.session.commit()

    login_user(user)
    logger.info(f"[auth] registered user={user.id} family={family.id} invite={bool(invite)}")
    send_welcome(user, family)
    return jsonify({"message": "Registration successful", **_session_payload(user)}), 201


@auth.route("/login", methods=["POST"])
def login():
    data = json_body()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    user = db.session.query(User).filter_by(email=email).first() if email else None
    if not user or not user.check_password(password):
        raise AuthenticationError("Invalid email or password", "INVALID_CREDENTIALS")

    login_user(user, remember=parse_bool(data.get("remember")))
    return jsonify({"message": "Login successful", **_session_payload(user)})


@auth.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"message": "Logged out"})


@auth.route("/session", methods=["GET"])
@login_required
def session_info():
    return jsonify(_session_payload(current_user))
