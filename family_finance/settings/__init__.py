# family_finance/settings/__init__.py
from flask import Blueprint

settings = Blueprint("settings", __name__, url_prefix="/settings")

from . import routes  # noqa: E402,F401
