# family_finance/api/__init__.py
# ---------------------------------
# Single blueprint named `api`, mounted at /api by create_app().
# Import the feature modules at the bottom so their routes register.

from flask import Blueprint

api = Blueprint("api", __name__)

# Route modules (keep these imports at the end)
from . import (  # noqa: E402,F401
    wallets, categories, transactions, budgets, recurring, templates, goals,
    family, assets, liabilities, reports, exports, cron, notifications, uploads,
)
