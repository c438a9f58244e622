# family_finance/uploads.py
# Serves stored attachments/avatars to members of the owning family only.
from flask import Blueprint, send_from_directory
from flask_login import current_user, login_required

from .errors import AuthorizationError
from .services.uploads import family_dir

uploads = Blueprint("uploads", __name__)


@uploads.route("/uploads/<int:family_id>/<path:filename>", methods=["GET"])
@login_required
def serve_upload(family_id: int, filename: str):
    if current_user.family_id != family_id:
        raise AuthorizationError("You do not have access to this file")
    return send_from_directory(family_dir(family_id), filename)
