# family_finance/api/uploads.py
from flask import jsonify, request
from flask_login import current_user, login_required

from ..errors import ValidationError
from ..extensions import db
from ..services.uploads import save_upload
from ..utils.helpers import family_id
from . import api


@api.route("/upload", methods=["POST"])
@login_required
def upload():
    """multipart: file + type=avatar|attachment. Avatars are set on the profile."""
    fid = family_id()
    kind = (request.form.get("type") or "").strip().lower()
    if kind not in ("avatar", "attachment"):
        raise ValidationError('Invalid upload type. Use "avatar" or "attachment"', field="type")

    stored = save_upload(request.files.get("file"), fid, images_only=(kind == "avatar"))
    if kind == "avatar":
        current_user.avatar = stored["url"]
        db.session.commit()
    return jsonify({"success": True, **stored}), 201
