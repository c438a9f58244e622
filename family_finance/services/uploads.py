# family_finance/services/uploads.py
from __future__ import annotations

import logging
import os
import re
import secrets
import time

from flask import current_app
from werkzeug.datastructures import FileStorage

from ..errors import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".pdf": "application/pdf",
}
IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".webp", ".gif"}


def sanitize_stem(filename: str) -> str:
    stem, _ = os.path.splitext(os.path.basename(filename or ""))
    stem = re.sub(r"[^a-z0-9]", "_", stem.lower())[:30]
    return stem or "file"


def family_dir(family_id: int) -> str:
    return os.path.join(current_app.config["UPLOAD_FOLDER"], str(family_id))


def save_upload(file: FileStorage | None, family_id: int, *, images_only: bool = False) -> dict:
    """Validate type and size, store under UPLOAD_FOLDER/<family_id>/, return name + url."""
    if file is None or not file.filename:
        raise ValidationError("No file provided", field="file")

    ext = os.path.splitext(file.filename)[1].lower()
    allowed = IMAGE_EXTS if images_only else set(ALLOWED_TYPES)
    if ext not in allowed:
        kinds = "JPEG, PNG, WebP or GIF" if images_only else "JPEG, PNG, WebP, GIF or PDF"
        raise ValidationError(f"Invalid file type. Allowed: {kinds}", "INVALID_FILE_TYPE", field="file")
    if file.mimetype and file.mimetype != "application/octet-stream" and file.mimetype != ALLOWED_TYPES[ext]:
        raise ValidationError("File content type does not match its extension", "INVALID_FILE_TYPE", field="file")

    data = file.read()
    limit = current_app.config["MAX_UPLOAD_BYTES"]
    if len(data) > limit:
        raise ValidationError(
            f"File too large (max {limit // (1024 * 1024)}MB)", "FILE_TOO_LARGE", field="file"
        )
    if not data:
        raise ValidationError("File is empty", field="file")

    name = f"{sanitize_stem(file.filename)}_{int(time.time())}_{secrets.token_hex(4)}{ext}"
    folder = family_dir(family_id)
    os.makedirs(folder, exist_ok=True)
    with open(os.path.join(folder, name), "wb") as fh:
        fh.write(data)

    logger.info(f"[upload] family={family_id} stored {name} ({len(data)} bytes)")
    return {"filename": name, "url": f"/uploads/{family_id}/{name}", "size": len(data)}
