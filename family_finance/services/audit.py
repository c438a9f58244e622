# family_finance/services/audit.py
from __future__ import annotations

from flask import has_request_context, request

from ..extensions import db
from ..models import AuditLog


def log_action(
    user_id: int,
    family_id: int | None,
    action: str,
    entity_type: str,
    entity_id: int | None = None,
    details: dict | None = None,
) -> AuditLog:
    """Stage an activity-log row in the caller's session (committed with the change it records)."""
    entry = AuditLog(
        user_id=user_id,
        family_id=family_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
    )
    if has_request_context():
        fwd = request.headers.get("X-Forwarded-For", "")
        entry.ip_address = (fwd.split(",")[0].strip() or request.remote_addr or None)
        entry.user_agent = request.headers.get("User-Agent")
    db.session.add(entry)
    return entry
