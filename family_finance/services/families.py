# family_finance/services/families.py
# ------------------------------------------------------------
# Household membership: family bootstrap on signup, invitations
# (create / validate / accept) and the last-admin guard.
# ------------------------------------------------------------
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4

from flask import current_app

from ..errors import BusinessRuleError, NotFoundError
from ..extensions import db
from ..models import (
    Category, Family, FamilyInvite, InviteStatus, Role, TxnType, User, Wallet, WalletType,
)

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    ("Makan & Minum", TxnType.EXPENSE, "🍽️", "Pengeluaran untuk makanan dan minuman"),
    ("Transport", TxnType.EXPENSE, "🚗", "Biaya transportasi dan bahan bakar"),
    ("Tagihan", TxnType.EXPENSE, "📄", "Tagihan rutin (listrik, air, internet, dll)"),
    ("Belanja", TxnType.EXPENSE, "🛒", "Belanja kebutuhan rumah tangga"),
    ("Kesehatan", TxnType.EXPENSE, "⚕️", "Biaya kesehatan dan obat-obatan"),
    ("Pendidikan", TxnType.EXPENSE, "📚", "Biaya sekolah dan pendidikan"),
    ("Hiburan", TxnType.EXPENSE, "🎬", "Hiburan dan rekreasi"),
    ("Lainnya", TxnType.EXPENSE, "📦", "Pengeluaran lainnya"),
    ("Gaji", TxnType.INCOME, "💰", "Gaji bulanan"),
    ("Bonus", TxnType.INCOME, "🎁", "Bonus dan THR"),
    ("Investasi", TxnType.INCOME, "📈", "Hasil investasi"),
]


def create_family_for(user: User) -> Family:
    """New household owned by `user`: admin role, a Cash wallet and the default categories."""
    family = Family(
        name=f"{user.name}'s Family",
        currency=current_app.config["DEFAULT_CURRENCY"],
    )
    db.session.add(family)
    db.session.flush()

    user.family_id = family.id
    user.role = Role.ADMIN

    db.session.add(Wallet(
        family_id=family.id, name="Cash", type=WalletType.CASH, balance=Decimal("0"),
        icon="💵", description="Default cash wallet",
    ))
    for name, ttype, icon, description in DEFAULT_CATEGORIES:
        db.session.add(Category(family_id=family.id, name=name, type=ttype, icon=icon, description=description))
    db.session.flush()
    logger.info(f"[family] created family={family.id} for user={user.id}")
    return family


# --------------------------
# Invitations
# --------------------------
def invite_link(token: str) -> str:
    return f"{current_app.config['APP_URL'].rstrip('/')}/register?token={token}"


def create_invite(sender: User, email: str) -> FamilyInvite:
    """Replace any pending invite for this email with a fresh token."""
    existing_user = db.session.query(User).filter_by(email=email).first()
    if existing_user:
        if existing_user.family_id == sender.family_id:
            raise BusinessRuleError("This user is already a member of your family", "ALREADY_MEMBER")
        raise BusinessRuleError("A user with this email already exists in another family", "USER_EXISTS")

    pending = (
        db.session.query(FamilyInvite)
        .filter_by(family_id=sender.family_id, email=email, status=InviteStatus.PENDING)
        .all()
    )
    for old in pending:
        db.session.delete(old)

    invite = FamilyInvite(
        family_id=sender.family_id,
        sender_id=sender.id,
        email=email,
        token=str(uuid4()),
        status=InviteStatus.PENDING,
        expires_at=datetime.utcnow() + timedelta(days=current_app.config["INVITE_TTL_DAYS"]),
    )
    db.session.add(invite)
    db.session.flush()
    return invite


def validate_token(token: str) -> tuple[FamilyInvite | None, str | None]:
    """Return (invite, None) when usable, else (invite_or_None, reason)."""
    invite = db.session.query(FamilyInvite).filter_by(token=token).first()
    if not invite:
        return None, "NOT_FOUND"
    if invite.status != InviteStatus.PENDING:
        return invite, "NOT_PENDING"
    if invite.is_expired():
        invite.status = InviteStatus.EXPIRED
        db.session.commit()
        return invite, "EXPIRED"
    return invite, None


_REASON_MESSAGES = {
    "NOT_FOUND": "Invitation not found",
    "NOT_PENDING": "Invitation has already been used or revoked",
    "EXPIRED": "Invitation has expired",
}


def usable_invite(token: str, email: str) -> FamilyInvite:
    invite, reason = validate_token(token)
    if reason == "NOT_FOUND":
        raise NotFoundError(_REASON_MESSAGES[reason], "INVITE_NOT_FOUND")
    if reason:
        raise BusinessRuleError(_REASON_MESSAGES[reason], f"INVITE_{reason}")
    if invite.email.lower() != email.lower():
        raise BusinessRuleError("This invitation was sent to a different email address", "EMAIL_MISMATCH")
    return invite


def join_family(user: User, invite: FamilyInvite) -> None:
    user.family_id = invite.family_id
    user.role = Role.MEMBER
    invite.status = InviteStatus.ACCEPTED
    invite.receiver_id = user.id


def admin_count(family_id: int) -> int:
    return db.session.query(User).filter_by(family_id=family_id, role=Role.ADMIN).count()
