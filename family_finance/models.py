from __future__ import annotations
from datetime import datetime, date
from decimal import Decimal
from enum import Enum

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from sqlalchemy import text
from .extensions import db


def _money(value) -> float:
    return float(value or 0)


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value else None


# --------------------------
# Enums (Python)
# --------------------------
class Role(str, Enum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


class TxnType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class WalletType(str, Enum):
    CASH = "CASH"
    BANK = "BANK"
    E_WALLET = "E_WALLET"
    INVESTMENT = "INVESTMENT"


class RecurringFrequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class RecurringStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# rules that may still create transactions
LIVE_RECURRING = (RecurringStatus.ACTIVE, RecurringStatus.PAUSED)


class GoalStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class InviteStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class AssetType(str, Enum):
    PROPERTY = "PROPERTY"
    VEHICLE = "VEHICLE"
    SAVINGS = "SAVINGS"
    INVESTMENT = "INVESTMENT"
    OTHER = "OTHER"


class LiabilityType(str, Enum):
    MORTGAGE = "MORTGAGE"
    CAR_LOAN = "CAR_LOAN"
    CREDIT_CARD = "CREDIT_CARD"
    PERSONAL_LOAN = "PERSONAL_LOAN"
    OTHER = "OTHER"


class NotificationType(str, Enum):
    DUE_DATE_REMINDER = "DUE_DATE_REMINDER"
    BUDGET_ALERT = "BUDGET_ALERT"
    GOAL_MILESTONE = "GOAL_MILESTONE"
    PAYMENT_DUE = "PAYMENT_DUE"
    WEEKLY_SUMMARY = "WEEKLY_SUMMARY"
    MONTHLY_SUMMARY = "MONTHLY_SUMMARY"
    SYSTEM = "SYSTEM"


class NotificationStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
    READ = "READ"


class _Timestamps:
    created_at = db.Column(db.DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


# --------------------------
# Families & users
# --------------------------
class Family(_Timestamps, db.Model):
    __tablename__ = "families"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)

    currency = db.Column(db.String(3), nullable=False, server_default="IDR")
    timezone = db.Column(db.String(64), nullable=False, server_default="Asia/Jakarta")
    language = db.Column(db.String(5), nullable=False, server_default="id")
    date_format = db.Column(db.String(16), nullable=False, server_default="DD/MM/YYYY")

    # notification preferences
    budget_alerts = db.Column(db.Boolean, nullable=False, server_default=text("true"))
    goal_reminders = db.Column(db.Boolean, nullable=False, server_default=text("true"))
    weekly_report = db.Column(db.Boolean, nullable=False, server_default=text("false"))
    monthly_report = db.Column(db.Boolean, nullable=False, server_default=text("true"))
    email_notif = db.Column(db.Boolean, nullable=False, server_default=text("true"))
    default_budget_alert = db.Column(db.Numeric(5, 2), server_default=text("80"))

    members = db.relationship("User", back_populates="family", lazy="selectin")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "currency": self.currency,
            "timezone": self.timezone,
            "language": self.language,
            "date_format": self.date_format,
            "budget_alerts": self.budget_alerts,
            "goal_reminders": self.goal_reminders,
            "weekly_report": self.weekly_report,
            "monthly_report": self.monthly_report,
            "email_notif": self.email_notif,
            "default_budget_alert": (
                float(self.default_budget_alert) if self.default_budget_alert is not None else None
            ),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class User(UserMixin, _Timestamps, db.Model):
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    email = db.Column(db.String(255), unique=True, index=True, nullable=False)
    name = db.Column(db.String(120), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.Enum(Role, name="role_enum", native_enum=False), nullable=False, default=Role.MEMBER)
    avatar = db.Column(db.Text)
    family_id = db.Column(db.Integer, db.ForeignKey("families.id"), index=True)

    family = db.relationship("Family", back_populates="members")

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role.value,
            "avatar": self.avatar,
            "family_id": self.family_id,
            "created_at": _iso(self.created_at),
        }

    def brief(self) -> dict:
        return {"id": self.id, "name": self.name, "avatar": self.avatar}


# --------------------------
# Wallets & categories
# --------------------------
class Wallet(_Timestamps, db.Model):
    __tablename__ = "wallets"
    __table_args__ = (
        db.Index("ix_wallets_family_name", "family_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    family_id = db.Column(db.Integer, db.ForeignKey("families.id"), nullable=False, index=True)
    name = db.Column(db.String(50), nullable=False)
    type = db.Column(db.Enum(WalletType, name="wallet_type_enum", native_enum=False), nullable=False)
    balance = db.Column(db.Numeric(14, 2), nullable=False, server_default=text("0"))
    description = db.Column(db.Text)
    icon = db.Column(db.String(16))
    color = db.Column(db.String(7))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "balance": _money(self.balance),
            "description": self.description,
            "icon": self.icon,
            "color": self.color,
        }


class Category(_Timestamps, db.Model):
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("family_id", "name", "type", name="uq_categories_family_name_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    family_id = db.Column(db.Integer, db.ForeignKey("families.id"), nullable=False, index=True)
    name = db.Column(db.String(50), nullable=False)
    type = db.Column(db.Enum(TxnType, name="txn_type_enum", native_enum=False), nullable=False)
    icon = db.Column(db.String(16))
    color = db.Column(db.String(7))
    description = db.Column(db.Text)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "icon": self.icon,
            "color": self.color,
            "description": self.description,
        }

    def brief(self) -> dict:
        return {"id": self.id, "name": self.name, "icon": self.icon, "type": self.type.value}


# --------------------------
# Transactions
# --------------------------
class Transaction(_Timestamps, db.Model):
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_txn_family_date", "family_id", "date"),
        db.Index("ix_txn_family_type_date", "family_id", "type", "date"),
        db.Index("ix_txn_family_category_date", "family_id", "category_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    family_id = db.Column(db.Integer, db.ForeignKey("families.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    wallet_id = db.Column(db.Integer, db.ForeignKey("wallets.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"))

    type = db.Column(db.Enum(TxnType, name="txn_type_enum", native_enum=False), nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False)  # always positive; type carries the sign
    description = db.Column(db.String(500), nullable=False)
    notes = db.Column(db.Text)
    date = db.Column(db.Date, nullable=False)
    attachment = db.Column(db.Text)

    # both legs of a wallet transfer share this id (uuid4 as text for SQLite portability)
    transfer_group_id = db.Column(db.String(36), index=True)
    recurring_id = db.Column(db.Integer, db.ForeignKey("recurring_transactions.id"))

    user = db.relationship("User", lazy="joined")
    wallet = db.relationship("Wallet", lazy="joined")
    category = db.relationship("Category", lazy="joined")

    @property
    def is_transfer(self) -> bool:
        return self.transfer_group_id is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "amount": _money(self.amount),
            "description": self.description,
            "notes": self.notes,
            "date": _iso(self.date),
            "attachment": self.attachment,
            "transfer_group_id": self.transfer_group_id,
            "recurring_id": self.recurring_id,
            "category": self.category.brief() if self.category else None,
            "wallet": {"id": self.wallet.id, "name": self.wallet.name} if self.wallet else None,
            "user": self.user.brief() if self.user else None,
            "created_at": _iso(self.created_at),
        }


# --------------------------
# Budgets (one per family/category/month)
# --------------------------
class Budget(_Timestamps, db.Model):
    __tablename__ = "budgets"
    __table_args__ = (
        db.UniqueConstraint("family_id", "category_id", "year", "month", name="uq_budget_family_cat_month"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    family_id = db.Column(db.Integer, db.ForeignKey("families.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    year = db.Column(db.Integer, nullable=False)
    month = db.Column(db.Integer, nullable=False)  # 1–12
    amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    alert_threshold = db.Column(db.Numeric(5, 2))  # percent; falls back to family default

    category = db.relationship("Category", lazy="joined")
    created_by = db.relationship("User", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category_id": self.category_id,
            "category": self.category.brief() if self.category else None,
            "year": self.year,
            "month": self.month,
            "amount": _money(self.amount),
            "alert_threshold": float(self.alert_threshold) if self.alert_threshold is not None else None,
            "created_by": self.created_by.name if self.created_by else None,
            "updated_at": _iso(self.updated_at),
        }


# --------------------------
# Recurring transactions
# --------------------------
class RecurringTransaction(_Timestamps, db.Model):
    __tablename__ = "recurring_transactions"
    __table_args__ = (
        db.Index("ix_recurring_status_next", "status", "next_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    family_id = db.Column(db.Integer, db.ForeignKey("families.id"), nullable=False, index=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    # what to create; wallet is only empty on finished rules whose wallet was deleted
    wallet_id = db.Column(db.Integer, db.ForeignKey("wallets.id", ondelete="SET NULL"))
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id", ondelete="SET NULL"))
    name = db.Column(db.String(100), nullable=False)
    type = db.Column(db.Enum(TxnType, name="txn_type_enum", native_enum=False), nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    description = db.Column(db.String(500))
    notes = db.Column(db.Text)

    # schedule
    frequency = db.Column(
        db.Enum(RecurringFrequency, name="recurring_frequency_enum", native_enum=False), nullable=False
    )
    start_date = db.Column(db.Date, nullable=False)  # first occurrence (inclusive)
    end_date = db.Column(db.Date)                    # optional hard stop
    next_date = db.Column(db.Date, nullable=False)
    last_run_date = db.Column(db.Date)
    day_of_month = db.Column(db.Integer)  # 1..31, clamped to month length
    day_of_week = db.Column(db.Integer)   # 0=Mon..6=Sun
    status = db.Column(
        db.Enum(RecurringStatus, name="recurring_status_enum", native_enum=False),
        nullable=False,
        default=RecurringStatus.ACTIVE,
    )

    wallet = db.relationship("Wallet", lazy="joined")
    category = db.relationship("Category", lazy="joined")
    created_by = db.relationship("User", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "amount": _money(self.amount),
            "description": self.description,
            "notes": self.notes,
            "frequency": self.frequency.value,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "next_date": _iso(self.next_date),
            "last_run_date": _iso(self.last_run_date),
            "day_of_month": self.day_of_month,
            "day_of_week": self.day_of_week,
            "status": self.status.value,
            "category": self.category.brief() if self.category else None,
            "wallet": {"id": self.wallet.id, "name": self.wallet.name} if self.wallet else None,
            "created_by": self.created_by.brief() if self.created_by else None,
        }


class TransactionTemplate(_Timestamps, db.Model):
    __tablename__ = "transaction_templates"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    family_id = db.Column(db.Integer, db.ForeignKey("families.id"), nullable=False, index=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    wallet_id = db.Column(db.Integer, db.ForeignKey("wallets.id", ondelete="SET NULL"))
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id", ondelete="SET NULL"))

    name = db.Column(db.String(100), nullable=False)
    type = db.Column(db.Enum(TxnType, name="txn_type_enum", native_enum=False), nullable=False)
    amount = db.Column(db.Numeric(14, 2))  # optional; supplied at use time when empty
    description = db.Column(db.String(500))
    notes = db.Column(db.Text)

    usage_count = db.Column(db.Integer, nullable=False, server_default=text("0"), default=0)
    last_used_at = db.Column(db.DateTime(timezone=True))

    wallet = db.relationship("Wallet", lazy="joined")
    category = db.relationship("Category", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "amount": float(self.amount) if self.amount is not None else None,
            "description": self.description,
            "notes": self.notes,
            "usage_count": self.usage_count,
            "last_used_at": _iso(self.last_used_at),
            "category": self.category.brief() if self.category else None,
            "wallet": {"id": self.wallet.id, "name": self.wallet.name} if self.wallet else None,
        }


# --------------------------
# Goals
# --------------------------
class Goal(_Timestamps, db.Model):
    __tablename__ = "goals"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    family_id = db.Column(db.Integer, db.ForeignKey("families.id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    target_amount = db.Column(db.Numeric(14, 2), nullable=False)
    current_amount = db.Column(db.Numeric(14, 2), nullable=False, server_default=text("0"), default=0)
    deadline = db.Column(db.Date)
    status = db.Column(
        db.Enum(GoalStatus, name="goal_status_enum", native_enum=False), nullable=False, default=GoalStatus.ACTIVE
    )

    contributions = db.relationship(
        "GoalContribution",
        back_populates="goal",
        cascade="all, delete-orphan",
        order_by="GoalContribution.date.desc()",
        lazy="selectin",
    )

    @property
    def progress(self) -> float:
        target = Decimal(self.target_amount or 0)
        if target <= 0:
            return 0.0
        pct = min(Decimal(self.current_amount or 0) / target * 100, Decimal(100))
        return round(float(pct), 2)

    def days_left(self, today: date | None = None) -> int | None:
        if not self.deadline:
            return None
        return (self.deadline - (today or date.today())).days

    def to_dict(self, with_contributions: bool = True) -> dict:
        out = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "target_amount": _money(self.target_amount),
            "current_amount": _money(self.current_amount),
            "deadline": _iso(self.deadline),
            "status": self.status.value,
            "progress": self.progress,
            "days_left": self.days_left(),
            "contribution_count": len(self.contributions),
            "created_at": _iso(self.created_at),
        }
        if with_contributions:
            out["contributions"] = [c.to_dict() for c in self.contributions]
        return out


class GoalContribution(_Timestamps, db.Model):
    __tablename__ = "goal_contributions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    goal_id = db.Column(db.Integer, db.ForeignKey("goals.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    description = db.Column(db.Text)
    date = db.Column(db.Date, nullable=False, default=date.today)

    goal = db.relationship("Goal", back_populates="contributions")
    user = db.relationship("User", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "goal_id": self.goal_id,
            "amount": _money(self.amount),
            "description": self.description,
            "date": _iso(self.date),
            "user": self.user.brief() if self.user else None,
        }


# --------------------------
# Family invitations
# --------------------------
class FamilyInvite(_Timestamps, db.Model):
    __tablename__ = "family_invites"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    family_id = db.Column(db.Integer, db.ForeignKey("families.id"), nullable=False, index=True)
    sender_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    receiver_id = db.Column(db.Integer, db.ForeignKey("users.id"))
    email = db.Column(db.String(255), nullable=False, index=True)
    token = db.Column(db.String(36), nullable=False, unique=True)
    status = db.Column(
        db.Enum(InviteStatus, name="invite_status_enum", native_enum=False),
        nullable=False,
        default=InviteStatus.PENDING,
    )
    expires_at = db.Column(db.DateTime, nullable=False)

    family = db.relationship("Family", lazy="joined")
    sender = db.relationship("User", foreign_keys=[sender_id], lazy="joined")

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.utcnow()) > self.expires_at

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "status": self.status.value,
            "expires_at": _iso(self.expires_at),
            "family": {"id": self.family.id, "name": self.family.name} if self.family else None,
            "sender": self.sender.brief() if self.sender else None,
            "created_at": _iso(self.created_at),
        }


# --------------------------
# Net worth: assets & liabilities
# --------------------------
class Asset(_Timestamps, db.Model):
    __tablename__ = "assets"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    family_id = db.Column(db.Integer, db.ForeignKey("families.id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    type = db.Column(db.Enum(AssetType, name="asset_type_enum", native_enum=False), nullable=False)
    value = db.Column(db.Numeric(14, 2), nullable=False)
    description = db.Column(db.Text)
    acquisition_date = db.Column(db.Date)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "value": _money(self.value),
            "description": self.description,
            "acquisition_date": _iso(self.acquisition_date),
        }


class Liability(_Timestamps, db.Model):
    __tablename__ = "liabilities"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    family_id = db.Column(db.Integer, db.ForeignKey("families.id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    type = db.Column(db.Enum(LiabilityType, name="liability_type_enum", native_enum=False), nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    remaining_amount = db.Column(db.Numeric(14, 2), nullable=False)
    interest_rate = db.Column(db.Numeric(6, 3))
    creditor = db.Column(db.String(100))
    due_date = db.Column(db.Date)
    start_date = db.Column(db.Date)
    description = db.Column(db.Text)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "amount": _money(self.amount),
            "remaining_amount": _money(self.remaining_amount),
            "paid_amount": _money(Decimal(self.amount or 0) - Decimal(self.remaining_amount or 0)),
            "interest_rate": float(self.interest_rate) if self.interest_rate is not None else None,
            "creditor": self.creditor,
            "due_date": _iso(self.due_date),
            "start_date": _iso(self.start_date),
            "description": self.description,
        }


# --------------------------
# Activity log
# --------------------------
class AuditLog(db.Model):
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_family_created", "family_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    family_id = db.Column(db.Integer, db.ForeignKey("families.id"), index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    action = db.Column(db.String(50), nullable=False)
    entity_type = db.Column(db.String(50), nullable=False)
    entity_id = db.Column(db.Integer)
    details = db.Column(db.JSON)
    ip_address = db.Column(db.String(64))
    user_agent = db.Column(db.Text)
    created_at = db.Column(db.DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    user = db.relationship("User", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "details": self.details,
            "user": (
                {"id": self.user.id, "name": self.user.name, "email": self.user.email}
                if self.user else None
            ),
            "created_at": _iso(self.created_at),
        }


# --------------------------
# In-app notifications
# --------------------------
class Notification(db.Model):
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notification_user_status", "user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    family_id = db.Column(db.Integer, db.ForeignKey("families.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = db.Column(db.Enum(NotificationType, name="notification_type_enum", native_enum=False), nullable=False)
    status = db.Column(
        db.Enum(NotificationStatus, name="notification_status_enum", native_enum=False),
        nullable=False,
        default=NotificationStatus.SENT,
    )
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    data = db.Column(db.JSON)

    # what the notification is about, e.g. ("liability", 3)
    reference_type = db.Column(db.String(30))
    reference_id = db.Column(db.Integer)

    email_sent = db.Column(db.Boolean, nullable=False, server_default=text("false"), default=False)
    email_sent_at = db.Column(db.DateTime(timezone=True))
    read_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime(timezone=True), default=datetime.utcnow, nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type.value,
            "status": self.status.value,
            "title": self.title,
            "message": self.message,
            "data": self.data,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "email_sent": self.email_sent,
            "read": self.read_at is not None,
            "read_at": _iso(self.read_at),
            "created_at": _iso(self.created_at),
        }
