from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class BillingCycle(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"


BILLING_CYCLE_ENUM = SAEnum(
    BillingCycle,
    name="billingcycle",
    values_callable=lambda enum_cls: [member.value for member in enum_cls],
)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    name: Mapped[Optional[str]] = mapped_column(String(120))

    settings: Mapped[Optional["UserSettings"]] = relationship(
        "UserSettings", back_populates="user", uselist=False
    )


class UserSettings(Base, TimestampMixin):
    __tablename__ = "user_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"), nullable=False, unique=True
    )
    timezone: Mapped[Optional[str]] = mapped_column(String(64))
    subscription_alert_days: Mapped[Optional[int]] = mapped_column(Integer)
    default_currency: Mapped[Optional[str]] = mapped_column(String(3))

    user: Mapped["User"] = relationship("User", back_populates="settings")


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_category_user_name"),
    )


class Subscription(Base, TimestampMixin):
    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[Optional[str]] = mapped_column(String(3))
    billing_cycle: Mapped[BillingCycle] = mapped_column(
        BILLING_CYCLE_ENUM, nullable=False
    )
    next_renewal_date: Mapped[date] = mapped_column(Date, nullable=False)
    alert_days: Mapped[Optional[int]] = mapped_column(Integer)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id"), nullable=False
    )
    description: Mapped[Optional[str]] = mapped_column(Text)

    category: Mapped["Category"] = relationship("Category")
    user: Mapped["User"] = relationship("User")

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_subscription_amount_positive"),
        CheckConstraint(
            "alert_days IS NULL OR alert_days >= 0",
            name="ck_subscription_alert_days_positive",
        ),
        Index("ix_subscriptions_user_active", "user_id", "is_active"),
        Index("ix_subscriptions_renewal_date", "next_renewal_date"),
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    subscription_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("subscriptions.id")
    )
    is_projected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text)

    category: Mapped[Optional["Category"]] = relationship("Category")
    subscription: Mapped[Optional["Subscription"]] = relationship("Subscription")

    __table_args__ = (
        UniqueConstraint(
            "subscription_id",
            "date",
            name="uq_txn_subscription_date",
        ),
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_projected_date", "is_projected", "date"),
        CheckConstraint("amount_cents >= 0", name="ck_transactions_amount_positive"),
    )
