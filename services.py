from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload

from config import get_settings
from models import BillingCycle, Category, Subscription, Transaction, UserSettings
from periods import month_period, year_period
from quota import MAX_SUBSCRIPTIONS, PlanQuota, QuotaCheck
from recurrence import add_cycle, local_today
from renewals import RemovalMode, RenewalEngine
from schemas import IdsIn, SubscriptionIn, SubscriptionUpdate


logger = logging.getLogger(__name__)


class SubscriptionNotFound(ValueError):
    pass


class TransactionNotFound(ValueError):
    pass


class CategoryNotFound(ValueError):
    pass


class QuotaExceeded(ValueError):
    pass


def get_current_user_id() -> int:
    return 1


@dataclass(frozen=True)
class UserPreferences:
    timezone: str
    default_alert_days: Optional[int]
    default_currency: str


def get_user_preferences(session: Session, user_id: int) -> UserPreferences:
    stored = session.scalars(
        select(UserSettings).where(UserSettings.user_id == user_id)
    ).first()
    return preferences_from(stored)


def preferences_from(stored: Optional[UserSettings]) -> UserPreferences:
    settings = get_settings()
    if stored is None:
        return UserPreferences(
            timezone=settings.timezone,
            default_alert_days=settings.default_alert_days,
            default_currency=settings.default_currency,
        )
    return UserPreferences(
        timezone=stored.timezone or settings.timezone,
        default_alert_days=(
            stored.subscription_alert_days
            if stored.subscription_alert_days is not None
            else settings.default_alert_days
        ),
        default_currency=stored.default_currency or settings.default_currency,
    )


def subscription_to_dict(
    sub: Subscription, category_name: Optional[str] = None
) -> dict[str, object]:
    data: dict[str, object] = {
        "id": sub.id,
        "name": sub.name,
        "amount_cents": sub.amount_cents,
        "currency": sub.currency,
        "billing_cycle": sub.billing_cycle.value,
        "next_renewal_date": sub.next_renewal_date.isoformat(),
        "category_id": sub.category_id,
        "alert_days": sub.alert_days,
        "is_active": sub.is_active,
        "description": sub.description,
    }
    if category_name is not None:
        data["category_name"] = category_name
    return data


def _normalize_ids(ids: IdsIn | list[int]) -> list[int]:
    if isinstance(ids, IdsIn):
        return list(dict.fromkeys(ids.ids))
    return list(dict.fromkeys(ids))


class SubscriptionService:
    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        quota: Optional[QuotaCheck] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id if user_id is not None else get_current_user_id()
        self.quota = quota or PlanQuota()
        self.engine = RenewalEngine(session)

    def _preferences(self) -> UserPreferences:
        return get_user_preferences(self.session, self.user_id)

    def _check_category(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise CategoryNotFound("Category not found")
        return category

    def _check_due(self, sub: Subscription, today: Optional[date]) -> None:
        today = today or local_today()
        prefs = self._preferences()
        self.engine.check_due(sub, today, prefs.default_alert_days)

    def active_count(self) -> int:
        stmt = select(func.count(Subscription.id)).where(
            Subscription.user_id == self.user_id,
            Subscription.is_active.is_(True),
        )
        return self.session.execute(stmt).scalar_one() or 0

    def create(self, data: SubscriptionIn, today: Optional[date] = None) -> Subscription:
        proposed = self.active_count() + 1
        if not self.quota.allows(self.user_id, MAX_SUBSCRIPTIONS, proposed):
            raise QuotaExceeded("Subscription limit reached for current plan")
        self._check_category(data.category_id)

        sub = Subscription(
            user_id=self.user_id,
            name=data.name,
            amount_cents=data.amount_cents,
            currency=data.currency or self._preferences().default_currency,
            billing_cycle=data.billing_cycle,
            next_renewal_date=data.next_renewal_date,
            category_id=data.category_id,
            alert_days=data.alert_days,
            description=data.description,
            is_active=True,
        )
        self.session.add(sub)
        self.session.flush()
        self._check_due(sub, today)
        self.session.commit()
        self.session.refresh(sub)
        return sub

    def list_active(self) -> list[dict[str, object]]:
        stmt = (
            select(Subscription, Category.name)
            .outerjoin(Category, Subscription.category_id == Category.id)
            .where(
                Subscription.user_id == self.user_id,
                Subscription.is_active.is_(True),
            )
            .order_by(Subscription.next_renewal_date, Subscription.id)
        )
        return [
            subscription_to_dict(sub, category_name or "")
            for sub, category_name in self.session.execute(stmt).all()
        ]

    def get(self, subscription_id: int) -> Subscription:
        sub = self.session.get(Subscription, subscription_id)
        if not sub or sub.user_id != self.user_id:
            raise SubscriptionNotFound("Subscription not found")
        return sub

    def update(
        self,
        subscription_id: int,
        data: SubscriptionUpdate,
        today: Optional[date] = None,
    ) -> Subscription:
        sub = self.get(subscription_id)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("category_id") is not None and changes["category_id"] != sub.category_id:
            self._check_category(changes["category_id"])
        deactivating = changes.get("is_active") is False and sub.is_active
        for field, value in changes.items():
            if value is None and field not in ("alert_days", "description", "currency"):
                continue
            setattr(sub, field, value)
        self.session.flush()
        if deactivating:
            self.engine.deactivate(sub)
        else:
            self._check_due(sub, today)
        self.session.commit()
        self.session.refresh(sub)
        return sub

    def remove(self, subscription_id: int) -> dict[str, object]:
        sub = self.get(subscription_id)
        snapshot = subscription_to_dict(sub)
        mode = self.engine.remove(sub)
        self.session.commit()
        if mode == RemovalMode.deactivated:
            snapshot["is_active"] = False
            message = "Subscription deactivated (History preserved)"
        else:
            message = "Subscription deleted permanently"
        return {"message": message, "mode": mode.value, "subscription": snapshot}

    def _resolve_for_cancel(self, ids: list[int]) -> list[Subscription]:
        stmt = select(Subscription).where(
            Subscription.id.in_(ids), Subscription.user_id == self.user_id
        )
        subs = list(self.session.scalars(stmt).all())
        if subs:
            return subs

        owner_ids = self.session.scalars(
            select(Transaction.subscription_id)
            .where(
                Transaction.id.in_(ids),
                Transaction.user_id == self.user_id,
                Transaction.subscription_id.is_not(None),
            )
            .distinct()
        ).all()
        if not owner_ids:
            return []
        stmt = select(Subscription).where(
            Subscription.id.in_(owner_ids), Subscription.user_id == self.user_id
        )
        return list(self.session.scalars(stmt).all())

    def cancel(self, ids: IdsIn | list[int]) -> dict[str, object]:
        subs = self._resolve_for_cancel(_normalize_ids(ids))
        if not subs:
            raise SubscriptionNotFound("Subscription(s) not found")

        cancelled = 0
        for sub in subs:
            try:
                with self.session.begin_nested():
                    self.engine.deactivate(sub)
                cancelled += 1
            except Exception:
                logger.exception("cancel_failed: subscription_id=%s", sub.id)
        self.session.commit()
        return {
            "message": f"{cancelled} Subscription(s) cancelled and upcoming charges removed.",
            "cancelled": cancelled,
        }

    def confirm(self, ids: IdsIn | list[int]) -> dict[str, object]:
        stmt = (
            select(Transaction)
            .where(
                Transaction.id.in_(_normalize_ids(ids)),
                Transaction.user_id == self.user_id,
            )
            .order_by(Transaction.date, Transaction.id)
        )
        txns = self.session.scalars(stmt).all()
        if not txns:
            raise TransactionNotFound("Transaction(s) not found")

        confirmed = 0
        for txn in txns:
            try:
                with self.session.begin_nested():
                    if self.engine.confirm(txn):
                        confirmed += 1
            except Exception:
                logger.exception("confirm_failed: transaction_id=%s", txn.id)
        self.session.commit()
        return {
            "message": f"{confirmed} Transaction(s) confirmed and subscriptions renewed.",
            "confirmed": confirmed,
        }

    def transaction_details(self, ids: IdsIn | list[int]) -> list[dict[str, object]]:
        stmt = (
            select(Transaction)
            .options(
                joinedload(Transaction.subscription),
                joinedload(Transaction.category),
            )
            .where(
                Transaction.id.in_(_normalize_ids(ids)),
                Transaction.user_id == self.user_id,
            )
            .order_by(Transaction.date, Transaction.id)
        )
        txns = self.session.scalars(stmt).all()
        if not txns:
            raise TransactionNotFound("Transaction(s) not found")

        details = []
        for txn in txns:
            sub = txn.subscription
            details.append(
                {
                    "id": txn.id,
                    "name": txn.name,
                    "amount_cents": txn.amount_cents,
                    "date": txn.date.isoformat(),
                    "is_projected": txn.is_projected,
                    "category_name": txn.category.name if txn.category else None,
                    "subscription_id": txn.subscription_id,
                    "currency": sub.currency if sub else None,
                    "billing_cycle": sub.billing_cycle.value if sub else None,
                    "next_renewal_date": (
                        sub.next_renewal_date.isoformat() if sub else None
                    ),
                }
            )
        return details


# (per month, per year) multipliers applied to one billing amount
CYCLE_MULTIPLIERS: dict[BillingCycle, tuple[float, float]] = {
    BillingCycle.daily: (30, 365),
    BillingCycle.weekly: (4, 52),
    BillingCycle.monthly: (1, 12),
    BillingCycle.yearly: (1 / 12, 1),
}


class BreakdownService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id if user_id is not None else get_current_user_id()

    def _active(self) -> list[Subscription]:
        stmt = select(Subscription).where(
            Subscription.user_id == self.user_id,
            Subscription.is_active.is_(True),
        )
        return list(self.session.scalars(stmt).all())

    def breakdown(self, today: Optional[date] = None) -> dict[str, dict[str, int]]:
        today = today or local_today()
        month = month_period(today)
        year = year_period(today)
        subs = self._active()

        approx_monthly = 0.0
        approx_yearly = 0.0
        for sub in subs:
            per_month, per_year = CYCLE_MULTIPLIERS[sub.billing_cycle]
            approx_monthly += sub.amount_cents * per_month
            approx_yearly += sub.amount_cents * per_year

        rows = self.session.execute(
            select(Transaction.subscription_id, Transaction.date, Transaction.amount_cents)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.date >= year.start,
                Transaction.date <= year.end,
            )
        ).all()

        real_monthly = 0
        real_yearly = 0
        booked: set[tuple[int, date]] = set()
        for subscription_id, txn_date, amount_cents in rows:
            if subscription_id is not None:
                booked.add((subscription_id, txn_date))
            real_yearly += amount_cents
            if txn_date in month:
                real_monthly += amount_cents

        for sub in subs:
            occurrence = sub.next_renewal_date
            while occurrence <= year.end:
                if occurrence in year and (sub.id, occurrence) not in booked:
                    real_yearly += sub.amount_cents
                    if occurrence in month:
                        real_monthly += sub.amount_cents
                occurrence = add_cycle(occurrence, sub.billing_cycle)

        return {
            "approx": {"monthly": round(approx_monthly), "yearly": round(approx_yearly)},
            "real": {"monthly": real_monthly, "yearly": real_yearly},
        }
