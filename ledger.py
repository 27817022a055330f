import logging
from datetime import date
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import Subscription, Transaction, User, UserSettings


logger = logging.getLogger(__name__)

PROJECTION_NOTE = "Auto-generated renewal based on subscription"


class ProjectionLedger:
    """Creates, finds and purges the transactions owned by subscriptions.

    At most one transaction exists per (subscription, date); the unique
    constraint ``uq_txn_subscription_date`` backs the check done here.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def find(self, subscription_id: int, occurrence_date: date) -> Optional[Transaction]:
        stmt = (
            select(Transaction)
            .where(
                Transaction.subscription_id == subscription_id,
                Transaction.date == occurrence_date,
            )
            .limit(1)
        )
        return self.session.scalars(stmt).first()

    def ensure_projection(
        self, subscription: Subscription, occurrence_date: date
    ) -> Optional[Transaction]:
        if self.find(subscription.id, occurrence_date) is not None:
            return None

        txn = Transaction(
            user_id=subscription.user_id,
            name=subscription.name,
            amount_cents=subscription.amount_cents,
            date=occurrence_date,
            category_id=subscription.category_id,
            subscription_id=subscription.id,
            is_projected=True,
            note=PROJECTION_NOTE,
        )
        try:
            with self.session.begin_nested():
                self.session.add(txn)
                self.session.flush()
        except IntegrityError:
            logger.info(
                "projection_exists: subscription_id=%s date=%s",
                subscription.id,
                occurrence_date,
            )
            return None
        logger.info(
            "projection_created: subscription=%s date=%s amount_cents=%s",
            subscription.name,
            occurrence_date,
            subscription.amount_cents,
        )
        return txn

    def delete_future_projections(self, subscription_id: int) -> int:
        result = self.session.execute(
            delete(Transaction).where(
                Transaction.subscription_id == subscription_id,
                Transaction.is_projected.is_(True),
            )
        )
        return result.rowcount or 0

    def delete_all_for_subscription(self, subscription_id: int) -> int:
        result = self.session.execute(
            delete(Transaction).where(Transaction.subscription_id == subscription_id)
        )
        return result.rowcount or 0

    def has_real_history(self, subscription_id: int) -> bool:
        stmt = select(func.count(Transaction.id)).where(
            Transaction.subscription_id == subscription_id,
            Transaction.is_projected.is_(False),
        )
        return (self.session.execute(stmt).scalar_one() or 0) > 0

    def pending_projections(
        self, today: date
    ) -> list[tuple[Transaction, User, Optional[Subscription], Optional[UserSettings]]]:
        stmt = (
            select(Transaction, User, Subscription, UserSettings)
            .join(User, Transaction.user_id == User.id)
            .outerjoin(Subscription, Transaction.subscription_id == Subscription.id)
            .outerjoin(UserSettings, UserSettings.user_id == User.id)
            .where(
                Transaction.is_projected.is_(True),
                Transaction.date <= today,
            )
            .order_by(Transaction.date, Transaction.id)
        )
        return [tuple(row) for row in self.session.execute(stmt).all()]
