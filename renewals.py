import logging
from datetime import date
from enum import Enum
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from ledger import ProjectionLedger
from models import Subscription, Transaction
from recurrence import add_cycle, classify_renewal


logger = logging.getLogger(__name__)


class RemovalMode(str, Enum):
    deactivated = "deactivated"
    deleted = "deleted"


class RenewalEngine:
    """State transitions for a single subscription and its projections.

    Nothing here commits; callers own the transaction boundary.
    """

    def __init__(self, session: Session, ledger: Optional[ProjectionLedger] = None) -> None:
        self.session = session
        self.ledger = ledger or ProjectionLedger(session)

    def check_due(
        self,
        subscription: Subscription,
        today: date,
        default_alert_days: Optional[int],
    ) -> Optional[Transaction]:
        if not subscription.is_active:
            return None
        window = classify_renewal(
            today,
            subscription.next_renewal_date,
            subscription.alert_days,
            default_alert_days,
        )
        if not window.needs_projection:
            return None
        return self.ledger.ensure_projection(
            subscription, subscription.next_renewal_date
        )

    def advance(self, subscription: Subscription) -> date:
        previous = subscription.next_renewal_date
        subscription.next_renewal_date = add_cycle(previous, subscription.billing_cycle)
        logger.info(
            "subscription_advanced: subscription=%s from=%s to=%s",
            subscription.name,
            previous,
            subscription.next_renewal_date,
        )
        return subscription.next_renewal_date

    def confirm(self, txn: Transaction) -> bool:
        """Turn a projection into a real transaction and advance its subscription.

        Returns False when the transaction was already confirmed, including by
        a concurrent request that flipped the row after it was loaded.
        """
        if not txn.is_projected:
            return False
        result = self.session.execute(
            update(Transaction)
            .where(Transaction.id == txn.id, Transaction.is_projected.is_(True))
            .values(is_projected=False)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            set_committed_value(txn, "is_projected", False)
            return False
        if txn.subscription_id is not None:
            subscription = self.session.get(
                Subscription,
                txn.subscription_id,
                with_for_update=True,
                populate_existing=True,
            )
            if subscription is not None:
                self.advance(subscription)
        self.session.flush()
        set_committed_value(txn, "is_projected", False)
        return True

    def deactivate(self, subscription: Subscription) -> int:
        subscription.is_active = False
        self.session.flush()
        purged = self.ledger.delete_future_projections(subscription.id)
        logger.info(
            "subscription_deactivated: id=%s projections_purged=%s",
            subscription.id,
            purged,
        )
        return purged

    def remove(self, subscription: Subscription) -> RemovalMode:
        if self.ledger.has_real_history(subscription.id):
            self.deactivate(subscription)
            return RemovalMode.deactivated

        purged = self.ledger.delete_all_for_subscription(subscription.id)
        self.session.delete(subscription)
        self.session.flush()
        logger.info(
            "subscription_deleted: id=%s transactions_purged=%s",
            subscription.id,
            purged,
        )
        return RemovalMode.deleted
