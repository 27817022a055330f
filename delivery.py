"""Hourly renewal sweep.

Each run materializes projections for subscriptions inside their alert window,
collects projections still waiting for confirmation, and hands one batch per
kind to the notifier for every user whose local time matches the delivery hour.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from clock import TimezoneResolutionError, is_delivery_time, utc_now
from config import get_settings
from ledger import ProjectionLedger
from models import Subscription, User, UserSettings
from notifications import (
    NotificationItem,
    NotificationKind,
    Notifier,
    PendingConfirmation,
    Recipient,
    UpcomingRenewal,
)
from recurrence import RenewalState, classify_projection, classify_renewal, local_today
from services import preferences_from


logger = logging.getLogger(__name__)


@dataclass
class UserBatch:
    recipient: Recipient
    timezone: Optional[str]
    upcoming: list[UpcomingRenewal] = field(default_factory=list)
    confirm: list[PendingConfirmation] = field(default_factory=list)


@dataclass
class SweepReport:
    today: date
    projections_created: int = 0
    upcoming_sent: int = 0
    confirm_sent: int = 0
    skipped_users: list[int] = field(default_factory=list)


class RenewalSweep:
    def __init__(
        self,
        session: Session,
        notifier: Notifier,
        ledger: Optional[ProjectionLedger] = None,
    ) -> None:
        self.session = session
        self.notifier = notifier
        self.ledger = ledger or ProjectionLedger(session)

    def run(
        self,
        now: Optional[datetime] = None,
        target_hour: Optional[int] = None,
        target_minute: Optional[int] = None,
    ) -> SweepReport:
        now = now or utc_now()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        hour = target_hour if target_hour is not None else get_settings().delivery_hour
        report = SweepReport(today=local_today(now))
        batches: dict[str, UserBatch] = {}

        self._collect_upcoming(report, batches)
        self._collect_pending(report.today, batches)
        self.session.commit()

        self._deliver(now, hour, target_minute, batches, report)
        logger.info(
            "renewal_sweep: today=%s projections_created=%d upcoming_sent=%d "
            "confirm_sent=%d skipped_users=%d",
            report.today,
            report.projections_created,
            report.upcoming_sent,
            report.confirm_sent,
            len(report.skipped_users),
        )
        return report

    def _batch_for(
        self,
        batches: dict[str, UserBatch],
        user: User,
        stored: Optional[UserSettings],
    ) -> Optional[UserBatch]:
        if not user.email:
            return None
        batch = batches.get(user.email)
        if batch is None:
            batch = UserBatch(
                recipient=Recipient(
                    user_id=user.id, email=user.email, name=user.name or "User"
                ),
                timezone=stored.timezone if stored else None,
            )
            batches[user.email] = batch
        return batch

    def _collect_upcoming(
        self, report: SweepReport, batches: dict[str, UserBatch]
    ) -> None:
        stmt = (
            select(Subscription, User, UserSettings)
            .join(User, Subscription.user_id == User.id)
            .outerjoin(UserSettings, UserSettings.user_id == User.id)
            .where(Subscription.is_active.is_(True))
            .order_by(Subscription.id)
        )
        for sub, user, stored in self.session.execute(stmt).all():
            prefs = preferences_from(stored)
            window = classify_renewal(
                report.today,
                sub.next_renewal_date,
                sub.alert_days,
                prefs.default_alert_days,
            )
            if not window.needs_projection:
                continue
            try:
                created = self.ledger.ensure_projection(sub, sub.next_renewal_date)
            except Exception:
                logger.exception("projection_failed: subscription_id=%s", sub.id)
                continue
            if created is not None:
                report.projections_created += 1
            if window.state != RenewalState.upcoming:
                continue
            batch = self._batch_for(batches, user, stored)
            if batch is None:
                continue
            batch.upcoming.append(
                UpcomingRenewal(
                    subscription_id=sub.id,
                    name=sub.name,
                    amount_cents=sub.amount_cents,
                    currency=sub.currency or prefs.default_currency,
                    renewal_date=sub.next_renewal_date,
                    days_left=window.offset_days,
                )
            )

    def _collect_pending(self, today: date, batches: dict[str, UserBatch]) -> None:
        for txn, user, sub, stored in self.ledger.pending_projections(today):
            window = classify_projection(today, txn.date)
            if window.state != RenewalState.post_due_pending:
                continue
            batch = self._batch_for(batches, user, stored)
            if batch is None:
                continue
            currency = sub.currency if sub and sub.currency else None
            batch.confirm.append(
                PendingConfirmation(
                    transaction_id=txn.id,
                    name=txn.name,
                    amount_cents=txn.amount_cents,
                    currency=currency or preferences_from(stored).default_currency,
                    date=txn.date,
                )
            )

    def _deliver(
        self,
        now: datetime,
        hour: int,
        minute: Optional[int],
        batches: dict[str, UserBatch],
        report: SweepReport,
    ) -> None:
        for batch in batches.values():
            if not batch.upcoming and not batch.confirm:
                continue
            try:
                due = is_delivery_time(batch.timezone, now, hour, minute)
            except TimezoneResolutionError as exc:
                logger.warning(
                    "delivery_skipped: user_id=%s reason=%s",
                    batch.recipient.user_id,
                    exc,
                )
                report.skipped_users.append(batch.recipient.user_id)
                continue
            if not due:
                continue

            if batch.upcoming:
                items = sorted(
                    batch.upcoming, key=lambda item: item.renewal_date, reverse=True
                )
                if self._dispatch(batch.recipient, NotificationKind.upcoming, items):
                    report.upcoming_sent += 1
            if batch.confirm:
                if self._dispatch(
                    batch.recipient, NotificationKind.confirm, batch.confirm
                ):
                    report.confirm_sent += 1

    def _dispatch(
        self,
        recipient: Recipient,
        kind: NotificationKind,
        items: list[NotificationItem],
    ) -> bool:
        try:
            self.notifier.dispatch(recipient, kind, items)
        except Exception:
            logger.exception(
                "notification_failed: to=%s kind=%s items=%d",
                recipient.email,
                kind.value,
                len(items),
            )
            return False
        return True
