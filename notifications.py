import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional, Sequence, Union


logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    upcoming = "upcoming"
    confirm = "confirm"


@dataclass(frozen=True)
class Recipient:
    user_id: int
    email: str
    name: str


@dataclass(frozen=True)
class UpcomingRenewal:
    subscription_id: int
    name: str
    amount_cents: int
    currency: str
    renewal_date: date
    days_left: int


@dataclass(frozen=True)
class PendingConfirmation:
    transaction_id: int
    name: str
    amount_cents: int
    currency: str
    date: date


NotificationItem = Union[UpcomingRenewal, PendingConfirmation]


def batch_subject(kind: NotificationKind, items: Sequence[NotificationItem]) -> str:
    if kind == NotificationKind.confirm:
        return f"Action Required: Confirm {len(items)} Pending Renewals"
    if len(items) == 1:
        return f"Upcoming Renewal: {items[0].name}"
    return f"You have {len(items)} Upcoming Renewals"


class Notifier:
    """Delivery channel for batched renewal notices.

    Instances are created by the application and passed to the sweep; ``start``
    and ``stop`` bracket their use.
    """

    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass

    def dispatch(
        self,
        recipient: Recipient,
        kind: NotificationKind,
        items: Sequence[NotificationItem],
    ) -> None:
        raise NotImplementedError


class LogNotifier(Notifier):
    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self.log = log or logger
        self.started = False

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.started = False

    def dispatch(
        self,
        recipient: Recipient,
        kind: NotificationKind,
        items: Sequence[NotificationItem],
    ) -> None:
        if not self.started:
            self.log.warning(
                "notification_dropped: notifier not started to=%s kind=%s",
                recipient.email,
                kind.value,
            )
            return
        self.log.info(
            "notification_sent: to=%s kind=%s items=%d subject=%r",
            recipient.email,
            kind.value,
            len(items),
            batch_subject(kind, items),
        )
