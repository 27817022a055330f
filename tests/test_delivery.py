from datetime import date, datetime, timezone

from sqlalchemy import select

from delivery import RenewalSweep
from models import BillingCycle, Subscription, Transaction
from notifications import NotificationKind

# 04:00 UTC is 10:00 in Asia/Dhaka (UTC+6, no DST)
IN_HOUR = datetime(2026, 3, 10, 4, 0, tzinfo=timezone.utc)
OUT_OF_HOUR = datetime(2026, 3, 10, 5, 0, tzinfo=timezone.utc)


def _sub(session, category, name, anchor, user_id=1, alert_days=None):
    sub = Subscription(
        user_id=user_id,
        name=name,
        amount_cents=1000,
        currency="BDT",
        billing_cycle=BillingCycle.monthly,
        next_renewal_date=anchor,
        category_id=category.id,
        alert_days=alert_days,
        is_active=True,
    )
    session.add(sub)
    session.commit()
    return sub


def _projections(session):
    return session.scalars(
        select(Transaction)
        .where(Transaction.is_projected.is_(True))
        .order_by(Transaction.date)
    ).all()


def test_sweep_batches_upcoming_renewals_soonest_last(session, category, notifier):
    _sub(session, category, "Spotify", date(2026, 3, 11))
    _sub(session, category, "Netflix", date(2026, 3, 13))
    _sub(session, category, "Insurance", date(2026, 3, 20))

    report = RenewalSweep(session, notifier).run(now=IN_HOUR)

    assert report.today == date(2026, 3, 10)
    assert report.projections_created == 2
    assert [txn.date for txn in _projections(session)] == [
        date(2026, 3, 11),
        date(2026, 3, 13),
    ]
    assert len(notifier.sent) == 1
    recipient, kind, items = notifier.sent[0]
    assert recipient.email == "ana@example.com"
    assert kind == NotificationKind.upcoming
    assert [item.name for item in items] == ["Netflix", "Spotify"]
    assert [item.days_left for item in items] == [3, 1]


def test_sweep_outside_delivery_hour_still_projects(session, category, notifier):
    _sub(session, category, "Spotify", date(2026, 3, 11))

    report = RenewalSweep(session, notifier).run(now=OUT_OF_HOUR)

    assert report.projections_created == 1
    assert report.upcoming_sent == 0
    assert notifier.sent == []

    again = RenewalSweep(session, notifier).run(now=IN_HOUR)
    assert again.projections_created == 0
    assert len(_projections(session)) == 1
    assert again.upcoming_sent == 1


def test_sweep_asks_to_confirm_recent_projections(session, category, notifier):
    _sub(session, category, "Gym", date(2026, 3, 8))
    session.add(
        Transaction(
            user_id=1,
            name="Stale",
            amount_cents=700,
            date=date(2026, 3, 1),
            is_projected=True,
        )
    )
    session.commit()

    report = RenewalSweep(session, notifier).run(now=IN_HOUR)

    # the missed renewal is caught up, then surfaced for confirmation
    assert report.projections_created == 1
    assert report.confirm_sent == 1
    [(_recipient, kind, items)] = notifier.sent
    assert kind == NotificationKind.confirm
    assert [item.name for item in items] == ["Gym"]
    assert items[0].currency == "BDT"


def test_target_hour_and_minute_override_delivery_time(session, category, notifier):
    _sub(session, category, "Spotify", date(2026, 3, 11))
    now = datetime(2026, 3, 10, 1, 30, tzinfo=timezone.utc)

    RenewalSweep(session, notifier).run(now=now, target_hour=7, target_minute=0)
    assert notifier.sent == []

    RenewalSweep(session, notifier).run(now=now, target_hour=7, target_minute=30)
    assert len(notifier.sent) == 1


def test_bad_timezone_skips_only_that_user(session, category, seed, notifier):
    _user, other_category = seed(user_id=2, email="bo@example.com", timezone="Mars/Base")
    _sub(session, category, "Spotify", date(2026, 3, 11))
    _sub(session, other_category, "Hulu", date(2026, 3, 11), user_id=2)

    report = RenewalSweep(session, notifier).run(now=IN_HOUR)

    assert report.skipped_users == [2]
    assert report.projections_created == 2
    assert [recipient.user_id for recipient, _kind, _items in notifier.sent] == [1]


def test_users_without_email_get_projections_but_no_batch(session, category, seed, notifier):
    _user, other_category = seed(user_id=2, email=None)
    _sub(session, other_category, "Hulu", date(2026, 3, 11), user_id=2)

    report = RenewalSweep(session, notifier).run(now=IN_HOUR)

    assert report.projections_created == 1
    assert notifier.sent == []


def test_notification_failure_keeps_projections(session, category, notifier):
    _sub(session, category, "Spotify", date(2026, 3, 11))
    notifier.fail = True

    report = RenewalSweep(session, notifier).run(now=IN_HOUR)

    assert report.upcoming_sent == 0
    session.rollback()
    assert [txn.name for txn in _projections(session)] == ["Spotify"]


def test_inactive_subscriptions_are_ignored(session, category, notifier):
    sub = _sub(session, category, "Spotify", date(2026, 3, 11))
    sub.is_active = False
    session.commit()

    report = RenewalSweep(session, notifier).run(now=IN_HOUR)

    assert report.projections_created == 0
    assert _projections(session) == []
