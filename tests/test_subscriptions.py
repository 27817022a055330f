from datetime import date, timedelta

import pytest
from sqlalchemy import select

from models import BillingCycle, Subscription, Transaction
from quota import PlanQuota
from schemas import IdsIn, SubscriptionIn, SubscriptionUpdate
from services import (
    BreakdownService,
    QuotaExceeded,
    SubscriptionNotFound,
    SubscriptionService,
    TransactionNotFound,
)

TODAY = date(2026, 3, 10)


def _payload(category, **overrides) -> SubscriptionIn:
    values = dict(
        name="Rent",
        amount_cents=500,
        billing_cycle=BillingCycle.monthly,
        next_renewal_date=TODAY + timedelta(days=2),
        category_id=category.id,
    )
    values.update(overrides)
    return SubscriptionIn(**values)


def _transactions(session, sub_id):
    return session.scalars(
        select(Transaction)
        .where(Transaction.subscription_id == sub_id)
        .order_by(Transaction.date)
    ).all()


def test_create_inside_alert_window_projects_first_occurrence(session, category):
    service = SubscriptionService(session, user_id=1)
    sub = service.create(_payload(category), today=TODAY)

    rows = _transactions(session, sub.id)
    assert len(rows) == 1
    assert rows[0].date == TODAY + timedelta(days=2)
    assert rows[0].amount_cents == 500
    assert rows[0].is_projected is True
    assert sub.currency == "BDT"


def test_create_outside_alert_window_has_no_projection(session, category):
    service = SubscriptionService(session, user_id=1)
    sub = service.create(
        _payload(category, next_renewal_date=TODAY + timedelta(days=10)), today=TODAY
    )
    assert _transactions(session, sub.id) == []


def test_create_with_recently_passed_date_catches_up(session, category):
    service = SubscriptionService(session, user_id=1)
    sub = service.create(
        _payload(category, next_renewal_date=TODAY - timedelta(days=5)), today=TODAY
    )
    assert [row.date for row in _transactions(session, sub.id)] == [
        TODAY - timedelta(days=5)
    ]


def test_create_rejected_when_quota_denies(session, category):
    service = SubscriptionService(session, user_id=1, quota=PlanQuota({"max_subscriptions": 1}))
    service.create(_payload(category), today=TODAY)

    with pytest.raises(QuotaExceeded):
        service.create(_payload(category, name="Gym"), today=TODAY)
    assert service.active_count() == 1


def test_update_moving_into_window_creates_projection(session, category):
    service = SubscriptionService(session, user_id=1)
    sub = service.create(
        _payload(category, next_renewal_date=TODAY + timedelta(days=20)), today=TODAY
    )
    assert _transactions(session, sub.id) == []

    service.update(
        sub.id,
        SubscriptionUpdate(next_renewal_date=TODAY + timedelta(days=1)),
        today=TODAY,
    )
    assert [row.date for row in _transactions(session, sub.id)] == [
        TODAY + timedelta(days=1)
    ]


def test_update_alert_override_widens_window(session, category):
    service = SubscriptionService(session, user_id=1)
    sub = service.create(
        _payload(category, next_renewal_date=TODAY + timedelta(days=6)), today=TODAY
    )
    assert _transactions(session, sub.id) == []

    service.update(sub.id, SubscriptionUpdate(alert_days=7), today=TODAY)
    assert len(_transactions(session, sub.id)) == 1


def test_confirm_flips_projection_and_advances_one_month(session, category):
    service = SubscriptionService(session, user_id=1)
    sub = service.create(_payload(category), today=TODAY)
    txn = _transactions(session, sub.id)[0]

    result = service.confirm(IdsIn(ids=[txn.id]))

    assert result["confirmed"] == 1
    assert txn.is_projected is False
    refreshed = service.get(sub.id)
    assert refreshed.next_renewal_date == date(2026, 4, 12)


def test_confirm_twice_does_not_advance_again(session, category):
    service = SubscriptionService(session, user_id=1)
    sub = service.create(_payload(category), today=TODAY)
    txn = _transactions(session, sub.id)[0]

    service.confirm([txn.id])
    second = service.confirm([txn.id])

    assert second["confirmed"] == 0
    assert service.get(sub.id).next_renewal_date == date(2026, 4, 12)


@pytest.mark.parametrize(
    "cycle, expected",
    [
        (BillingCycle.daily, date(2026, 1, 31)),
        (BillingCycle.weekly, date(2026, 2, 6)),
        (BillingCycle.monthly, date(2026, 2, 28)),
        (BillingCycle.yearly, date(2027, 1, 30)),
    ],
)
def test_late_confirmation_advances_from_previous_anchor(
    session, category, cycle, expected
):
    service = SubscriptionService(session, user_id=1)
    anchor = date(2026, 1, 30)
    sub = service.create(
        _payload(category, billing_cycle=cycle, next_renewal_date=anchor),
        today=anchor,
    )
    txn = _transactions(session, sub.id)[0]

    # confirmed weeks later; the anchor still moves by exactly one cycle
    service.confirm([txn.id])
    assert service.get(sub.id).next_renewal_date == expected


def test_confirm_unknown_ids_raises(session, category):
    service = SubscriptionService(session, user_id=1)
    with pytest.raises(TransactionNotFound):
        service.confirm([999])


def test_confirm_failure_for_one_id_keeps_others(session, category, monkeypatch):
    service = SubscriptionService(session, user_id=1)
    first = service.create(_payload(category, name="Rent"), today=TODAY)
    second = service.create(_payload(category, name="Gym"), today=TODAY)
    first_txn = _transactions(session, first.id)[0]
    second_txn = _transactions(session, second.id)[0]

    original_advance = service.engine.advance

    def flaky_advance(subscription):
        if subscription.id == first.id:
            raise RuntimeError("boom")
        return original_advance(subscription)

    monkeypatch.setattr(service.engine, "advance", flaky_advance)
    result = service.confirm([first_txn.id, second_txn.id])

    assert result["confirmed"] == 1
    session.expire_all()
    assert session.get(Transaction, first_txn.id).is_projected is True
    assert session.get(Subscription, first.id).next_renewal_date == TODAY + timedelta(days=2)
    assert session.get(Transaction, second_txn.id).is_projected is False
    assert session.get(Subscription, second.id).next_renewal_date == date(2026, 4, 12)


def test_remove_without_history_hard_deletes(session, category):
    service = SubscriptionService(session, user_id=1)
    sub = service.create(_payload(category), today=TODAY)
    sub_id = sub.id

    result = service.remove(sub_id)

    assert result["mode"] == "deleted"
    assert session.get(Subscription, sub_id) is None
    assert _transactions(session, sub_id) == []


def test_remove_with_history_soft_deletes(session, category):
    service = SubscriptionService(session, user_id=1)
    sub = service.create(_payload(category), today=TODAY)
    session.add(
        Transaction(
            user_id=1,
            name="Rent",
            amount_cents=500,
            date=date(2026, 2, 12),
            subscription_id=sub.id,
            is_projected=False,
        )
    )
    session.commit()

    result = service.remove(sub.id)

    assert result["mode"] == "deactivated"
    remaining = _transactions(session, sub.id)
    assert [(row.date, row.is_projected) for row in remaining] == [
        (date(2026, 2, 12), False)
    ]
    assert session.get(Subscription, sub.id).is_active is False
    assert service.list_active() == []


def test_remove_unknown_subscription(session, category):
    with pytest.raises(SubscriptionNotFound):
        SubscriptionService(session, user_id=1).remove(42)


def test_cancel_by_subscription_ids_purges_projections(session, category):
    service = SubscriptionService(session, user_id=1)
    sub = service.create(_payload(category), today=TODAY)

    result = service.cancel(IdsIn(ids=[sub.id]))

    assert result["cancelled"] == 1
    assert session.get(Subscription, sub.id).is_active is False
    assert _transactions(session, sub.id) == []


def test_cancel_falls_back_to_transaction_ids(session, category):
    service = SubscriptionService(session, user_id=1)
    sub = service.create(
        _payload(category, next_renewal_date=TODAY + timedelta(days=30)), today=TODAY
    )
    session.add(
        Transaction(
            id=500,
            user_id=1,
            name="Rent",
            amount_cents=500,
            date=TODAY + timedelta(days=30),
            subscription_id=sub.id,
            is_projected=True,
        )
    )
    session.commit()
    assert session.get(Subscription, 500) is None

    result = service.cancel([500])

    assert result["cancelled"] == 1
    assert session.get(Subscription, sub.id).is_active is False
    assert _transactions(session, sub.id) == []


def test_cancel_unknown_ids_raises(session, category):
    with pytest.raises(SubscriptionNotFound):
        SubscriptionService(session, user_id=1).cancel([12345])


def test_other_users_records_are_not_visible(session, category, seed):
    seed(user_id=2, email="bo@example.com")
    owner = SubscriptionService(session, user_id=1)
    sub = owner.create(_payload(category), today=TODAY)
    txn = _transactions(session, sub.id)[0]
    stranger = SubscriptionService(session, user_id=2)

    with pytest.raises(SubscriptionNotFound):
        stranger.get(sub.id)
    with pytest.raises(SubscriptionNotFound):
        stranger.remove(sub.id)
    with pytest.raises(TransactionNotFound):
        stranger.confirm([txn.id])
    with pytest.raises(TransactionNotFound):
        stranger.transaction_details([txn.id])
    assert session.get(Subscription, sub.id).is_active is True


def test_transaction_details_include_subscription_context(session, category):
    service = SubscriptionService(session, user_id=1)
    sub = service.create(_payload(category, currency="USD"), today=TODAY)
    txn = _transactions(session, sub.id)[0]

    [detail] = service.transaction_details(IdsIn(ids=txn.id))

    assert detail["id"] == txn.id
    assert detail["is_projected"] is True
    assert detail["currency"] == "USD"
    assert detail["billing_cycle"] == "monthly"
    assert detail["category_name"] == category.name
    assert detail["next_renewal_date"] == "2026-03-12"


def test_list_active_includes_category_name(session, category):
    service = SubscriptionService(session, user_id=1)
    service.create(_payload(category), today=TODAY)
    cancelled = service.create(_payload(category, name="Old gym"), today=TODAY)
    service.cancel([cancelled.id])

    listed = service.list_active()

    assert [item["name"] for item in listed] == ["Rent"]
    assert listed[0]["category_name"] == category.name


def test_confirm_already_confirmed_elsewhere_does_not_advance_again(
    session_factory, session, category
):
    service = SubscriptionService(session, user_id=1)
    sub = service.create(_payload(category), today=TODAY)
    txn = _transactions(session, sub.id)[0]
    session.commit()
    assert txn.is_projected is True

    # another request confirms the same row while this session holds a stale copy
    other = session_factory()
    try:
        SubscriptionService(other, user_id=1).confirm([txn.id])
    finally:
        other.close()

    result = service.confirm([txn.id])

    assert result["confirmed"] == 0
    session.expire_all()
    assert session.get(Transaction, txn.id).is_projected is False
    assert session.get(Subscription, sub.id).next_renewal_date == date(2026, 4, 12)


def test_cancel_failure_for_one_id_keeps_others(session, category, monkeypatch):
    service = SubscriptionService(session, user_id=1)
    first = service.create(_payload(category, name="Rent"), today=TODAY)
    second = service.create(_payload(category, name="Gym"), today=TODAY)

    original_deactivate = service.engine.deactivate

    def flaky_deactivate(subscription):
        if subscription.id == first.id:
            raise RuntimeError("boom")
        return original_deactivate(subscription)

    monkeypatch.setattr(service.engine, "deactivate", flaky_deactivate)
    result = service.cancel([first.id, second.id])

    assert result["cancelled"] == 1
    session.expire_all()
    assert session.get(Subscription, first.id).is_active is True
    assert len(_transactions(session, first.id)) == 1
    assert session.get(Subscription, second.id).is_active is False
    assert _transactions(session, second.id) == []


def test_explicit_user_id_zero_is_not_replaced(session):
    assert SubscriptionService(session, user_id=0).user_id == 0
    assert BreakdownService(session, user_id=0).user_id == 0
    assert SubscriptionService(session).user_id == 1
