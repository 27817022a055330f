from datetime import datetime, timezone

import pytest

from clock import TimezoneResolutionError, is_delivery_time, local_hour


def test_local_hour_converts_from_utc():
    now = datetime(2026, 3, 10, 4, 30, tzinfo=timezone.utc)
    assert local_hour("Asia/Dhaka", now) == 10
    assert local_hour("America/New_York", now) == 0


def test_local_hour_falls_back_to_server_timezone():
    now = datetime(2026, 3, 10, 4, 30, tzinfo=timezone.utc)
    assert local_hour(None, now) == 4


def test_naive_instant_is_treated_as_utc():
    assert local_hour("Asia/Dhaka", datetime(2026, 3, 10, 4, 0)) == 10


def test_unknown_timezone_raises():
    with pytest.raises(TimezoneResolutionError):
        local_hour("Mars/Olympus_Mons", datetime(2026, 3, 10, tzinfo=timezone.utc))


def test_delivery_time_checks_minute_only_when_given():
    now = datetime(2026, 3, 10, 4, 15, tzinfo=timezone.utc)
    assert is_delivery_time("Asia/Dhaka", now, 10)
    assert is_delivery_time("Asia/Dhaka", now, 10, 15)
    assert not is_delivery_time("Asia/Dhaka", now, 10, 0)
    assert not is_delivery_time("Asia/Dhaka", now, 9)
