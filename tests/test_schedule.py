from datetime import datetime, timedelta, timezone

import pytest

from loopreview.domain.models import TriggerType
from loopreview.domain.schedule import IMMEDIATE_DELAY, compute_fire_time

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


def test_immediate_fires_after_short_buffer():
    assert compute_fire_time("immediate", 0, NOW) == NOW + timedelta(minutes=5)
    assert IMMEDIATE_DELAY == timedelta(minutes=5)


def test_immediate_ignores_wait_days():
    assert compute_fire_time(TriggerType.IMMEDIATE, 10, NOW) == NOW + timedelta(minutes=5)


@pytest.mark.parametrize("trigger", ["after_purchase", "after_interaction"])
def test_after_event_triggers_wait_the_configured_days(trigger):
    assert compute_fire_time(trigger, 3, NOW) == NOW + timedelta(days=3)
    assert compute_fire_time(trigger, 0, NOW) == NOW


@pytest.mark.parametrize("wait_days", [0, 1, 3, 30, None])
def test_weekly_is_always_seven_days(wait_days):
    assert compute_fire_time("weekly", wait_days, NOW) == NOW + timedelta(days=7)


def test_monthly_adds_one_calendar_month():
    assert compute_fire_time("monthly", 5, NOW) == datetime(2025, 4, 10, 12, 0, tzinfo=timezone.utc)


def test_monthly_clamps_to_end_of_shorter_month():
    jan_31 = datetime(2025, 1, 31, 9, 30, tzinfo=timezone.utc)
    assert compute_fire_time("monthly", 0, jan_31) == datetime(2025, 2, 28, 9, 30, tzinfo=timezone.utc)

    leap_jan_31 = datetime(2024, 1, 31, 9, 30, tzinfo=timezone.utc)
    assert compute_fire_time("monthly", 0, leap_jan_31) == datetime(2024, 2, 29, 9, 30, tzinfo=timezone.utc)


def test_unknown_trigger_waits_at_least_one_day():
    assert compute_fire_time("on_birthday", 0, NOW) == NOW + timedelta(days=1)
    assert compute_fire_time("on_birthday", 4, NOW) == NOW + timedelta(days=4)
    assert compute_fire_time(None, None, NOW) == NOW + timedelta(days=1)


def test_negative_wait_days_count_as_zero():
    assert compute_fire_time("after_purchase", -5, NOW) == NOW
    assert compute_fire_time("other", -5, NOW) == NOW + timedelta(days=1)


def test_trigger_strings_are_case_insensitive():
    assert TriggerType.parse(" Weekly ") == TriggerType.WEEKLY
    assert compute_fire_time("WEEKLY", 0, NOW) == NOW + timedelta(days=7)
