"""
Schedule Calculator
===================

Maps a template's trigger configuration to the moment its follow-up fires.
Pure and deterministic: the caller supplies `now`.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from .models import TriggerType

# Buffer for "immediate" sends, so the inserting transaction commits before
# the dispatcher can see the job.
IMMEDIATE_DELAY = timedelta(minutes=5)


def utc_now() -> datetime:
    """Timezone-aware current time; the default clock for services."""
    return datetime.now(timezone.utc)


def compute_fire_time(
    trigger: Union[TriggerType, str, None],
    wait_days: Optional[int],
    now: datetime,
) -> datetime:
    """
    Compute when a follow-up should be sent.

    Args:
        trigger: Template trigger (enum or stored string). Unknown values
            fall through to the wait-days default.
        wait_days: Template wait days; None or negative counts as 0.
        now: Reference time.

    Returns:
        Absolute fire time.
    """
    kind = TriggerType.parse(trigger)
    days = max(int(wait_days or 0), 0)

    if kind == TriggerType.IMMEDIATE:
        return now + IMMEDIATE_DELAY

    if kind in (TriggerType.AFTER_PURCHASE, TriggerType.AFTER_INTERACTION):
        return now + timedelta(days=days)

    if kind == TriggerType.WEEKLY:
        return now + timedelta(days=7)

    if kind == TriggerType.MONTHLY:
        # relativedelta clamps Jan 31 + 1 month to the last day of February
        return now + relativedelta(months=1)

    return now + timedelta(days=max(days, 1))
