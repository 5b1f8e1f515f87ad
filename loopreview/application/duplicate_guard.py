"""
Duplicate Guard
===============

Best-effort check run before every job insert.

- Review events: one pending or completed job per (business, review, channel).
  A failed job does not block a new attempt.
- New-customer events: one job per (business, customer, channel) inside a
  short window (one hour by default).

The check and the insert are not atomic. The job store's unique index on
(user_id, review_id, channel) catches the review race; an insert it rejects
is reported as already scheduled.
"""

import logging
from datetime import datetime, timedelta
from typing import Union

from ..domain.models import Channel, TriggerEvent
from ..infrastructure.persistence import JobStore

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = timedelta(hours=1)


class DuplicateGuard:

    def __init__(self, job_store: JobStore, window: timedelta = DEFAULT_WINDOW):
        self._jobs = job_store
        self._window = window

    def should_create_job(
        self,
        user_id: int,
        subject_id,
        channel: Channel,
        trigger_event: Union[TriggerEvent, str],
        now: datetime,
    ) -> bool:
        """
        Args:
            subject_id: review id for review events, customer id for
                customer_created events.
            trigger_event: Classification of the event being scheduled.

        Returns:
            False when an equivalent job already exists.
        """
        event = trigger_event.value if isinstance(trigger_event, TriggerEvent) else str(trigger_event)

        if event == TriggerEvent.CUSTOMER_CREATED.value:
            since = now - self._window
            if self._jobs.has_recent_job(user_id, str(subject_id), event, channel, since):
                logger.info(
                    f"Skipping {channel.value} for customer {subject_id}: "
                    f"job created within the last {self._window}"
                )
                return False
            return True

        if self._jobs.has_active_job(user_id, subject_id, channel):
            logger.info(f"Skipping {channel.value} for review {subject_id}: already scheduled")
            return False
        return True
