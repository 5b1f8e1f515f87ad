"""
Automation Service - Scheduling Orchestration
=============================================

Turns customer events into pending automation jobs and exposes the dispatch
cycle. This is the entry point used by the HTTP API and the cron runner.

EVENTS:
- Review submitted      -> schedule_for_review(review_id)
- Customer created      -> schedule_for_customer(user_id, customer_id)
- Template saved        -> on_template_saved(user_id, channel)
  (backfill over the business's recent reviews for that channel)
- Manual backfill       -> schedule_for_user(user_id, event_type)

FLOW (per channel):
    evaluate event -> duplicate guard -> compute fire time -> insert job

A failure while checking or inserting one channel is logged and reported as a
skip; the other channel is still scheduled.

USAGE:
    service = build_automation_service(get_settings())
    result = service.schedule_for_review(42)
    print(result.jobs_scheduled)
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from ..domain.errors import AutomationError, ValidationError
from ..domain.models import (
    AutomationJob,
    Channel,
    ScheduledJobInfo,
    ScheduleResult,
    Template,
)
from ..domain.schedule import utc_now
from ..domain.triggers import JobIntent, evaluate_new_customer, evaluate_review
from ..infrastructure.config import Settings
from ..infrastructure.messaging import (
    EmailSender,
    SmsSender,
    SmtpEmailSender,
    TwilioSmsSender,
)
from ..infrastructure.persistence import Database, JobStore
from .dispatcher import Dispatcher, DispatchSummary
from .duplicate_guard import DuplicateGuard

logger = logging.getLogger(__name__)

ALREADY_SCHEDULED = "Already scheduled"


@dataclass
class BackfillResult:
    """Result of a backfill pass over a business's recent reviews."""
    success: bool
    user_id: int
    event_type: Optional[str] = None
    reviews_considered: int = 0
    jobs_scheduled: int = 0
    scheduled_jobs: List[ScheduledJobInfo] = field(default_factory=list)
    skipped: list = field(default_factory=list)
    message: str = ""

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "userId": self.user_id,
            "eventType": self.event_type,
            "reviewsConsidered": self.reviews_considered,
            "jobsScheduled": self.jobs_scheduled,
            "scheduledJobs": [job.to_dict() for job in self.scheduled_jobs],
            "skipped": list(self.skipped),
        }
        if self.message:
            data["message"] = self.message
        return data


class AutomationService:
    """
    Schedules follow-ups for customer events and runs the dispatch cycle.

    Collaborators are injected; use build_automation_service() to wire the
    production ones from settings.
    """

    def __init__(
        self,
        database: Database,
        job_store: JobStore,
        dispatcher: Dispatcher,
        settings: Settings,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = database
        self.jobs = job_store
        self.dispatcher = dispatcher
        self.settings = settings
        self._clock = clock
        self._guard = DuplicateGuard(
            job_store, window=timedelta(minutes=settings.automation.duplicate_window_minutes)
        )

    @property
    def _marker(self) -> str:
        return self.settings.automation.anonymous_marker

    # ── Event: review submitted ────────────────────────────────────

    def schedule_for_review(self, review_id: int, user_id: Optional[int] = None) -> ScheduleResult:
        """
        Schedule email and/or SMS follow-ups for a review.

        Args:
            user_id: When given, the review must belong to this business.
        """
        now = self._clock()
        review = self.db.get_review(review_id)
        if review is not None and user_id is not None and review.user_id != user_id:
            review = None
        if review is None:
            logger.warning(f"Review {review_id} not found, nothing scheduled")
            return ScheduleResult(success=False, review_id=review_id, error="Review not found")

        customer = None
        if not review.is_anonymous(self._marker):
            customer = self.db.get_customer(review.customer_id, review.user_id)

        decision = evaluate_review(
            review,
            self.db.get_template(review.user_id, Channel.EMAIL),
            self.db.get_template(review.user_id, Channel.SMS),
            customer=customer,
            anonymous_marker=self._marker,
        )

        result = ScheduleResult(
            success=True,
            review_id=review.id,
            trigger_event=decision.trigger_event.value,
            skipped=list(decision.skipped),
        )
        for intent in decision.intents:
            info = self._schedule_intent(intent, review.id, now, result.skipped)
            if info:
                result.scheduled_jobs.append(info)

        result.jobs_scheduled = len(result.scheduled_jobs)
        logger.info(
            f"Review {review.id} ({decision.trigger_event.value}): "
            f"{result.jobs_scheduled} job(s) scheduled, {len(result.skipped)} skipped"
        )
        return result

    # ── Event: customer created ────────────────────────────────────

    def schedule_for_customer(self, user_id: int, customer_id) -> ScheduleResult:
        """Schedule the new-customer follow-ups (one per channel per hour)."""
        now = self._clock()
        customer = self.db.get_customer(customer_id, user_id)
        if customer is None:
            logger.warning(f"Customer {customer_id} not found for user {user_id}")
            return ScheduleResult(
                success=False, customer_id=str(customer_id), error="Customer not found"
            )

        decision = evaluate_new_customer(
            customer,
            self.db.get_template(user_id, Channel.EMAIL),
            self.db.get_template(user_id, Channel.SMS),
        )

        result = ScheduleResult(
            success=True,
            customer_id=str(customer.id),
            trigger_event=decision.trigger_event.value,
            skipped=list(decision.skipped),
        )
        for intent in decision.intents:
            info = self._schedule_intent(intent, customer.id, now, result.skipped)
            if info:
                result.scheduled_jobs.append(info)

        result.jobs_scheduled = len(result.scheduled_jobs)
        return result

    # ── Backfill ───────────────────────────────────────────────────

    def on_template_saved(self, user_id: int, channel: Channel) -> BackfillResult:
        """Schedule a newly saved template against recent reviews."""
        return self._backfill(user_id, [channel], event_type=channel.value)

    def schedule_for_user(self, user_id: int, event_type: Optional[str] = None) -> BackfillResult:
        """
        User-wide backfill over recent reviews.

        Args:
            event_type: "email" or "sms" restricts the pass to one channel;
                None covers both. Anything else schedules nothing.
        """
        if not event_type:
            return self._backfill(user_id, [Channel.EMAIL, Channel.SMS], event_type=None)

        try:
            channel = Channel(str(event_type).strip().lower())
        except ValueError:
            logger.info(f"Unknown event type '{event_type}' for user {user_id}")
            return BackfillResult(
                success=True,
                user_id=user_id,
                event_type=event_type,
                message=f"Unknown event type '{event_type}', nothing scheduled",
            )
        return self._backfill(user_id, [channel], event_type=event_type)

    def _backfill(
        self,
        user_id: int,
        channels: List[Channel],
        event_type: Optional[str],
    ) -> BackfillResult:
        now = self._clock()
        automation = self.settings.automation
        result = BackfillResult(success=True, user_id=user_id, event_type=event_type)

        templates: Dict[Channel, Optional[Template]] = {
            channel: self.db.get_template(user_id, channel) for channel in channels
        }
        if not any(templates.values()):
            result.message = "No templates configured"
            return result

        since = now - timedelta(days=automation.backfill_days)
        reviews = self.db.get_recent_reviews(user_id, since, limit=automation.backfill_limit)
        result.reviews_considered = len(reviews)

        for review in reviews:
            customer = None
            if not review.is_anonymous(self._marker):
                customer = self.db.get_customer(review.customer_id, user_id)

            decision = evaluate_review(
                review,
                templates.get(Channel.EMAIL),
                templates.get(Channel.SMS),
                customer=customer,
                anonymous_marker=self._marker,
            )

            for skip in decision.skipped:
                if templates.get(Channel(skip["type"])):
                    result.skipped.append({**skip, "reviewId": review.id})

            for intent in decision.intents:
                if self.jobs.has_pending_review_job(user_id, review.id, intent.channel):
                    continue
                info = self._schedule_intent(
                    intent, review.id, now, result.skipped, extra={"reviewId": review.id}
                )
                if info:
                    result.scheduled_jobs.append(info)

        result.jobs_scheduled = len(result.scheduled_jobs)
        logger.info(
            f"Backfill for user {user_id} ({event_type or 'all channels'}): "
            f"{result.jobs_scheduled} job(s) over {result.reviews_considered} review(s)"
        )
        return result

    # ── Per-channel scheduling ─────────────────────────────────────

    def _schedule_intent(
        self,
        intent: JobIntent,
        subject_id,
        now: datetime,
        skipped: list,
        extra: Optional[dict] = None,
    ) -> Optional[ScheduledJobInfo]:
        """Guard, time and insert one job. Failures become a skip entry."""
        channel = intent.channel.value

        def _skip(reason: str):
            skipped.append({"type": channel, "reason": reason, **(extra or {})})

        try:
            if not self._guard.should_create_job(
                intent.user_id, subject_id, intent.channel, intent.trigger_event, now
            ):
                _skip(ALREADY_SCHEDULED)
                return None

            job = intent.to_job(now)
            job_id = self.jobs.insert(job, now)
            if job_id is None:
                _skip(ALREADY_SCHEDULED)
                return None

        except (AutomationError, sqlite3.Error) as e:
            logger.warning(f"Could not schedule {channel} job for {subject_id}: {e}")
            _skip(str(e))
            return None

        logger.info(
            f"Scheduled {channel} job {job_id} for {job.scheduled_for.isoformat()} "
            f"(user {job.user_id}, {job.trigger_type})"
        )
        return ScheduledJobInfo(
            job_id=job_id,
            channel=intent.channel,
            scheduled_for=job.scheduled_for,
            trigger_type=job.trigger_type,
            wait_days=job.wait_days,
            trigger_event=job.trigger_event,
        )

    # ── Records written through the API ────────────────────────────

    def submit_review(
        self,
        user_id: int,
        rating: int,
        customer_id: str = "",
        customer_name: str = "",
        customer_email: str = "",
        comment: str = "",
    ) -> ScheduleResult:
        """Record a review and schedule its follow-ups."""
        if not 1 <= int(rating) <= 5:
            raise ValidationError("Rating must be between 1 and 5")

        review_id = self.db.add_review(
            user_id,
            rating,
            customer_id=customer_id,
            customer_name=customer_name,
            customer_email=customer_email,
            comment=comment,
            created_at=self._clock(),
        )
        return self.schedule_for_review(review_id)

    def add_customer(self, user_id: int, name: str, email: str = "", phone: str = "") -> ScheduleResult:
        """Create a customer and schedule the new-customer follow-ups."""
        if not (name or "").strip():
            raise ValidationError("Customer name is required")

        customer_id = self.db.add_customer(user_id, name.strip(), email, phone)
        return self.schedule_for_customer(user_id, customer_id)

    def save_template(self, user_id: int, channel: Channel, **fields) -> tuple:
        """Upsert the channel template, then backfill. Returns (template, backfill)."""
        if not (fields.get("content") or "").strip():
            raise ValidationError("Template content is required")

        template = self.db.upsert_template(user_id, channel, now=self._clock(), **fields)
        return template, self.on_template_saved(user_id, channel)

    # ── Dispatch & inspection ──────────────────────────────────────

    def process_pending(self, test_mode: bool = False) -> DispatchSummary:
        return self.dispatcher.process_pending(test_mode=test_mode)

    def list_pending(self) -> List[AutomationJob]:
        """Pending jobs, earliest first, for inspection."""
        return self.jobs.list_pending(limit=self.settings.automation.list_limit)

    def close(self):
        self.dispatcher.close()


def build_automation_service(
    settings: Settings,
    database: Optional[Database] = None,
    email_sender: Optional[EmailSender] = None,
    sms_sender: Optional[SmsSender] = None,
    clock: Callable[[], datetime] = utc_now,
) -> AutomationService:
    """Wire the service with production collaborators unless overridden."""
    if database is None:
        database = Database(settings.database.path)
        database.init()

    job_store = JobStore(database)
    dispatcher = Dispatcher(
        database,
        job_store,
        email_sender or SmtpEmailSender(settings.smtp),
        sms_sender or TwilioSmsSender(settings.sms),
        settings,
        clock=clock,
    )
    return AutomationService(database, job_store, dispatcher, settings, clock=clock)
