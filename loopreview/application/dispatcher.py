"""
Dispatcher - Sends Due Automation Jobs
======================================

One poll cycle:
    1. Fetch due pending jobs (earliest first, bounded batch).
    2. For each job: load its template, business profile and review link,
       render subject/body with the trackable review URL, and hand the
       message to the channel's sender.
    3. Mark the job completed, or failed with the error message.

Jobs are processed sequentially. Any exception while rendering or sending one
job is written to that job and the cycle moves on to the next one. A status
write that fails is logged and reported on the job's result; it never aborts
the cycle. Once a message has been handed to a sender the job is never marked
failed, so a delivered follow-up cannot be scheduled and sent again.

TEST MODE:
    Runs the same lookups and rendering but skips the transport call. The job
    is still marked completed, so a dry run consumes the queue.
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from email.utils import formataddr
from typing import Callable, List, Optional

from ..domain.errors import RecordNotFoundError
from ..domain.models import AutomationJob, Channel, Template, User
from ..domain.personalization import (
    DEFAULT_COMPANY_NAME,
    build_email_html,
    build_variables,
    render,
    trackable_review_url,
)
from ..domain.schedule import utc_now
from ..infrastructure.config import Settings
from ..infrastructure.messaging import EmailSender, OutboundEmail, OutboundSms, SmsSender
from ..infrastructure.persistence import Database, JobStore

logger = logging.getLogger(__name__)

_TEMPLATE_MISSING = {
    Channel.EMAIL: "Email template not found",
    Channel.SMS: "SMS template not found",
}

# Attempts at recording a delivered job as completed
COMPLETION_WRITE_ATTEMPTS = 3


@dataclass
class DispatchResult:
    """What happened to one job in a cycle."""
    job_id: int
    channel: Channel
    success: bool
    recipient: str = ""
    subject: str = ""
    message: str = ""
    message_id: str = ""
    error: Optional[str] = None
    test_mode: bool = False

    def to_dict(self) -> dict:
        data = {
            "jobId": self.job_id,
            "type": self.channel.value,
            "success": self.success,
            "recipient": self.recipient,
            "testMode": self.test_mode,
        }
        if self.subject:
            data["subject"] = self.subject
        if self.message:
            data["message"] = self.message
        if self.message_id:
            data["messageId"] = self.message_id
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class DispatchSummary:
    processed_jobs: int = 0
    successful_jobs: int = 0
    failed_jobs: int = 0
    results: List[DispatchResult] = field(default_factory=list)
    test_mode: bool = False

    def to_dict(self) -> dict:
        data = {
            "success": True,
            "processedJobs": self.processed_jobs,
            "successfulJobs": self.successful_jobs,
            "failedJobs": self.failed_jobs,
            "results": [result.to_dict() for result in self.results],
            "testMode": self.test_mode,
        }
        if not self.processed_jobs:
            data["message"] = "No pending automation jobs to process"
        return data


@dataclass
class _Rendered:
    subject: str
    text: str
    html: str
    from_address: str


class Dispatcher:
    """
    Sends due jobs through the injected senders.

    Usage:
        dispatcher = Dispatcher(db, JobStore(db), email_sender, sms_sender, settings)
        summary = dispatcher.process_pending(test_mode=True)
        print(summary.successful_jobs)
    """

    def __init__(
        self,
        database: Database,
        job_store: JobStore,
        email_sender: EmailSender,
        sms_sender: SmsSender,
        settings: Settings,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._db = database
        self._jobs = job_store
        self._email = email_sender
        self._sms = sms_sender
        self._settings = settings
        self._clock = clock

    def process_pending(self, test_mode: bool = False) -> DispatchSummary:
        """Run one dispatch cycle over due jobs."""
        now = self._clock()
        jobs = self._jobs.list_due(now, limit=self._settings.automation.batch_size)
        summary = DispatchSummary(test_mode=test_mode)

        if not jobs:
            logger.info("No pending automation jobs to process")
            return summary

        logger.info(f"Processing {len(jobs)} due job(s){' (test mode)' if test_mode else ''}")

        for job in jobs:
            result = self._process_job(job, test_mode)
            summary.results.append(result)
            summary.processed_jobs += 1
            if result.success:
                summary.successful_jobs += 1
            else:
                summary.failed_jobs += 1

        logger.info(
            f"Dispatch cycle done: {summary.successful_jobs} sent, "
            f"{summary.failed_jobs} failed"
        )
        return summary

    def _process_job(self, job: AutomationJob, test_mode: bool) -> DispatchResult:
        result = DispatchResult(
            job_id=job.id,
            channel=job.channel,
            success=False,
            recipient=job.recipient,
            test_mode=test_mode,
        )

        try:
            rendered = self._render(job)
            result.subject = rendered.subject
            result.message = rendered.text

            if test_mode:
                logger.info(f"[TEST] Job {job.id}: would send {job.channel.value} to {job.recipient}")
            elif job.channel == Channel.EMAIL:
                result.message_id = self._email.send(OutboundEmail(
                    from_address=rendered.from_address,
                    to=job.recipient,
                    subject=rendered.subject,
                    text=rendered.text,
                    html=rendered.html,
                ))
            else:
                result.message_id = self._sms.send(OutboundSms(
                    from_number=rendered.from_address,
                    to=job.recipient,
                    body=rendered.text,
                ))

        except Exception as e:
            error = str(e) or e.__class__.__name__
            logger.warning(f"Job {job.id} ({job.channel.value}) failed: {error}")
            result.error = error
            self._record_failure(job, error, result)
            return result

        result.success = True
        self._record_completion(job, result)
        return result

    def _record_completion(self, job: AutomationJob, result: DispatchResult):
        """Mark a delivered job completed; it stays pending if every write fails."""
        last_error = None
        for attempt in range(1, COMPLETION_WRITE_ATTEMPTS + 1):
            try:
                self._jobs.mark_completed(job.id, self._clock())
                return
            except sqlite3.Error as e:
                logger.warning(
                    f"Job {job.id}: completion write failed "
                    f"(attempt {attempt}/{COMPLETION_WRITE_ATTEMPTS}): {e}"
                )
                last_error = e

        logger.error(f"Job {job.id} was delivered but its status could not be saved")
        result.error = f"Delivered, but job status could not be saved: {last_error}"

    def _record_failure(self, job: AutomationJob, error: str, result: DispatchResult):
        try:
            self._jobs.mark_failed(job.id, error, self._clock())
        except sqlite3.Error as e:
            logger.exception(f"Job {job.id}: could not record failure")
            result.error = f"{error} (status not saved: {e})"

    def _render(self, job: AutomationJob) -> _Rendered:
        """Load the job's template and business, and personalize the content."""
        template = self._db.get_template_by_id(job.template_id, job.channel)
        if template is None:
            raise RecordNotFoundError(_TEMPLATE_MISSING[job.channel])

        user = self._db.get_user(job.user_id)
        if user is None:
            raise RecordNotFoundError("Business profile not found")

        link = self._db.get_review_link(job.user_id)
        company = (link.company_name if link else "") or user.company
        review_url = trackable_review_url(
            link.review_url if link else "",
            job.customer_id,
            fallback=self._settings.review.fallback_review_url,
        )

        rating = None
        if job.review_id is not None:
            review = self._db.get_review(job.review_id)
            rating = review.rating if review else None

        variables = build_variables(job.customer_name, company, review_url, rating)
        text = render(template.content, variables)

        if job.channel == Channel.SMS:
            return _Rendered(subject="", text=text, html="", from_address=self._settings.sms.from_number)

        subject = render(template.subject or self._settings.review.default_subject, variables)
        return _Rendered(
            subject=subject,
            text=text,
            html=build_email_html(subject, text, variables),
            from_address=self._from_address(template, user),
        )

    def _from_address(self, template: Template, user: User) -> str:
        sender = template.from_email or self._settings.smtp.from_email
        return formataddr((user.company or DEFAULT_COMPANY_NAME, sender))

    def close(self):
        """Release sender resources."""
        self._email.close()
        self._sms.close()
