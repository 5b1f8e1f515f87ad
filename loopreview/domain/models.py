"""
Domain Models - Automation Jobs and the Records They Are Built From
====================================================================

ARCHITECTURAL DECISION:
- A job's recipient lives in a channel-specific payload (EmailPayload or
  SmsPayload), validated when the job is constructed. A job that exists
  always has a usable recipient for its channel.
- Recipient name/email/phone are snapshots taken at scheduling time and are
  never re-resolved, so later edits to the customer record cannot redirect
  a message that is already queued.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from .errors import ValidationError

ANONYMOUS_MARKER = "anon"


class Channel(Enum):
    """Delivery medium for a follow-up."""
    EMAIL = "email"
    SMS = "sms"


class JobStatus(Enum):
    """Lifecycle of an automation job. COMPLETED and FAILED are terminal."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class TriggerType(Enum):
    """When a template's follow-up should fire."""
    IMMEDIATE = "immediate"
    AFTER_PURCHASE = "after_purchase"
    AFTER_INTERACTION = "after_interaction"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    OTHER = "other"

    @classmethod
    def parse(cls, value) -> "TriggerType":
        """Map a stored trigger string to the enum; unknown values are OTHER."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.OTHER


class TriggerEvent(Enum):
    """Classification of the event that produced a job."""
    POSITIVE_REVIEW = "positive_review"
    NEUTRAL_REVIEW = "neutral_review"
    NEGATIVE_REVIEW = "negative_review"
    CUSTOMER_CREATED = "customer_created"


# ── Job payloads ───────────────────────────────────────────────────

@dataclass(frozen=True)
class EmailPayload:
    """Recipient snapshot for an email job."""
    customer_email: str

    def __post_init__(self):
        if not (self.customer_email or "").strip():
            raise ValidationError("No customer email available")

    @property
    def channel(self) -> Channel:
        return Channel.EMAIL

    @property
    def recipient(self) -> str:
        return self.customer_email


@dataclass(frozen=True)
class SmsPayload:
    """Recipient snapshot for an SMS job."""
    customer_phone: str

    def __post_init__(self):
        if not (self.customer_phone or "").strip():
            raise ValidationError("No customer phone available")

    @property
    def channel(self) -> Channel:
        return Channel.SMS

    @property
    def recipient(self) -> str:
        return self.customer_phone


JobPayload = Union[EmailPayload, SmsPayload]


def payload_for(channel: Channel, recipient: Optional[str]) -> JobPayload:
    """Build the payload matching a channel; raises ValidationError if empty."""
    if channel == Channel.EMAIL:
        return EmailPayload(customer_email=recipient or "")
    return SmsPayload(customer_phone=recipient or "")


@dataclass
class AutomationJob:
    """One scheduled, single-channel follow-up tied to a customer event."""
    user_id: int
    template_id: int
    payload: JobPayload
    scheduled_for: datetime
    customer_id: str = ""
    customer_name: str = ""
    review_id: Optional[int] = None
    trigger_type: str = TriggerType.IMMEDIATE.value
    wait_days: int = 0
    trigger_event: str = ""
    status: JobStatus = JobStatus.PENDING
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    business_name: str = ""

    def __post_init__(self):
        if not isinstance(self.payload, (EmailPayload, SmsPayload)):
            raise ValidationError(f"Unsupported job payload: {type(self.payload).__name__}")

    @property
    def channel(self) -> Channel:
        return self.payload.channel

    @property
    def recipient(self) -> str:
        return self.payload.recipient

    def to_dict(self) -> dict:
        """JSON-friendly view used by the API and the cron runner."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "review_id": self.review_id,
            "template_id": self.template_id,
            "template_type": self.channel.value,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_email": self.recipient if self.channel == Channel.EMAIL else None,
            "customer_phone": self.recipient if self.channel == Channel.SMS else None,
            "scheduled_for": _iso(self.scheduled_for),
            "status": self.status.value,
            "trigger_type": self.trigger_type,
            "trigger_event": self.trigger_event,
            "wait_days": self.wait_days,
            "created_at": _iso(self.created_at),
            "completed_at": _iso(self.completed_at),
            "error_message": self.error_message,
            "company": self.business_name,
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ── Records consumed from the rest of the product ──────────────────

@dataclass
class Template:
    """Email or SMS template; one per business per channel."""
    id: int
    user_id: int
    channel: Channel
    content: str
    subject: str = ""
    from_email: str = ""
    sender_name: str = ""
    name: str = ""
    initial_trigger: str = TriggerType.IMMEDIATE.value
    initial_wait_days: int = 0
    created_at: str = ""
    updated_at: str = ""

    @property
    def trigger(self) -> TriggerType:
        return TriggerType.parse(self.initial_trigger)


@dataclass
class Review:
    """A submitted star rating, owned by a business."""
    id: int
    user_id: int
    rating: int
    customer_id: str = ""
    customer_name: str = ""
    customer_email: str = ""
    comment: str = ""
    created_at: str = ""

    def is_anonymous(self, marker: str = ANONYMOUS_MARKER) -> bool:
        return is_anonymous_customer(self.customer_id, marker)


@dataclass
class Customer:
    """Customer record of a business."""
    id: int
    user_id: int
    name: str = ""
    email: str = ""
    phone: str = ""
    created_at: str = ""


@dataclass
class User:
    """Business owner account (the tenant automation runs for)."""
    id: int
    email: str
    company: str = ""
    subscription_type: str = "free"
    subscription_status: str = ""
    created_at: str = ""


@dataclass
class ReviewLink:
    """The business's public review page."""
    user_id: int
    review_url: str = ""
    company_name: str = ""


@dataclass
class ScheduledJobInfo:
    """Outcome of one channel in a scheduling call."""
    job_id: int
    channel: Channel
    scheduled_for: datetime
    trigger_type: str
    wait_days: int
    trigger_event: str

    def to_dict(self) -> dict:
        return {
            "success": True,
            "jobId": self.job_id,
            "type": self.channel.value,
            "scheduledFor": self.scheduled_for.isoformat(),
            "triggerType": self.trigger_type,
            "waitDays": self.wait_days,
            "triggerEvent": self.trigger_event,
        }


@dataclass
class ScheduleResult:
    """Result of scheduling automation for one review or customer event."""
    success: bool
    jobs_scheduled: int = 0
    scheduled_jobs: list = field(default_factory=list)
    skipped: list = field(default_factory=list)
    review_id: Optional[int] = None
    customer_id: Optional[str] = None
    trigger_event: str = ""
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "jobsScheduled": self.jobs_scheduled,
            "scheduledJobs": [job.to_dict() for job in self.scheduled_jobs],
            "skipped": list(self.skipped),
            "triggerEvent": self.trigger_event,
        }
        if self.review_id is not None:
            data["reviewId"] = self.review_id
        if self.customer_id is not None:
            data["customerId"] = self.customer_id
        if self.error:
            data["error"] = self.error
        return data


def is_anonymous_customer(customer_id, marker: str = ANONYMOUS_MARKER) -> bool:
    """A customer id is anonymous when empty or carrying the sentinel marker."""
    text = str(customer_id or "").strip()
    return not text or marker in text
