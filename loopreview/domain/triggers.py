"""
Trigger Evaluator
=================

Decides which follow-ups a review or new-customer event is owed.

POLICY:
- Reviews are classified by rating (positive / neutral / negative). The
  classification is stored on each job for audit, but it does not gate
  scheduling: every channel with a template and a reachable recipient gets
  a job.
- SMS needs a phone from the customer record. Anonymous reviewers have no
  customer record, so they are never SMS-eligible.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .models import (
    AutomationJob,
    Channel,
    Customer,
    Review,
    Template,
    TriggerEvent,
    payload_for,
)
from .schedule import compute_fire_time

logger = logging.getLogger(__name__)

POSITIVE_RATING = 4
NEGATIVE_RATING = 2

_LABELS = {Channel.EMAIL: "email", Channel.SMS: "SMS"}


def classify_rating(rating: Optional[int]) -> TriggerEvent:
    """rating >= 4 positive, <= 2 negative, anything else neutral."""
    try:
        value = int(rating)
    except (TypeError, ValueError):
        return TriggerEvent.NEUTRAL_REVIEW

    if value >= POSITIVE_RATING:
        return TriggerEvent.POSITIVE_REVIEW
    if value <= NEGATIVE_RATING:
        return TriggerEvent.NEGATIVE_REVIEW
    return TriggerEvent.NEUTRAL_REVIEW


@dataclass
class JobIntent:
    """A job the evaluator wants created, before timing and dedup."""
    user_id: int
    channel: Channel
    template: Template
    recipient: str
    customer_id: str
    customer_name: str
    trigger_event: TriggerEvent
    review_id: Optional[int] = None

    def to_job(self, now: datetime) -> AutomationJob:
        """Attach the fire time; raises ValidationError if the recipient is empty."""
        wait_days = max(int(self.template.initial_wait_days or 0), 0)
        return AutomationJob(
            user_id=self.user_id,
            template_id=self.template.id,
            payload=payload_for(self.channel, self.recipient),
            scheduled_for=compute_fire_time(self.template.initial_trigger, wait_days, now),
            customer_id=self.customer_id,
            customer_name=self.customer_name,
            review_id=self.review_id,
            trigger_type=self.template.initial_trigger,
            wait_days=wait_days,
            trigger_event=self.trigger_event.value,
        )


@dataclass
class TriggerDecision:
    """Evaluator output: zero, one or two intents plus why others were skipped."""
    trigger_event: TriggerEvent
    intents: List[JobIntent] = field(default_factory=list)
    skipped: List[dict] = field(default_factory=list)

    def skip(self, channel: Channel, reason: str):
        self.skipped.append({"type": channel.value, "reason": reason})


def evaluate_review(
    review: Review,
    email_template: Optional[Template],
    sms_template: Optional[Template],
    customer: Optional[Customer] = None,
    anonymous_marker: str = "anon",
) -> TriggerDecision:
    """
    Evaluate a submitted review.

    Args:
        review: The review event.
        email_template / sms_template: The business's templates, if any.
        customer: The customer record, already looked up by the caller for
            non-anonymous reviews (None for anonymous ones or when missing).
        anonymous_marker: Sentinel identifying anonymous customer ids.
    """
    decision = TriggerDecision(trigger_event=classify_rating(review.rating))
    anonymous = review.is_anonymous(anonymous_marker)
    if anonymous:
        customer = None

    name = review.customer_name or (customer.name if customer else "")

    if email_template is None:
        decision.skip(Channel.EMAIL, "No email template configured")
    else:
        email = review.customer_email or (customer.email if customer else "")
        if email:
            decision.intents.append(JobIntent(
                user_id=review.user_id,
                channel=Channel.EMAIL,
                template=email_template,
                recipient=email,
                customer_id=review.customer_id or "",
                customer_name=name,
                trigger_event=decision.trigger_event,
                review_id=review.id,
            ))
        else:
            decision.skip(Channel.EMAIL, "No customer email available")

    if sms_template is None:
        decision.skip(Channel.SMS, "No SMS template configured")
    elif anonymous:
        decision.skip(Channel.SMS, "No phone number available (anonymous customer)")
    elif customer is None or not customer.phone:
        decision.skip(Channel.SMS, "No phone number available")
    else:
        decision.intents.append(JobIntent(
            user_id=review.user_id,
            channel=Channel.SMS,
            template=sms_template,
            recipient=customer.phone,
            customer_id=review.customer_id or "",
            customer_name=name,
            trigger_event=decision.trigger_event,
            review_id=review.id,
        ))

    logger.debug(
        f"Review {review.id}: {decision.trigger_event.value}, "
        f"{len(decision.intents)} intent(s), {len(decision.skipped)} skipped"
    )
    return decision


def evaluate_new_customer(
    customer: Customer,
    email_template: Optional[Template],
    sms_template: Optional[Template],
) -> TriggerDecision:
    """Evaluate a freshly created customer; contact details come from the record."""
    decision = TriggerDecision(trigger_event=TriggerEvent.CUSTOMER_CREATED)
    targets = (
        (Channel.EMAIL, email_template, customer.email, "No customer email available"),
        (Channel.SMS, sms_template, customer.phone, "No phone number available"),
    )

    for channel, template, recipient, missing in targets:
        if template is None:
            decision.skip(channel, f"No {_LABELS[channel]} template configured")
            continue
        if not recipient:
            decision.skip(channel, missing)
            continue
        decision.intents.append(JobIntent(
            user_id=customer.user_id,
            channel=channel,
            template=template,
            recipient=recipient,
            customer_id=str(customer.id),
            customer_name=customer.name,
            trigger_event=decision.trigger_event,
        ))

    return decision
