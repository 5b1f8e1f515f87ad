from datetime import datetime, timedelta, timezone

import pytest

from loopreview.domain.errors import ValidationError
from loopreview.domain.models import Channel, Customer, Review, Template, TriggerEvent
from loopreview.domain.triggers import (
    JobIntent,
    classify_rating,
    evaluate_new_customer,
    evaluate_review,
)

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)

EMAIL_TEMPLATE = Template(id=1, user_id=7, channel=Channel.EMAIL, content="Hi {{customerName}}")
SMS_TEMPLATE = Template(
    id=2, user_id=7, channel=Channel.SMS, content="Hi [Name]",
    initial_trigger="after_purchase", initial_wait_days=3,
)


def _review(**overrides) -> Review:
    data = dict(
        id=11, user_id=7, rating=5, customer_id="3",
        customer_name="Jo", customer_email="jo@example.com",
    )
    data.update(overrides)
    return Review(**data)


CUSTOMER = Customer(id=3, user_id=7, name="Jo", email="jo.record@example.com", phone="+15551234567")


@pytest.mark.parametrize("rating, expected", [
    (5, TriggerEvent.POSITIVE_REVIEW),
    (4, TriggerEvent.POSITIVE_REVIEW),
    (3, TriggerEvent.NEUTRAL_REVIEW),
    (2, TriggerEvent.NEGATIVE_REVIEW),
    (1, TriggerEvent.NEGATIVE_REVIEW),
    (None, TriggerEvent.NEUTRAL_REVIEW),
])
def test_classify_rating(rating, expected):
    assert classify_rating(rating) == expected


def test_review_with_both_templates_and_phone_gets_two_intents():
    decision = evaluate_review(_review(), EMAIL_TEMPLATE, SMS_TEMPLATE, customer=CUSTOMER)

    assert [i.channel for i in decision.intents] == [Channel.EMAIL, Channel.SMS]
    assert decision.intents[0].recipient == "jo@example.com"
    assert decision.intents[1].recipient == "+15551234567"
    assert decision.skipped == []


def test_negative_review_still_schedules_but_records_classification():
    decision = evaluate_review(_review(rating=1), EMAIL_TEMPLATE, None, customer=CUSTOMER)

    assert decision.trigger_event == TriggerEvent.NEGATIVE_REVIEW
    assert len(decision.intents) == 1
    assert decision.intents[0].trigger_event == TriggerEvent.NEGATIVE_REVIEW


def test_anonymous_review_never_gets_sms():
    review = _review(customer_id="anon-8f2c")
    decision = evaluate_review(review, EMAIL_TEMPLATE, SMS_TEMPLATE, customer=CUSTOMER)

    assert [i.channel for i in decision.intents] == [Channel.EMAIL]
    assert decision.skipped == [
        {"type": "sms", "reason": "No phone number available (anonymous customer)"}
    ]


def test_email_falls_back_to_customer_record():
    decision = evaluate_review(_review(customer_email=""), EMAIL_TEMPLATE, None, customer=CUSTOMER)
    assert decision.intents[0].recipient == "jo.record@example.com"


def test_missing_templates_and_contacts_are_reported_as_skips():
    decision = evaluate_review(_review(customer_email=""), None, SMS_TEMPLATE, customer=None)

    assert decision.intents == []
    assert decision.skipped == [
        {"type": "email", "reason": "No email template configured"},
        {"type": "sms", "reason": "No phone number available"},
    ]


def test_new_customer_without_phone_gets_email_only():
    customer = Customer(id=9, user_id=7, name="Sam", email="sam@example.com", phone="")
    decision = evaluate_new_customer(customer, EMAIL_TEMPLATE, SMS_TEMPLATE)

    assert decision.trigger_event == TriggerEvent.CUSTOMER_CREATED
    assert [i.channel for i in decision.intents] == [Channel.EMAIL]
    assert decision.intents[0].customer_id == "9"
    assert decision.intents[0].review_id is None
    assert decision.skipped == [{"type": "sms", "reason": "No phone number available"}]


def test_intent_to_job_uses_template_timing():
    decision = evaluate_review(_review(), None, SMS_TEMPLATE, customer=CUSTOMER)
    job = decision.intents[0].to_job(NOW)

    assert job.channel == Channel.SMS
    assert job.scheduled_for == NOW + timedelta(days=3)
    assert job.trigger_type == "after_purchase"
    assert job.wait_days == 3
    assert job.trigger_event == "positive_review"
    assert job.review_id == 11


def test_intent_without_recipient_cannot_become_a_job():
    intent = JobIntent(
        user_id=7, channel=Channel.EMAIL, template=EMAIL_TEMPLATE, recipient="",
        customer_id="3", customer_name="Jo", trigger_event=TriggerEvent.POSITIVE_REVIEW,
    )
    with pytest.raises(ValidationError, match="No customer email available"):
        intent.to_job(NOW)
