from datetime import timedelta

import pytest

from loopreview.domain.errors import ValidationError
from loopreview.domain.models import Channel, JobStatus

from .conftest import T0


def _customer(db, owner, phone="+15551234567", email="jo@example.com"):
    return db.add_customer(owner, "Jo Doe", email=email, phone=phone)


def test_review_schedules_both_channels(service, db, owner, email_template, sms_template, clock):
    customer_id = _customer(db, owner)
    review_id = db.add_review(owner, 5, customer_id=str(customer_id), customer_name="Jo Doe",
                              customer_email="jo@example.com", created_at=clock())

    result = service.schedule_for_review(review_id)

    assert result.success
    assert result.jobs_scheduled == 2
    assert result.trigger_event == "positive_review"
    by_channel = {info.channel: info for info in result.scheduled_jobs}
    assert by_channel[Channel.EMAIL].scheduled_for == T0 + timedelta(minutes=5)
    assert by_channel[Channel.SMS].scheduled_for == T0 + timedelta(days=2)
    assert by_channel[Channel.SMS].wait_days == 2


def test_scheduling_is_idempotent(service, db, owner, email_template, sms_template, clock):
    customer_id = _customer(db, owner)
    review_id = db.add_review(owner, 4, customer_id=str(customer_id),
                              customer_email="jo@example.com", created_at=clock())

    service.schedule_for_review(review_id)
    second = service.schedule_for_review(review_id)
    third = service.schedule_for_review(review_id)

    assert second.success and third.success
    assert second.jobs_scheduled == 0
    assert {"type": "email", "reason": "Already scheduled"} in second.skipped
    assert service.jobs.count_by_status()["pending"] == 2


def test_anonymous_review_schedules_email_only(service, db, owner, email_template, sms_template, clock):
    review_id = db.add_review(owner, 5, customer_id="anon-5f1e", customer_name="Jo",
                              customer_email="jo@example.com", created_at=clock())

    result = service.schedule_for_review(review_id)

    assert result.jobs_scheduled == 1
    assert result.scheduled_jobs[0].channel == Channel.EMAIL
    assert result.skipped == [
        {"type": "sms", "reason": "No phone number available (anonymous customer)"}
    ]


def test_missing_review_reports_not_found(service, owner):
    result = service.schedule_for_review(404)

    assert not result.success
    assert result.error == "Review not found"
    assert result.jobs_scheduled == 0


def test_review_of_another_business_is_not_found(service, db, owner, email_template, clock):
    other = db.create_user("other@shop.test", company="Other Shop")
    review_id = db.add_review(other, 5, customer_email="x@example.com", created_at=clock())

    assert service.schedule_for_review(review_id, user_id=owner).error == "Review not found"


def test_review_without_templates_schedules_nothing(service, db, owner, clock):
    review_id = db.add_review(owner, 3, customer_email="jo@example.com", created_at=clock())

    result = service.schedule_for_review(review_id)

    assert result.success
    assert result.jobs_scheduled == 0
    assert result.trigger_event == "neutral_review"
    assert [s["reason"] for s in result.skipped] == [
        "No email template configured",
        "No SMS template configured",
    ]


def test_insert_failure_on_one_channel_keeps_the_other(
    service, db, owner, email_template, sms_template, clock, monkeypatch
):
    customer_id = _customer(db, owner)
    review_id = db.add_review(owner, 5, customer_id=str(customer_id),
                              customer_email="jo@example.com", created_at=clock())
    real_insert = service.jobs.insert

    def flaky_insert(job, now):
        if job.channel == Channel.SMS:
            raise ValidationError("database is locked")
        return real_insert(job, now)

    monkeypatch.setattr(service.jobs, "insert", flaky_insert)
    result = service.schedule_for_review(review_id)

    assert result.jobs_scheduled == 1
    assert {"type": "sms", "reason": "database is locked"} in result.skipped


def test_new_customer_window(service, db, owner, email_template, sms_template, clock):
    customer_id = _customer(db, owner)

    first = service.schedule_for_customer(owner, customer_id)
    assert first.jobs_scheduled == 2
    assert first.trigger_event == "customer_created"

    clock.advance(minutes=30)
    assert service.schedule_for_customer(owner, customer_id).jobs_scheduled == 0

    clock.advance(minutes=31)
    assert service.schedule_for_customer(owner, customer_id).jobs_scheduled == 2


def test_unknown_customer(service, owner):
    result = service.schedule_for_customer(owner, 999)
    assert not result.success
    assert result.error == "Customer not found"


def test_template_save_backfills_recent_reviews(service, db, owner, clock):
    recent = db.add_review(owner, 5, customer_email="a@example.com", created_at=clock() - timedelta(days=3))
    db.add_review(owner, 4, customer_email="b@example.com", created_at=clock() - timedelta(days=45))
    db.add_review(owner, 2, customer_email="", created_at=clock() - timedelta(days=1))

    template, backfill = service.save_template(
        owner, Channel.EMAIL, content="Hi {{customerName}}", subject="Thanks"
    )

    assert template.channel == Channel.EMAIL
    assert backfill.reviews_considered == 2
    assert backfill.jobs_scheduled == 1
    assert backfill.scheduled_jobs[0].channel == Channel.EMAIL
    assert backfill.skipped[0]["reason"] == "No customer email available"
    assert service.jobs.has_active_job(owner, recent, Channel.EMAIL)


def test_backfill_skips_reviews_with_pending_jobs(service, db, owner, email_template, clock):
    review_id = db.add_review(owner, 5, customer_email="a@example.com", created_at=clock())
    service.schedule_for_review(review_id)

    backfill = service.on_template_saved(owner, Channel.EMAIL)

    assert backfill.jobs_scheduled == 0
    assert backfill.skipped == []


def test_backfill_respects_limit(service, db, owner, email_template, settings, clock):
    for i in range(settings.automation.backfill_limit + 5):
        db.add_review(owner, 5, customer_email=f"c{i}@example.com", created_at=clock() - timedelta(minutes=i))

    backfill = service.on_template_saved(owner, Channel.EMAIL)

    assert backfill.reviews_considered == settings.automation.backfill_limit
    assert backfill.jobs_scheduled == settings.automation.backfill_limit


def test_user_backfill_by_event_type(service, db, owner, email_template, sms_template, clock):
    customer_id = _customer(db, owner)
    db.add_review(owner, 5, customer_id=str(customer_id), customer_email="jo@example.com", created_at=clock())

    sms_only = service.schedule_for_user(owner, "sms")
    assert sms_only.jobs_scheduled == 1
    assert sms_only.scheduled_jobs[0].channel == Channel.SMS

    both = service.schedule_for_user(owner)
    assert both.jobs_scheduled == 1
    assert both.scheduled_jobs[0].channel == Channel.EMAIL


def test_user_backfill_unknown_event_type(service, owner, email_template):
    result = service.schedule_for_user(owner, "birthday")

    assert result.success
    assert result.jobs_scheduled == 0
    assert "Unknown event type" in result.message


@pytest.mark.parametrize("rating", [0, 6])
def test_submit_review_validates_rating(service, owner, rating):
    with pytest.raises(ValidationError):
        service.submit_review(owner, rating)


def test_submit_review_records_and_schedules(service, owner, email_template):
    result = service.submit_review(owner, 5, customer_name="Jo", customer_email="jo@example.com")

    assert result.jobs_scheduled == 1
    job = service.list_pending()[0]
    assert job.review_id == result.review_id
    assert job.status == JobStatus.PENDING
    assert job.customer_name == "Jo"
