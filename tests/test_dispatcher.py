import sqlite3
from datetime import timedelta

from loopreview.domain.models import AutomationJob, Channel, JobStatus, payload_for

from .conftest import T0


def _due_job(job_store, user_id, template_id, recipient, channel=Channel.EMAIL, review_id=None,
             customer_id="3", customer_name="Jo", minutes_ago=1):
    job = AutomationJob(
        user_id=user_id,
        template_id=template_id,
        payload=payload_for(channel, recipient),
        scheduled_for=T0 - timedelta(minutes=minutes_ago),
        customer_id=customer_id,
        customer_name=customer_name,
        review_id=review_id,
        trigger_event="positive_review",
    )
    return job_store.insert(job, T0 - timedelta(hours=1))


def test_immediate_trigger_end_to_end(service, owner, email_template, email_sender, clock):
    """Review in, job ~5 minutes out, rendered in a test-mode dispatch once due."""
    scheduled = service.submit_review(
        owner, 5, customer_id="anon-1", customer_name="Jo", customer_email="jo@example.com"
    )
    assert scheduled.jobs_scheduled == 1

    pending = service.list_pending()
    assert len(pending) == 1
    assert pending[0].scheduled_for == T0 + timedelta(minutes=5)

    # Not due yet
    assert service.process_pending().processed_jobs == 0

    clock.advance(minutes=6)
    summary = service.process_pending(test_mode=True)

    assert summary.processed_jobs == 1
    assert summary.successful_jobs == 1
    assert summary.test_mode
    result = summary.results[0]
    assert result.subject == "Jo, how was Sunrise Bakery?"
    assert "{{" not in result.subject and "{{" not in result.message
    assert result.recipient == "jo@example.com"
    assert email_sender.sent == []
    assert service.jobs.get(result.job_id).status == JobStatus.COMPLETED


def test_email_is_rendered_and_sent(service, job_store, owner, email_template, email_sender):
    job_id = _due_job(job_store, owner, email_template.id, "jo@example.com", customer_id="42")

    summary = service.process_pending()

    assert summary.successful_jobs == 1
    message = email_sender.sent[0]
    assert message.to == "jo@example.com"
    assert message.subject == "Jo, how was Sunrise Bakery?"
    assert "https://g.page/sunrise-bakery?cid=42" in message.text
    assert "Sunrise Bakery" in message.from_address
    assert "<noreply@loopreview.test>" in message.from_address
    assert "Leave a Review" in message.html
    assert summary.results[0].message_id == "<msg-1@test>"

    job = job_store.get(job_id)
    assert job.status == JobStatus.COMPLETED
    assert job.completed_at == T0


def test_sms_uses_legacy_tokens_and_configured_number(service, job_store, owner, sms_template, sms_sender):
    _due_job(job_store, owner, sms_template.id, "+15551234567", channel=Channel.SMS, customer_id="7")

    service.process_pending()

    message = sms_sender.sent[0]
    assert message.from_number == "+15550000000"
    assert message.to == "+15551234567"
    assert message.body == "Hi Jo, review Sunrise Bakery here: https://g.page/sunrise-bakery?cid=7"


def test_failing_job_does_not_stop_the_batch(service, job_store, owner, email_template, email_sender):
    first = _due_job(job_store, owner, email_template.id, "a@example.com", review_id=1, minutes_ago=3)
    broken = _due_job(job_store, owner, email_template.id, "bounce@example.com", review_id=2, minutes_ago=2)
    last = _due_job(job_store, owner, email_template.id, "c@example.com", review_id=3, minutes_ago=1)
    email_sender.fail_for.add("bounce@example.com")

    summary = service.process_pending()

    assert summary.processed_jobs == 3
    assert summary.successful_jobs == 2
    assert summary.failed_jobs == 1
    assert [r.job_id for r in summary.results] == [first, broken, last]
    assert job_store.get(first).status == JobStatus.COMPLETED
    assert job_store.get(last).status == JobStatus.COMPLETED

    failed = job_store.get(broken)
    assert failed.status == JobStatus.FAILED
    assert failed.error_message == "550 Mailbox unavailable"
    assert summary.results[1].error == "550 Mailbox unavailable"


def _locked(*args, **kwargs):
    raise sqlite3.OperationalError("database is locked")


def test_unsaved_failure_status_does_not_stop_the_batch(service, job_store, owner, email_template,
                                                        email_sender, monkeypatch):
    broken = _due_job(job_store, owner, email_template.id, "bounce@example.com", review_id=1, minutes_ago=2)
    last = _due_job(job_store, owner, email_template.id, "c@example.com", review_id=2, minutes_ago=1)
    email_sender.fail_for.add("bounce@example.com")
    monkeypatch.setattr(service.jobs, "mark_failed", _locked)

    summary = service.process_pending()

    assert summary.processed_jobs == 2
    assert summary.failed_jobs == 1
    assert summary.results[0].error == "550 Mailbox unavailable (status not saved: database is locked)"
    assert job_store.get(broken).status == JobStatus.PENDING
    assert job_store.get(last).status == JobStatus.COMPLETED


def test_completion_write_is_retried_so_the_review_is_not_sent_twice(service, owner, email_template,
                                                                     email_sender, clock, monkeypatch):
    scheduled = service.submit_review(
        owner, 5, customer_id="anon-1", customer_name="Jo", customer_email="jo@example.com"
    )
    clock.advance(minutes=6)

    mark_completed = service.jobs.mark_completed
    calls = []

    def flaky(job_id, now):
        calls.append(job_id)
        if len(calls) == 1:
            _locked()
        return mark_completed(job_id, now)

    monkeypatch.setattr(service.jobs, "mark_completed", flaky)

    summary = service.process_pending()

    assert summary.successful_jobs == 1
    assert summary.results[0].error is None
    assert len(calls) == 2

    again = service.schedule_for_review(scheduled.review_id)
    clock.advance(minutes=10)
    service.process_pending()

    assert again.jobs_scheduled == 0
    assert len(email_sender.sent) == 1


def test_delivered_job_is_never_marked_failed(service, job_store, owner, email_template,
                                             email_sender, monkeypatch):
    job_id = _due_job(job_store, owner, email_template.id, "jo@example.com")
    monkeypatch.setattr(service.jobs, "mark_completed", _locked)

    summary = service.process_pending()

    assert summary.successful_jobs == 1
    assert summary.failed_jobs == 0
    assert summary.results[0].error == "Delivered, but job status could not be saved: database is locked"
    assert len(email_sender.sent) == 1
    assert job_store.get(job_id).status == JobStatus.PENDING


def test_missing_template_fails_the_job(service, job_store, owner):
    job_id = _due_job(job_store, owner, 999, "jo@example.com")

    summary = service.process_pending()

    assert summary.failed_jobs == 1
    assert job_store.get(job_id).error_message == "Email template not found"


def test_missing_business_fails_the_job(service, db, job_store, owner, email_template):
    job_id = _due_job(job_store, 404, email_template.id, "jo@example.com")

    service.process_pending()

    assert job_store.get(job_id).error_message == "Business profile not found"


def test_business_without_review_link_gets_fallback_url(service, db, job_store, email_sender):
    user_id = db.create_user("nolink@shop.test", company="Corner Shop")
    template = db.upsert_template(user_id, Channel.EMAIL, content="Review us: {{reviewUrl}}")
    _due_job(job_store, user_id, template.id, "jo@example.com")

    service.process_pending()

    message = email_sender.sent[0]
    assert message.text == "Review us: https://fallback.example/review"
    assert message.subject == "We'd love your feedback!"


def test_processed_jobs_are_not_sent_twice(service, job_store, owner, email_template, email_sender):
    _due_job(job_store, owner, email_template.id, "jo@example.com")

    service.process_pending()
    second = service.process_pending()

    assert second.processed_jobs == 0
    assert len(email_sender.sent) == 1
    assert second.to_dict()["message"] == "No pending automation jobs to process"


def test_summary_dict_shape(service, job_store, owner, email_template):
    _due_job(job_store, owner, email_template.id, "jo@example.com")

    data = service.process_pending(test_mode=True).to_dict()

    assert data["processedJobs"] == 1
    assert data["successfulJobs"] == 1
    assert data["failedJobs"] == 0
    assert data["testMode"] is True
    assert data["results"][0]["type"] == "email"
    assert data["results"][0]["recipient"] == "jo@example.com"
