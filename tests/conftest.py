from datetime import datetime, timedelta, timezone

import pytest

from loopreview.application import build_automation_service
from loopreview.domain.errors import TransportError
from loopreview.domain.models import Channel
from loopreview.infrastructure.config import (
    AutomationSettings,
    DatabaseSettings,
    ReviewSettings,
    Settings,
    SMSSettings,
    SMTPSettings,
)
from loopreview.infrastructure.messaging import EmailSender, SmsSender
from loopreview.infrastructure.persistence import Database, JobStore

T0 = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock injected wherever services ask for `now`."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeEmailSender(EmailSender):
    def __init__(self):
        self.sent = []
        self.fail_for = set()
        self.closed = False

    def send(self, message):
        if message.to in self.fail_for:
            raise TransportError("550 Mailbox unavailable", provider="smtp")
        self.sent.append(message)
        return f"<msg-{len(self.sent)}@test>"

    def close(self):
        self.closed = True


class FakeSmsSender(SmsSender):
    def __init__(self):
        self.sent = []
        self.fail_for = set()

    def send(self, message):
        if message.to in self.fail_for:
            raise TransportError("The 'To' number is not a valid phone number.", provider="twilio")
        self.sent.append(message)
        return f"SM{len(self.sent):032d}"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database=DatabaseSettings(path=str(tmp_path / "automation.db")),
        smtp=SMTPSettings(host="smtp.test", from_email="noreply@loopreview.test"),
        sms=SMSSettings(account_sid="AC123", auth_token="secret", from_number="+15550000000"),
        automation=AutomationSettings(anonymous_marker="anon"),
        review=ReviewSettings(fallback_review_url="https://fallback.example/review"),
    )


@pytest.fixture
def db(settings) -> Database:
    database = Database(settings.database.path)
    database.init()
    return database


@pytest.fixture
def job_store(db) -> JobStore:
    return JobStore(db)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def email_sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture
def sms_sender() -> FakeSmsSender:
    return FakeSmsSender()


@pytest.fixture
def service(settings, db, email_sender, sms_sender, clock):
    return build_automation_service(
        settings,
        database=db,
        email_sender=email_sender,
        sms_sender=sms_sender,
        clock=clock,
    )


@pytest.fixture
def owner(db) -> int:
    """A Pro business with a review link."""
    user_id = db.create_user(
        "owner@sunrise.test",
        company="Sunrise Bakery",
        subscription_type="pro",
        subscription_status="active",
    )
    db.upsert_review_link(user_id, "https://g.page/sunrise-bakery", "Sunrise Bakery")
    return user_id


@pytest.fixture
def email_template(db, owner):
    return db.upsert_template(
        owner,
        Channel.EMAIL,
        content="Hi {{customerName}}, thanks for visiting {{companyName}}! {{reviewUrl}}",
        subject="{{customerName}}, how was {{companyName}}?",
        initial_trigger="immediate",
    )


@pytest.fixture
def sms_template(db, owner):
    return db.upsert_template(
        owner,
        Channel.SMS,
        content="Hi [Name], review [Company] here: [ReviewUrl]",
        initial_trigger="after_purchase",
        initial_wait_days=2,
    )
