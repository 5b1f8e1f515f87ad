"""
Settings Module - Centralized Configuration Management
=======================================================

ARCHITECTURAL DECISION:
- All configuration is loaded from environment variables (no hardcoded secrets)
- Settings are immutable dataclasses for safety and clarity
- Single source of truth for all configurable values

EXTENSIBILITY:
- To switch SMS provider: add provider-specific settings next to SMSSettings
- To move off SQLite: replace DatabaseSettings.path with a connection URL
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache

from dotenv import load_dotenv

# Load .env file if present (development convenience)
load_dotenv()


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class DatabaseSettings:
    """SQLite storage location."""

    path: str = field(default_factory=lambda: os.getenv("DATABASE_FILE", "loopreview.db"))


@dataclass(frozen=True)
class SMTPSettings:
    """Outbound email transport."""

    host: str = field(default_factory=lambda: os.getenv("SMTP_HOST", ""))
    port: int = field(default_factory=lambda: _env_int("SMTP_PORT", 587))
    username: str = field(default_factory=lambda: os.getenv("SMTP_USER", ""))
    password: str = field(default_factory=lambda: os.getenv("SMTP_PASS", ""))

    # SMTP_SECURE=true means implicit TLS (port 465); otherwise STARTTLS when offered
    use_ssl: bool = field(default_factory=lambda: _env_bool("SMTP_SECURE"))

    from_email: str = field(
        default_factory=lambda: os.getenv("FROM_EMAIL", "noreply@yourcompany.com")
    )

    # A stuck SMTP server must not hold a dispatch slot forever
    timeout_seconds: int = field(default_factory=lambda: _env_int("SMTP_TIMEOUT", 20))


@dataclass(frozen=True)
class SMSSettings:
    """Twilio SMS gateway settings."""

    account_sid: str = field(default_factory=lambda: os.getenv("TWILIO_ACCOUNT_SID", ""))
    auth_token: str = field(default_factory=lambda: os.getenv("TWILIO_AUTH_TOKEN", ""))
    from_number: str = field(default_factory=lambda: os.getenv("TWILIO_PHONE_NUMBER", ""))
    api_url: str = "https://api.twilio.com/2010-04-01"
    timeout_seconds: int = field(default_factory=lambda: _env_int("SMS_TIMEOUT", 15))


@dataclass(frozen=True)
class AutomationSettings:
    """Scheduling and dispatch limits."""

    # Max jobs sent per dispatch cycle
    batch_size: int = 50

    # Max jobs returned by the pending-jobs inspection endpoint
    list_limit: int = 100

    # New-customer events within this window are treated as duplicates
    duplicate_window_minutes: int = 60

    # Template-save backfill covers reviews this recent
    backfill_days: int = 30
    backfill_limit: int = 50

    # Customer ids containing this marker are anonymous reviewers
    anonymous_marker: str = field(default_factory=lambda: os.getenv("ANONYMOUS_MARKER", "anon"))

    # Subscription tiers allowed to use automation
    entitled_tiers: tuple = ("pro", "enterprise")


@dataclass(frozen=True)
class ReviewSettings:
    """Review link settings."""

    fallback_review_url: str = field(
        default_factory=lambda: os.getenv("FALLBACK_REVIEW_URL", "https://your-review-link.com")
    )
    default_subject: str = "We'd love your feedback!"


@dataclass(frozen=True)
class Settings:
    """
    Root settings container - Single source of truth for all configuration.

    Usage:
        from loopreview.infrastructure.config import get_settings
        settings = get_settings()
        print(settings.smtp.host)
    """

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    smtp: SMTPSettings = field(default_factory=SMTPSettings)
    sms: SMSSettings = field(default_factory=SMSSettings)
    automation: AutomationSettings = field(default_factory=AutomationSettings)
    review: ReviewSettings = field(default_factory=ReviewSettings)

    def validate(self) -> list[str]:
        """
        Validate settings and return list of warnings/errors.
        Returns empty list if all settings are valid.
        """
        issues = []

        if not self.smtp.host:
            issues.append(
                "WARNING: SMTP_HOST not set. "
                "Email jobs will fail unless run in test mode."
            )

        if not (self.sms.account_sid and self.sms.auth_token and self.sms.from_number):
            issues.append(
                "WARNING: TWILIO_ACCOUNT_SID / TWILIO_AUTH_TOKEN / TWILIO_PHONE_NUMBER not set. "
                "SMS jobs will fail unless run in test mode."
            )

        if "your-review-link" in self.review.fallback_review_url:
            issues.append(
                "WARNING: FALLBACK_REVIEW_URL contains placeholder. "
                "Businesses without a review link will get a dead link."
            )

        return issues


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get singleton Settings instance.
    Cached to ensure consistent settings throughout application lifecycle.
    """
    return Settings()
