"""
Channel Senders - Abstraction Layer for Outbound Messages
==========================================================

Provides a unified interface for the two delivery channels. The dispatcher
only talks to these interfaces; concrete transports are constructed once and
injected.

USAGE:
    sender = SmtpEmailSender(get_settings().smtp)
    message_id = sender.send(OutboundEmail(
        from_address='"Sunrise Bakery" <hello@sunrise.example>',
        to="jo@example.com",
        subject="Thanks for visiting!",
        text="...",
        html="<p>...</p>",
    ))
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutboundEmail:
    """A fully rendered email ready for the transport."""
    from_address: str
    to: str
    subject: str
    text: str
    html: str = ""


@dataclass(frozen=True)
class OutboundSms:
    """A fully rendered SMS ready for the gateway."""
    from_number: str
    to: str
    body: str


class EmailSender(ABC):
    """
    Abstract base class for email transports.
    Implement this interface to add new email backends.
    """

    @abstractmethod
    def send(self, message: OutboundEmail) -> str:
        """Send the email. Returns the provider message id; raises TransportError."""
        ...

    def close(self) -> None:
        """Release transport resources."""
        pass


class SmsSender(ABC):
    """
    Abstract base class for SMS transports.
    Implement this interface to add new SMS gateways.
    """

    @abstractmethod
    def send(self, message: OutboundSms) -> str:
        """Send the SMS. Returns the provider message id; raises TransportError."""
        ...

    def close(self) -> None:
        """Release transport resources."""
        pass
