# Messaging infrastructure - email and SMS transports
from .channel_sender import EmailSender, OutboundEmail, OutboundSms, SmsSender
from .smtp_sender import SmtpEmailSender
from .twilio_sender import TwilioSmsSender

__all__ = [
    "EmailSender",
    "OutboundEmail",
    "OutboundSms",
    "SmsSender",
    "SmtpEmailSender",
    "TwilioSmsSender",
]
