"""
Per-provider outbound senders.
"""
from src.services.senders.base import (
    HttpSender,
    MessageSender,
    SenderError,
    SenderNotConfiguredError,
)
from src.services.senders.linkmobility import LinkMobilityWhatsAppSender
from src.services.senders.messenger import MessengerSender
from src.services.senders.sendgrid import SendGridEmailSender
from src.services.senders.skebby import SkebbySMSSender
from src.services.senders.twilio import TwilioSMSSender, TwilioWhatsAppSender

__all__ = [
    "HttpSender",
    "MessageSender",
    "SenderError",
    "SenderNotConfiguredError",
    "LinkMobilityWhatsAppSender",
    "MessengerSender",
    "SendGridEmailSender",
    "SkebbySMSSender",
    "TwilioSMSSender",
    "TwilioWhatsAppSender",
]
