"""Outbound message delivery: WhatsApp through Twilio, e-mail over SMTP, or
the log when nothing is configured.

Every dispatcher exposes ``send(recipients, body) -> bool`` and an
``address_kind`` saying what its recipients are (phone numbers, e-mail
addresses, or anything). Delivery is best effort; callers decide what a
failure means for them.
"""
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from twilio.base.exceptions import TwilioException
from twilio.rest import Client

logger = logging.getLogger(__name__)

PHONE_ADDRESS = "phone"
EMAIL_ADDRESS = "email"
ANY_ADDRESS = "any"


class PartialDeliveryError(Exception):
    """Some recipients got the message, the rest were rejected."""

    def __init__(self, delivered_to, failed):
        super().__init__(
            f"Delivered to {len(delivered_to)} of {len(delivered_to) + len(failed)} recipient(s); "
            f"failed: {', '.join(failed)}"
        )
        self.delivered_to = list(delivered_to)
        self.failed = list(failed)


class ConsoleDispatcher:
    """Development fallback: writes the message to the log and treats it as sent."""

    address_kind = ANY_ADDRESS

    def send(self, recipients, body):
        logger.info("[DEV MESSAGE] To: %s | %s", ", ".join(recipients), body)
        return True


class WhatsAppDispatcher:

    address_kind = PHONE_ADDRESS

    def __init__(self, account_sid, auth_token, from_number, client=None):
        self.from_number = f"whatsapp:{from_number}"
        self.client = client or Client(account_sid, auth_token)

    def send(self, recipients, body):
        # One message per number; a rejected number does not stop the rest
        delivered, failed = [], []
        for phone in recipients:
            try:
                message = self.client.messages.create(
                    from_=self.from_number,
                    to=f"whatsapp:{phone}",
                    body=body,
                )
            except TwilioException as exc:
                logger.error("WhatsApp message to %s rejected: %s", phone, exc)
                failed.append(phone)
                continue
            logger.info("WhatsApp message %s queued for %s", message.sid, phone)
            delivered.append(phone)

        if failed:
            raise PartialDeliveryError(delivered, failed)
        return True


class EmailDispatcher:

    address_kind = EMAIL_ADDRESS

    def __init__(self, host, port, username, password, sender=None, subject="SafeMove Alert"):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender or username
        self.subject = subject

    def send(self, recipients, body):
        msg = MIMEMultipart()
        msg["From"] = self.sender
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = self.subject
        msg.attach(MIMEText(body, "plain"))

        with smtplib.SMTP(self.host, self.port) as server:
            server.starttls()
            server.login(self.username, self.password)
            server.sendmail(self.sender, list(recipients), msg.as_string())
        logger.info("E-mail alert sent to %d recipient(s)", len(recipients))
        return True


def build_dispatcher(settings):
    if settings.whatsapp_enabled:
        return WhatsAppDispatcher(
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            settings.twilio_whatsapp_number,
        )
    if settings.email_enabled:
        return EmailDispatcher(
            settings.smtp_host,
            settings.smtp_port,
            settings.mail_username,
            settings.mail_password,
            sender=settings.mail_default_sender,
        )
    logger.warning("No messaging provider configured, alerts will only be logged")
    return ConsoleDispatcher()
