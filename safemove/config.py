import os
from dataclasses import dataclass, field
from typing import List, Optional


def _split_contacts(raw):
    return [item.strip() for item in (raw or "").split(",") if item.strip()]


@dataclass
class Settings:
    # Twilio WhatsApp sender
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_whatsapp_number: Optional[str] = None

    # SMTP (Gmail app password works here)
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    mail_username: Optional[str] = None
    mail_password: Optional[str] = None
    mail_default_sender: Optional[str] = None

    # Who hears about emergencies and overdue students
    emergency_contacts: List[str] = field(default_factory=list)
    admin_alert_contacts: List[str] = field(default_factory=list)

    log_level: str = "INFO"

    @property
    def whatsapp_enabled(self):
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.twilio_whatsapp_number)

    @property
    def email_enabled(self):
        return bool(self.mail_username and self.mail_password)


def get_settings():
    return Settings(
        twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID"),
        twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN"),
        twilio_whatsapp_number=os.getenv("TWILIO_WHATSAPP_NUMBER"),
        smtp_host=os.getenv("SMTP_HOST", "smtp.gmail.com"),
        smtp_port=int(os.getenv("SMTP_PORT", "587")),
        mail_username=os.getenv("MAIL_USERNAME"),
        mail_password=os.getenv("MAIL_PASSWORD"),
        mail_default_sender=os.getenv("MAIL_DEFAULT_SENDER", os.getenv("MAIL_USERNAME")),
        emergency_contacts=_split_contacts(os.getenv("EMERGENCY_CONTACTS")),
        admin_alert_contacts=_split_contacts(os.getenv("ADMIN_ALERT_CONTACTS")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
