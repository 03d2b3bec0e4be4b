import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from twilio.rest import Client

from config import NotificationConfig

logger = logging.getLogger(__name__)


class DeliveryError(Exception):
    pass


class SmsSender:
    """Sends SMS through Twilio; in dry-run mode the message is only logged."""

    def __init__(self, account_sid: Optional[str] = NotificationConfig.TWILIO_ACCOUNT_SID,
                 auth_token: Optional[str] = NotificationConfig.TWILIO_AUTH_TOKEN,
                 from_number: Optional[str] = NotificationConfig.TWILIO_PHONE_NUMBER,
                 dry_run: bool = NotificationConfig.DRY_RUN):
        self.from_number = from_number
        self.dry_run = dry_run
        self._client = None
        if not dry_run:
            if not (account_sid and auth_token and from_number):
                raise DeliveryError("Twilio configuration missing in environment variables.")
            self._client = Client(account_sid, auth_token)

    def send(self, to: str, body: str) -> Optional[str]:
        if self.dry_run:
            logger.info("[DRY RUN] SMS would be sent to %s: %s", to, body)
            return None
        try:
            message = self._client.messages.create(body=body, from_=self.from_number, to=to)
        except Exception as exc:
            raise DeliveryError(f"SMS send failed: {exc}") from exc
        logger.info("SMS %s sent to %s", message.sid, to)
        return message.sid


class EmailSender:
    """Plain-text email over SMTP with STARTTLS."""

    def __init__(self, host: Optional[str] = NotificationConfig.SMTP_HOST,
                 port: int = NotificationConfig.SMTP_PORT,
                 username: Optional[str] = NotificationConfig.SMTP_USER,
                 password: Optional[str] = NotificationConfig.SMTP_PASSWORD,
                 sender_email: Optional[str] = NotificationConfig.FROM_EMAIL,
                 sender_name: str = NotificationConfig.FROM_NAME,
                 dry_run: bool = NotificationConfig.DRY_RUN):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender_email = sender_email
        self.sender_name = sender_name
        self.dry_run = dry_run

    def send(self, to_email: str, subject: str, body: str) -> None:
        if self.dry_run:
            logger.info("[DRY RUN] Email would be sent to %s: %s", to_email, subject)
            return
        if not (self.host and self.port and self.username and self.password and self.sender_email):
            raise DeliveryError("SMTP configuration missing in environment variables.")

        msg = MIMEMultipart()
        msg["From"] = f"{self.sender_name} <{self.sender_email}>"
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain"))

        try:
            with smtplib.SMTP(self.host, self.port) as server:
                server.starttls()
                server.login(self.username, self.password)
                server.sendmail(self.sender_email, to_email, msg.as_string())
        except Exception as exc:
            raise DeliveryError(f"Email send failed: {exc}") from exc
        logger.info("Email '%s' sent to %s", subject, to_email)
