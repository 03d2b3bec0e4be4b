import json
import logging
from typing import Optional

from confluent_kafka import Consumer, KafkaError
from pydantic import ValidationError

from config import NotificationConfig
from services.notifications import (
    DEFAULT_SMS_TEMPLATES,
    EMAIL_SUBJECTS,
    is_enabled,
    placeholder_values,
    render_template,
)
from services.schemas.notifications import NotificationMessage
from services.senders import DeliveryError, EmailSender, SmsSender

logger = logging.getLogger(__name__)


class NotificationConsumer:
    """
    Consumes loan events and turns them into SMS (and optionally email)
    messages for the customer. Malformed messages and delivery failures are
    logged and skipped; the loop only stops on KeyboardInterrupt.
    """

    def __init__(self, bootstrap_servers: str, input_topic: str, group_id: str,
                 sms_sender: Optional[SmsSender] = None,
                 email_sender: Optional[EmailSender] = None,
                 settings=NotificationConfig,
                 templates=None):
        self.input_topic = input_topic
        self.consumer = Consumer(
            {
                "bootstrap.servers": bootstrap_servers,
                "group.id": group_id,
                "auto.offset.reset": "earliest",
            }
        )
        self.settings = settings
        self.templates = templates or DEFAULT_SMS_TEMPLATES
        self.sms_sender = sms_sender
        self.email_sender = email_sender

    def build_message(self, message: NotificationMessage) -> Optional[str]:
        template = self.templates.get(message.event)
        if not template:
            return None
        return render_template(template, placeholder_values(message))

    def handle(self, message: NotificationMessage) -> bool:
        """Deliver one event. Returns True if anything was sent."""
        if not is_enabled(message.event, self.settings):
            logger.debug("Notifications for %s are disabled", message.event.value)
            return False

        text = self.build_message(message)
        if text is None:
            logger.warning("No template for event %s", message.event.value)
            return False

        sent = False
        if self.settings.SMS_ENABLED and self.sms_sender and message.phone:
            try:
                self.sms_sender.send(message.phone, text)
                sent = True
            except DeliveryError as exc:
                logger.error("SMS for loan %s failed: %s", message.loan_id, exc)

        if self.settings.EMAIL_ENABLED and self.email_sender and message.email:
            try:
                self.email_sender.send(message.email, EMAIL_SUBJECTS[message.event], text)
                sent = True
            except DeliveryError as exc:
                logger.error("Email for loan %s failed: %s", message.loan_id, exc)

        return sent

    def run(self):
        try:
            self.consumer.subscribe([self.input_topic])
            logger.info("Subscribed to topic: %s", self.input_topic)

            while True:
                msg = self.consumer.poll(1.0)
                if msg is None:
                    continue

                err = msg.error()
                if err:
                    if err.code() == KafkaError._PARTITION_EOF:
                        logger.debug("Reached end of partition")
                    else:
                        logger.error("Consumer error: %s", err)
                    continue

                try:
                    payload = json.loads(msg.value().decode("utf-8"))
                except (UnicodeDecodeError, json.JSONDecodeError) as exc:
                    logger.error("Failed to decode message value: %s", exc)
                    continue

                try:
                    message = NotificationMessage.model_validate(payload)
                except ValidationError as exc:
                    logger.error("Skipping invalid loan event: %s", exc.errors()[0].get("msg"))
                    continue

                if self.handle(message):
                    logger.info("Notified customer %s about %s", message.customer_id, message.event.value)

        except KeyboardInterrupt:
            logger.info("Shutting down notification consumer...")
        finally:
            self.consumer.close()
