import logging

from config import KafkaConfig, NotificationConfig
from services.notification_consumer import NotificationConsumer
from services.senders import EmailSender, SmsSender

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def main():
    logger.info("Starting Notification Service...")
    consumer = NotificationConsumer(
        bootstrap_servers=KafkaConfig.BOOTSTRAP_SERVERS,
        input_topic=KafkaConfig.LOAN_EVENTS_TOPIC,
        group_id=KafkaConfig.NOTIFIER_GROUP_ID,
        sms_sender=SmsSender() if NotificationConfig.SMS_ENABLED else None,
        email_sender=EmailSender() if NotificationConfig.EMAIL_ENABLED else None,
    )
    consumer.run()


if __name__ == "__main__":
    main()
