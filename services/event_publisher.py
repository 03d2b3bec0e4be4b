import json
import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from confluent_kafka import Producer

from config import KafkaConfig

logger = logging.getLogger(__name__)


class LoanEvent(str, Enum):
    LOAN_APPLICATION = "loan_application"
    LOAN_APPROVAL = "loan_approval"
    LOAN_REJECTION = "loan_rejection"
    LOAN_DISBURSEMENT = "loan_disbursement"
    PAYMENT_RECEIPT = "payment_receipt"


def _json_default(value: Any):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _delivery_report(err, msg):
    if err:
        logger.error("Delivery failed for message: %s", err)
    else:
        logger.info("Message delivered to %s [%d] at offset %s", msg.topic(), msg.partition(), msg.offset())


class EventPublisher:
    """
    Publishes loan events for the notification worker. The Kafka producer is
    created on first use so building the app never touches the broker.
    """

    def __init__(self, bootstrap_servers: str = KafkaConfig.BOOTSTRAP_SERVERS,
                 topic: str = KafkaConfig.LOAN_EVENTS_TOPIC, timeout: float = 1.0):
        self.bootstrap_servers = bootstrap_servers
        self.topic = topic
        self.timeout = timeout
        self._producer: Optional[Producer] = None

    @property
    def producer(self) -> Producer:
        if self._producer is None:
            self._producer = Producer({"bootstrap.servers": self.bootstrap_servers})
        return self._producer

    def publish(self, event: LoanEvent, payload: Dict[str, Any]) -> bool:
        """
        Fire-and-forget publish of `payload` tagged with `event`. Flushes for a
        short timeout; failures are logged and reported as False, never raised.
        """
        message = {"event": LoanEvent(event).value, **payload}
        try:
            self.producer.produce(
                self.topic,
                key=str(payload.get("loan_id", "")).encode("utf-8"),
                value=json.dumps(message, default=_json_default).encode("utf-8"),
                callback=_delivery_report,
            )
            # serve delivery callbacks and attempt to send outstanding messages
            self.producer.poll(0)
            self.producer.flush(self.timeout)
            return True
        except Exception as exc:
            logger.exception("Failed to publish %s event to Kafka: %s", message["event"], exc)
            return False

    def close(self) -> None:
        if self._producer is not None:
            self._producer.flush(self.timeout)


def loan_event_payload(loan, customer, **extra: Any) -> Dict[str, Any]:
    """Message body shared by every loan event: who to notify and about which loan."""
    payload = {
        "loan_id": loan.id,
        "customer_id": customer.id,
        "customer_name": customer.name,
        "phone": customer.phone,
        "email": customer.email,
        "requested_amount": loan.requested_amount,
        "approved_amount": loan.approved_amount,
        "status": loan.status,
    }
    payload.update(extra)
    return payload
