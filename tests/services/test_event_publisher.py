import json
from datetime import date
from unittest.mock import Mock, patch

import pytest

from core.models import LoanStatus
from services.event_publisher import EventPublisher, LoanEvent, loan_event_payload


@pytest.fixture
def mock_producer():
    p = Mock()
    p.produce = Mock()
    p.poll = Mock()
    p.flush = Mock()
    return p


@pytest.fixture
def event_publisher(mock_producer):
    with patch("services.event_publisher.Producer", return_value=mock_producer) as producer_cls:
        publisher = EventPublisher(bootstrap_servers="localhost:9092", topic="test_loan_events")
        yield publisher
        # the producer is only built when the first event goes out
        assert producer_cls.call_count <= 1


def test_publish_serialises_event(event_publisher, mock_producer):
    sent = event_publisher.publish(
        LoanEvent.LOAN_APPROVAL,
        {"loan_id": "L001", "status": LoanStatus.APPROVED, "date": date(2024, 1, 10), "amount": 80000},
    )

    assert sent is True
    produce_args, produce_kwargs = mock_producer.produce.call_args
    assert produce_args[0] == "test_loan_events"
    assert produce_kwargs["key"] == b"L001"
    payload = json.loads(produce_kwargs["value"].decode("utf-8"))
    assert payload == {
        "event": "loan_approval",
        "loan_id": "L001",
        "status": "approved",
        "date": "2024-01-10",
        "amount": 80000,
    }
    mock_producer.flush.assert_called_once()


def test_publish_failure_is_reported_not_raised(event_publisher, mock_producer, caplog):
    mock_producer.produce.side_effect = RuntimeError("broker down")

    assert event_publisher.publish(LoanEvent.LOAN_REJECTION, {"loan_id": "L002"}) is False
    assert "Failed to publish loan_rejection" in caplog.text


def test_close_without_publishing_does_not_connect(event_publisher, mock_producer):
    event_publisher.close()
    mock_producer.flush.assert_not_called()


def test_loan_event_payload(make_loan, make_customer):
    payload = loan_event_payload(make_loan(), make_customer(), amount=100000)
    assert payload["loan_id"] == "L001"
    assert payload["customer_id"] == "cust-1"
    assert payload["customer_name"] == "Nimal Perera"
    assert payload["phone"] == "+94771234567"
    assert payload["status"] is LoanStatus.PENDING
    assert payload["amount"] == 100000
