from datetime import date, datetime
from types import SimpleNamespace

from services.event_publisher import LoanEvent
from services.notifications import (
    DEFAULT_SMS_TEMPLATES,
    format_amount,
    format_date,
    is_enabled,
    placeholder_values,
    render_template,
)
from services.schemas.notifications import NotificationMessage


def test_format_amount():
    assert format_amount(1234567.5) == "1,234,567.50"
    assert format_amount(None) == ""


def test_format_date():
    assert format_date(date(2024, 3, 5)) == "05/03/2024"
    assert format_date(datetime(2024, 3, 5, 14, 30)) == "05/03/2024"
    assert format_date("2024-03-05") == "05/03/2024"
    assert format_date("next week") == "next week"
    assert format_date(None) == ""


def test_render_template_leaves_unknown_placeholders():
    text = render_template("Hi [Name], see [Branch]", {"Name": "Nimal"})
    assert text == "Hi Nimal, see [Branch]"


def test_payment_receipt_message():
    message = NotificationMessage(
        event=LoanEvent.PAYMENT_RECEIPT,
        loan_id="L001",
        customer_id="cust-1",
        customer_name="Nimal Perera",
        amount=10300,
        date=date(2024, 2, 10),
        balance=20600,
    )
    text = render_template(DEFAULT_SMS_TEMPLATES[LoanEvent.PAYMENT_RECEIPT], placeholder_values(message))
    assert text == (
        "Dear Nimal Perera, we received your payment of 10,300.00 on 10/02/2024. "
        "Remaining balance: 20,600.00."
    )


def test_is_enabled_reads_per_event_flags():
    settings = SimpleNamespace(NOTIFY_ON_LOAN_APPROVAL=True, NOTIFY_ON_LOAN_REJECTION=False)
    assert is_enabled(LoanEvent.LOAN_APPROVAL, settings)
    assert not is_enabled(LoanEvent.LOAN_REJECTION, settings)
    assert not is_enabled(LoanEvent.LOAN_DISBURSEMENT, settings)
