"""
SMS/email text for loan events.

Templates use bracketed placeholders: [Name], [Amount], [LoanID], [Date],
[Balance]. Unknown placeholders are left as they are.
"""
from datetime import date, datetime
from typing import Dict, Mapping, Optional

from config import NotificationConfig
from services.event_publisher import LoanEvent

DEFAULT_SMS_TEMPLATES: Dict[LoanEvent, str] = {
    LoanEvent.LOAN_APPLICATION: (
        "Dear [Name], your loan application [LoanID] for [Amount] has been received "
        "and is under review."
    ),
    LoanEvent.LOAN_APPROVAL: (
        "Dear [Name], your loan [LoanID] of [Amount] has been approved on [Date]."
    ),
    LoanEvent.LOAN_REJECTION: (
        "Dear [Name], we regret that your loan application [LoanID] was not approved."
    ),
    LoanEvent.LOAN_DISBURSEMENT: (
        "Dear [Name], [Amount] for loan [LoanID] was disbursed on [Date]."
    ),
    LoanEvent.PAYMENT_RECEIPT: (
        "Dear [Name], we received your payment of [Amount] on [Date]. "
        "Remaining balance: [Balance]."
    ),
}

EMAIL_SUBJECTS: Dict[LoanEvent, str] = {
    LoanEvent.LOAN_APPLICATION: "Loan application received",
    LoanEvent.LOAN_APPROVAL: "Loan approved",
    LoanEvent.LOAN_REJECTION: "Loan application update",
    LoanEvent.LOAN_DISBURSEMENT: "Loan disbursed",
    LoanEvent.PAYMENT_RECEIPT: "Payment received",
}

_ENABLED_FLAGS = {
    LoanEvent.LOAN_APPLICATION: "NOTIFY_ON_LOAN_APPLICATION",
    LoanEvent.LOAN_APPROVAL: "NOTIFY_ON_LOAN_APPROVAL",
    LoanEvent.LOAN_REJECTION: "NOTIFY_ON_LOAN_REJECTION",
    LoanEvent.LOAN_DISBURSEMENT: "NOTIFY_ON_DISBURSEMENT",
    LoanEvent.PAYMENT_RECEIPT: "NOTIFY_ON_PAYMENT_RECEIVED",
}


def is_enabled(event: LoanEvent, settings=NotificationConfig) -> bool:
    return bool(getattr(settings, _ENABLED_FLAGS[event], False))


def format_amount(value: Optional[float]) -> str:
    if value is None:
        return ""
    return f"{value:,.2f}"


def format_date(value) -> str:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return value
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        return value.strftime("%d/%m/%Y")
    return ""


def render_template(template: str, values: Mapping[str, str]) -> str:
    message = template
    for key, value in values.items():
        message = message.replace(f"[{key}]", value)
    return message


def placeholder_values(message) -> Dict[str, str]:
    """Placeholder values for a validated NotificationMessage."""
    return {
        "Name": message.customer_name,
        "Amount": format_amount(message.amount),
        "LoanID": message.loan_id,
        "Date": format_date(message.date),
        "Balance": format_amount(message.balance),
    }
