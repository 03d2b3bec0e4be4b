import pytest

from core.models import LoanStatus
from core.risk import ApprovalStats, RiskLevel, approval_stats, classify_risk


def test_unknown_without_customer(make_loan):
    assert classify_risk(None, [make_loan()]) is RiskLevel.UNKNOWN


def test_low_risk(make_customer, make_loan):
    assert classify_risk(make_customer(income=80000), [make_loan()]) is RiskLevel.LOW


@pytest.mark.parametrize("income,expected", [
    (29999, RiskLevel.HIGH),
    (30000, RiskLevel.MEDIUM),
    (49999, RiskLevel.MEDIUM),
    (50000, RiskLevel.LOW),
])
def test_income_bands(make_customer, income, expected):
    assert classify_risk(make_customer(income=income), []) is expected


def test_rejected_loan_is_high_risk_even_with_high_income(make_customer, make_loan):
    loans = [make_loan(status=LoanStatus.REJECTED, remarks="Bad history")]
    assert classify_risk(make_customer(income=500000), loans) is RiskLevel.HIGH


def test_active_loan_is_medium_risk(make_customer, make_loan):
    loans = [make_loan(status=LoanStatus.ACTIVE, approved_amount=100000)]
    assert classify_risk(make_customer(income=500000), loans) is RiskLevel.MEDIUM


def test_rejection_outranks_active_loan(make_customer, make_loan):
    loans = [
        make_loan(id="L001", status=LoanStatus.ACTIVE, approved_amount=100000),
        make_loan(id="L002", status=LoanStatus.REJECTED, remarks="Bad history"),
    ]
    assert classify_risk(make_customer(income=500000), loans) is RiskLevel.HIGH


def test_other_customers_loans_are_ignored(make_customer, make_loan):
    loans = [make_loan(customer_id="someone-else", status=LoanStatus.REJECTED, remarks="x")]
    assert classify_risk(make_customer(income=80000), loans) is RiskLevel.LOW


def test_approval_stats(make_loan):
    loans = [
        make_loan(id="L001"),
        make_loan(id="L002"),
        make_loan(id="L003", status=LoanStatus.APPROVED, approved_amount=40000),
        make_loan(id="L004", status=LoanStatus.APPROVED, approved_amount=60000),
        make_loan(id="L005", status=LoanStatus.REJECTED, remarks="No income proof"),
        make_loan(id="L006", status=LoanStatus.ACTIVE, approved_amount=90000),
    ]
    assert approval_stats(loans) == ApprovalStats(
        pending=2, approved=2, rejected=1, total_approved_amount=100000
    )


def test_approval_stats_empty():
    assert approval_stats([]) == ApprovalStats(0, 0, 0, 0)
