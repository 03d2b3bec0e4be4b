from enum import Enum
from typing import Iterable, NamedTuple, Optional

from core.models import Customer, Loan, LoanStatus

HIGH_RISK_INCOME = 30000
MEDIUM_RISK_INCOME = 50000


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    UNKNOWN = "unknown"


class ApprovalStats(NamedTuple):
    pending: int
    approved: int
    rejected: int
    total_approved_amount: float


def classify_risk(customer: Optional[Customer], loans: Iterable[Loan]) -> RiskLevel:
    """
    Customer-level risk from income and loan history. Rules are checked in
    order and the first match wins: any rejected loan or income under 30000
    is high; any active loan or income under 50000 is medium.
    """
    if customer is None:
        return RiskLevel.UNKNOWN

    statuses = {loan.status for loan in loans if loan.customer_id == customer.id}

    if LoanStatus.REJECTED in statuses or customer.income < HIGH_RISK_INCOME:
        return RiskLevel.HIGH
    if LoanStatus.ACTIVE in statuses or customer.income < MEDIUM_RISK_INCOME:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def approval_stats(loans: Iterable[Loan]) -> ApprovalStats:
    pending = approved = rejected = 0
    total = 0.0
    for loan in loans:
        if loan.status is LoanStatus.PENDING:
            pending += 1
        elif loan.status is LoanStatus.APPROVED:
            approved += 1
            total += loan.approved_amount or 0
        elif loan.status is LoanStatus.REJECTED:
            rejected += 1
    return ApprovalStats(pending, approved, rejected, total)
