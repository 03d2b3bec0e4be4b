"""
Heuristic approval score for a loan application.

Starts from 50 and adds fixed weights:

    EMI / monthly income        <= 30%: +20   <= 50%: +10   else: -20
    amount / annual income      <= 200%: +15  else: -15
    documents attached          >= 3: +10     else: -10
    guarantor                   present: +15  absent: -5
    collateral with value > 0   +10

The result is not clamped and can fall outside 0-100.
"""
from enum import Enum
from typing import List, NamedTuple, Optional

from core.models import Customer, Loan

BASE_SCORE = 50
APPROVE_THRESHOLD = 70
REJECT_THRESHOLD = 40
MIN_DOCUMENTS = 3


class Recommendation(str, Enum):
    APPROVE = "approve"
    REVIEW = "review"
    REJECT = "reject"


class ScoreResult(NamedTuple):
    score: int
    recommendation: Recommendation
    reasons: List[str]

    def as_dict(self) -> dict:
        return {
            "score": self.score,
            "recommendation": self.recommendation.value,
            "reasons": list(self.reasons),
        }


def _ratio(numerator: float, denominator: float) -> float:
    # zero income makes every ratio unbounded
    if denominator == 0:
        return float("inf")
    return numerator / denominator * 100


def recommend(score: int) -> Recommendation:
    if score >= APPROVE_THRESHOLD:
        return Recommendation.APPROVE
    if score <= REJECT_THRESHOLD:
        return Recommendation.REJECT
    return Recommendation.REVIEW


def score(loan: Loan, customer: Optional[Customer]) -> ScoreResult:
    if customer is None:
        return ScoreResult(0, Recommendation.REVIEW, ["Customer data not available"])

    points = BASE_SCORE
    reasons: List[str] = []

    emi_to_income = _ratio(loan.emi, customer.income)
    if emi_to_income <= 30:
        points += 20
        reasons.append("Good EMI-to-income ratio")
    elif emi_to_income <= 50:
        points += 10
        reasons.append("Moderate EMI-to-income ratio")
    else:
        points -= 20
        reasons.append("High EMI-to-income ratio")

    if _ratio(loan.requested_amount, customer.income * 12) <= 200:
        points += 15
        reasons.append("Reasonable loan amount")
    else:
        points -= 15
        reasons.append("High loan amount relative to income")

    if len(loan.documents) >= MIN_DOCUMENTS:
        points += 10
        reasons.append("Adequate documentation")
    else:
        points -= 10
        reasons.append("Insufficient documentation")

    if loan.guarantor is not None:
        points += 15
        reasons.append("Guarantor provided")
    else:
        points -= 5
        reasons.append("No guarantor")

    if loan.collateral is not None and loan.collateral.value > 0:
        points += 10
        reasons.append("Collateral provided")

    return ScoreResult(points, recommend(points), reasons)
