from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from core.calculator import PeriodUnit
from core.models import Collateral, DisbursementMethod, Guarantor, Loan, LoanType


class LoanRequest(BaseModel):
    type: LoanType
    requested_amount: float = Field(..., gt=0)
    interest_rate: float = Field(..., ge=0)
    period: int = Field(..., gt=0)
    period_unit: PeriodUnit = PeriodUnit.MONTHS
    purpose: str = Field(..., min_length=1)
    guarantor: Optional[Guarantor] = None
    collateral: Optional[Collateral] = None

    @model_validator(mode="before")
    def check_required_fields(cls, values):
        if not isinstance(values, dict):
            return values
        required = ["type", "requested_amount", "interest_rate", "period", "purpose"]
        missing = [
            key for key in required
            if values.get(key) is None or (isinstance(values.get(key), str) and not values.get(key).strip())
        ]
        if missing:
            raise ValueError(f"Missing or empty required field(s): {', '.join(missing)}")
        return values


class LoanUpdate(BaseModel):
    type: Optional[LoanType] = None
    requested_amount: Optional[float] = Field(None, gt=0)
    interest_rate: Optional[float] = Field(None, ge=0)
    period: Optional[int] = Field(None, gt=0)
    period_unit: Optional[PeriodUnit] = None
    purpose: Optional[str] = Field(None, min_length=1)
    guarantor: Optional[Guarantor] = None
    collateral: Optional[Collateral] = None


class ApprovalRequest(BaseModel):
    approved_by: str = Field(..., min_length=1)
    # defaults to the requested amount
    approved_amount: Optional[float] = None
    remarks: Optional[str] = None


class RejectionRequest(BaseModel):
    remarks: Optional[str] = None
    rejected_by: Optional[str] = None


class DisbursementRequest(BaseModel):
    disbursed_by: str = Field(..., min_length=1)
    # defaults to the approved amount
    disbursed_amount: Optional[float] = None
    disbursed_date: Optional[date] = None
    disbursement_method: DisbursementMethod = DisbursementMethod.BANK_TRANSFER
    # generated as <METHOD>-<timestamp> when left out
    disbursement_reference: Optional[str] = None
    remarks: Optional[str] = None


class QuickDecisionRequest(BaseModel):
    decided_by: Optional[str] = None


class LoanResponse(Loan):
    pass


class LoanList(BaseModel):
    count: int
    data: List[LoanResponse]


class ScoreResponse(BaseModel):
    loan_id: str
    score: int
    recommendation: str
    reasons: List[str]


class ApprovalStatsResponse(BaseModel):
    pending: int
    approved: int
    rejected: int
    total_approved_amount: float


class DocumentResponse(BaseModel):
    id: str
    name: str
    type: str
    url: str


class EmiQuote(BaseModel):
    principal: float
    interest_rate: float
    period: int
    period_unit: PeriodUnit
    emi: float
    total: float
    interest: float
    period_in_months: Optional[float] = None
    period_label: str
    emi_frequency: str
    interest_rate_display: str
