"""
Typed records for customers and loans.

These are the read-only snapshots the lifecycle, scoring and risk functions
work on. Required and optional fields are part of the type; the persistence
layer converts its rows into these models with `model_validate(row)`.
"""
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from core.calculator import PeriodUnit, calculate_installment


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LoanStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DISBURSED = "disbursed"
    ACTIVE = "active"
    COMPLETED = "completed"


# statuses in which an approved amount is meaningful
APPROVED_AMOUNT_STATUSES = frozenset(
    {LoanStatus.APPROVED, LoanStatus.DISBURSED, LoanStatus.ACTIVE, LoanStatus.COMPLETED}
)


class LoanType(str, Enum):
    PERSONAL = "personal"
    BUSINESS = "business"
    AGRICULTURE = "agriculture"
    VEHICLE = "vehicle"
    HOUSING = "housing"


class MaritalStatus(str, Enum):
    SINGLE = "single"
    MARRIED = "married"


class DisbursementMethod(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    CASH = "cash"
    CHEQUE = "cheque"


class Document(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    uploaded_at: datetime = Field(default_factory=utcnow)


class Guarantor(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str = Field(..., min_length=1)
    nic: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    occupation: str = Field(..., min_length=1)
    income: float = Field(..., ge=0)


class Collateral(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    value: float = Field(..., ge=0)


class Customer(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str = Field(..., min_length=1, max_length=100)
    nic: str = Field(..., min_length=1)
    dob: date
    address: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    email: Optional[str] = None
    marital_status: MaritalStatus
    occupation: str = Field(..., min_length=1)
    income: float = Field(..., ge=0)
    bank_account: Optional[str] = None
    documents: List[Document] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)


class Loan(BaseModel):
    """
    One credit application.

    `approved_by` / `approved_date` record who took the approval decision and
    when, for approvals and rejections alike. `emi` is derived from the
    principal (approved amount once set, else the requested amount), the rate
    and the period; use `with_terms` to change any of those.
    """
    model_config = ConfigDict(from_attributes=True)

    id: str
    customer_id: str
    type: LoanType
    requested_amount: float = Field(..., gt=0)
    interest_rate: float = Field(..., ge=0)
    period: int = Field(..., gt=0)
    period_unit: PeriodUnit = PeriodUnit.MONTHS
    emi: float = 0
    purpose: str = Field(..., min_length=1)
    status: LoanStatus = LoanStatus.PENDING
    guarantor: Optional[Guarantor] = None
    collateral: Optional[Collateral] = None
    documents: List[Document] = Field(default_factory=list)
    approved_by: Optional[str] = None
    approved_date: Optional[datetime] = None
    approved_amount: Optional[float] = Field(None, gt=0)
    remarks: Optional[str] = None
    disbursed_date: Optional[date] = None
    disbursed_amount: Optional[float] = Field(None, gt=0)
    disbursement_method: Optional[DisbursementMethod] = None
    disbursement_reference: Optional[str] = None
    disbursed_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def check_approved_amount(self):
        if self.approved_amount is not None and self.status not in APPROVED_AMOUNT_STATUSES:
            raise ValueError(
                f"approved_amount cannot be set while the loan is {self.status.value}"
            )
        return self

    @property
    def principal(self) -> float:
        return self.approved_amount if self.approved_amount is not None else self.requested_amount

    def with_changes(self, **changes: Any) -> "Loan":
        """Return a re-validated copy with `changes` applied and the EMI recomputed."""
        data: Dict[str, Any] = self.model_dump()
        data.update(changes)
        return recompute_emi(Loan.model_validate(data))

    def with_terms(
        self,
        requested_amount: Optional[float] = None,
        interest_rate: Optional[float] = None,
        period: Optional[int] = None,
        period_unit: Optional[PeriodUnit] = None,
    ) -> "Loan":
        changes = {
            "requested_amount": requested_amount,
            "interest_rate": interest_rate,
            "period": period,
            "period_unit": period_unit,
        }
        return self.with_changes(**{k: v for k, v in changes.items() if v is not None})


def recompute_emi(loan: Loan) -> Loan:
    installment = calculate_installment(
        loan.principal, loan.interest_rate, loan.period, loan.period_unit
    )
    return loan.model_copy(update={"emi": installment.emi})
