from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PaymentMode(str, Enum):
    CASH = "cash"
    ONLINE = "online"
    CHEQUE = "cheque"


class PaymentRequest(BaseModel):
    paid_amount: float = Field(..., gt=0)
    payment_date: Optional[date] = None
    payment_mode: PaymentMode = PaymentMode.CASH
    processed_by: Optional[str] = None
    receipt_number: Optional[str] = None
    remarks: Optional[str] = None


class RepaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    loan_id: str
    emi_no: int
    due_date: date
    amount: float
    paid_amount: Optional[float] = None
    balance: float
    payment_date: Optional[date] = None
    payment_mode: Optional[str] = None
    penalty: float = 0
    status: str
    receipt_number: Optional[str] = None
    processed_by: Optional[str] = None
    remarks: Optional[str] = None


class RepaymentList(BaseModel):
    count: int
    data: List[RepaymentResponse]


class CollectionRepayment(RepaymentResponse):
    """An installment as shown on the daily and overdue collection sheets."""
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    is_overdue: bool = False
    days_overdue: int = 0
    next_payment_date: Optional[date] = None


class CollectionList(BaseModel):
    count: int
    data: List[CollectionRepayment]


class BulkPaymentItem(BaseModel):
    loan_id: str = Field(..., min_length=1)
    emi_no: int = Field(..., gt=0)
    paid_amount: float = Field(..., gt=0)
    payment_date: date
    payment_mode: PaymentMode
    processed_by: Optional[str] = None
    receipt_number: Optional[str] = None
    remarks: Optional[str] = None

    @model_validator(mode="before")
    def check_required_fields(cls, values):
        if not isinstance(values, dict):
            return values
        required = ["loan_id", "emi_no", "paid_amount", "payment_date", "payment_mode"]
        missing = [
            key for key in required
            if values.get(key) is None or (isinstance(values.get(key), str) and not values.get(key).strip())
        ]
        if missing:
            raise ValueError(f"Missing or empty required field(s): {', '.join(missing)}")
        return values


class BulkPaymentRequest(BaseModel):
    # items are validated one by one so a bad entry fails alone
    payments: List[Dict[str, Any]]


class BulkPaymentFailure(BaseModel):
    payment: Dict[str, Any]
    error: str


class BulkPaymentResults(BaseModel):
    success: List[RepaymentResponse]
    failed: List[BulkPaymentFailure]


class BulkPaymentResponse(BaseModel):
    processed: int
    failed: int
    results: BulkPaymentResults
