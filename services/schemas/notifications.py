import datetime as dt
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator

from services.event_publisher import LoanEvent


class NotificationMessage(BaseModel):
    """
    Schema for messages consumed from the loan_events topic.
    `amount`, `date` and `balance` only matter for the events whose template
    mentions them.
    """
    model_config = ConfigDict(extra="ignore")

    event: LoanEvent
    loan_id: str = Field(..., min_length=1)
    customer_id: str = Field(..., min_length=1)
    customer_name: str = Field(..., min_length=1)
    phone: Optional[str] = None
    email: Optional[str] = None
    amount: Optional[float] = None
    date: Optional[dt.date] = None
    balance: Optional[float] = None

    @model_validator(mode="before")
    def ensure_required(cls, values):
        # clearer error than pydantic's when the routing fields are missing
        if not isinstance(values, dict):
            raise ValueError("message must be a JSON object")
        for key in ("event", "loan_id", "customer_name"):
            if values.get(key) in (None, ""):
                raise ValueError(f"{key} is required")
        return values
