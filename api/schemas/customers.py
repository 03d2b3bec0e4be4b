import re
from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from core.models import Customer, MaritalStatus

EMAIL_PATTERN = re.compile(r"^\w+([.-]?\w+)*@\w+([.-]?\w+)*(\.\w{2,3})+$")


def _check_email(value: Optional[str]) -> Optional[str]:
    if value in (None, ""):
        return None
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Please add a valid email")
    return value


class CustomerRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    nic: str = Field(..., min_length=1, max_length=20)
    dob: date
    address: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1, max_length=20)
    email: Optional[str] = None
    marital_status: MaritalStatus
    occupation: str = Field(..., min_length=1)
    income: float = Field(..., ge=0)
    bank_account: Optional[str] = None

    @model_validator(mode="before")
    def check_required_fields(cls, values):
        """
        Ensure required keys are present and not blank, reported as one
        message listing every missing field.
        """
        if not isinstance(values, dict):
            return values
        required = ["name", "nic", "dob", "address", "phone", "marital_status", "occupation", "income"]
        missing = []
        for key in required:
            if key not in values or values.get(key) is None:
                missing.append(key)
            elif isinstance(values.get(key), str) and values.get(key).strip() == "":
                missing.append(key)
        if missing:
            raise ValueError(f"Missing or empty required field(s): {', '.join(missing)}")
        return values

    @field_validator("name", "nic", "address", "phone", "occupation")
    @classmethod
    def strip_text(cls, value: str) -> str:
        return value.strip()

    @field_validator("email")
    @classmethod
    def check_email(cls, value: Optional[str]) -> Optional[str]:
        return _check_email(value)


class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    nic: Optional[str] = Field(None, min_length=1, max_length=20)
    dob: Optional[date] = None
    address: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = Field(None, min_length=1, max_length=20)
    email: Optional[str] = None
    marital_status: Optional[MaritalStatus] = None
    occupation: Optional[str] = Field(None, min_length=1)
    income: Optional[float] = Field(None, ge=0)
    bank_account: Optional[str] = None

    @field_validator("email")
    @classmethod
    def check_email(cls, value: Optional[str]) -> Optional[str]:
        return _check_email(value)


class CustomerResponse(Customer):
    pass


class RiskResponse(BaseModel):
    customer_id: str
    risk_level: str
    loans: int


class CustomerList(BaseModel):
    count: int
    data: List[CustomerResponse]
