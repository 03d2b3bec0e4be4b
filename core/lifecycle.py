"""
Loan status state machine.

    pending -> approved | rejected
    approved -> disbursed
    disbursed -> active
    active -> completed

`rejected` and `completed` are terminal. Every edge has a payload model; the
edges driven by the repayment cycle (disbursed -> active, active -> completed)
carry none. `transition` is pure: it validates, returns an updated copy of the
loan and leaves persistence and notifications to the caller.
"""
import logging
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional, Type, Union

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from core.errors import ValidationError
from core.models import DisbursementMethod, Loan, LoanStatus, utcnow

logger = logging.getLogger(__name__)

QUICK_REJECTION_REMARKS = "Quick rejection"

TRANSITIONS: Dict[LoanStatus, frozenset] = {
    LoanStatus.PENDING: frozenset({LoanStatus.APPROVED, LoanStatus.REJECTED}),
    LoanStatus.APPROVED: frozenset({LoanStatus.DISBURSED}),
    LoanStatus.REJECTED: frozenset(),
    LoanStatus.DISBURSED: frozenset({LoanStatus.ACTIVE}),
    LoanStatus.ACTIVE: frozenset({LoanStatus.COMPLETED}),
    LoanStatus.COMPLETED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, successors in TRANSITIONS.items() if not successors)


class ApprovalPayload(BaseModel):
    approved_amount: float = Field(..., gt=0)
    approved_by: str = Field(..., min_length=1)
    approved_date: datetime = Field(default_factory=utcnow)
    remarks: Optional[str] = None


class RejectionPayload(BaseModel):
    remarks: str
    rejected_by: Optional[str] = None
    rejected_date: datetime = Field(default_factory=utcnow)

    @field_validator("remarks")
    @classmethod
    def remarks_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("a rejection must carry a reason")
        return value.strip()


class DisbursementPayload(BaseModel):
    disbursed_date: date
    disbursed_amount: float = Field(..., gt=0)
    disbursement_method: DisbursementMethod
    disbursement_reference: str = Field(..., min_length=1)
    disbursed_by: str = Field(..., min_length=1)
    remarks: Optional[str] = None


class EmptyPayload(BaseModel):
    pass


PAYLOAD_MODELS: Dict[LoanStatus, Type[BaseModel]] = {
    LoanStatus.APPROVED: ApprovalPayload,
    LoanStatus.REJECTED: RejectionPayload,
    LoanStatus.DISBURSED: DisbursementPayload,
    LoanStatus.ACTIVE: EmptyPayload,
    LoanStatus.COMPLETED: EmptyPayload,
}

Payload = Union[BaseModel, Mapping[str, Any], None]


def can_transition(current: Union[LoanStatus, str], target: Union[LoanStatus, str]) -> bool:
    try:
        return LoanStatus(target) in TRANSITIONS[LoanStatus(current)]
    except ValueError:
        return False


def _parse_payload(target: LoanStatus, payload: Payload) -> BaseModel:
    model = PAYLOAD_MODELS[target]
    if isinstance(payload, model):
        # re-run validation so hand-built payloads get the same checks
        payload = payload.model_dump()
    elif isinstance(payload, BaseModel):
        payload = payload.model_dump(exclude_unset=True)
    try:
        return model.model_validate(payload or {})
    except PydanticValidationError as exc:
        error = exc.errors()[0]
        field = ".".join(str(part) for part in error.get("loc", ())) or None
        raise ValidationError(
            f"Invalid payload for transition to {target.value}: {error.get('msg')}",
            field=field,
        ) from exc


def _apply(loan: Loan, target: LoanStatus, payload: BaseModel) -> Dict[str, Any]:
    if isinstance(payload, ApprovalPayload):
        return {
            "approved_amount": payload.approved_amount,
            "approved_by": payload.approved_by,
            "approved_date": payload.approved_date,
            "remarks": payload.remarks,
        }
    if isinstance(payload, RejectionPayload):
        return {
            "approved_by": payload.rejected_by,
            "approved_date": payload.rejected_date,
            "remarks": payload.remarks,
        }
    if isinstance(payload, DisbursementPayload):
        if loan.approved_amount is not None and payload.disbursed_amount > loan.approved_amount:
            raise ValidationError(
                f"Disbursed amount {payload.disbursed_amount} exceeds approved amount "
                f"{loan.approved_amount}",
                field="disbursed_amount",
            )
        changes = payload.model_dump(exclude={"remarks"})
        if payload.remarks:
            changes["remarks"] = payload.remarks
        return changes
    return {}


def transition(loan: Loan, target_status: Union[LoanStatus, str], payload: Payload = None) -> Loan:
    """
    Move `loan` to `target_status`.

    Raises ValidationError if the target is not a direct successor of the
    current status or if the payload is missing a required field. On success
    returns a new Loan; the input is left untouched.
    """
    try:
        target = LoanStatus(target_status)
    except ValueError as exc:
        raise ValidationError(f"Unknown loan status: {target_status}", field="status") from exc

    if not can_transition(loan.status, target):
        raise ValidationError(
            f"Cannot move loan {loan.id} from {loan.status.value} to {target.value}",
            field="status",
        )

    parsed = _parse_payload(target, payload)
    changes = _apply(loan, target, parsed)
    changes["status"] = target

    try:
        updated = loan.with_changes(**changes)
    except PydanticValidationError as exc:
        raise ValidationError(f"Loan {loan.id} would become invalid: {exc.errors()[0]['msg']}") from exc

    logger.info("Loan %s moved %s -> %s", loan.id, loan.status.value, target.value)
    return updated


def quick_approve(loan: Loan, approved_by: str, at: Optional[datetime] = None) -> Loan:
    """Approve for the full requested amount."""
    payload = {"approved_amount": loan.requested_amount, "approved_by": approved_by}
    if at is not None:
        payload["approved_date"] = at
    return transition(loan, LoanStatus.APPROVED, payload)


def quick_reject(loan: Loan, rejected_by: Optional[str] = None) -> Loan:
    return transition(
        loan,
        LoanStatus.REJECTED,
        {"remarks": QUICK_REJECTION_REMARKS, "rejected_by": rejected_by},
    )
