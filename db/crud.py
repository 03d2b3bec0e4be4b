import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from config import AppConfig
from core import calculator, lifecycle
from core import models as domain
from core.errors import ConflictError, NotFoundError, ValidationError
from .models import Customer, Document, Loan, Repayment

logger = logging.getLogger(__name__)

# overdue is derived from the due date, never stored
OPEN_REPAYMENT_STATUSES = ("pending", "partial")

# a freshly picked loan id can still lose a race with another insert
LOAN_ID_ATTEMPTS = 3

# columns copied back from a domain Loan after a transition or edit
_LOAN_FIELDS = (
    "type", "requested_amount", "interest_rate", "period", "period_unit", "emi", "purpose",
    "status", "approved_by", "approved_date", "approved_amount", "remarks", "disbursed_date",
    "disbursed_amount", "disbursement_method", "disbursement_reference", "disbursed_by",
)


def _plain(value: Any) -> Any:
    return value.value if hasattr(value, "value") else value


def _money(value: Optional[float]) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(round(float(value), 2)))


def to_customer(db_customer: Customer) -> domain.Customer:
    return domain.Customer.model_validate(db_customer)


def to_loan(db_loan: Loan) -> domain.Loan:
    return domain.Loan.model_validate(db_loan)


def _invalid(exc: PydanticValidationError) -> ValidationError:
    error = exc.errors()[0]
    return ValidationError(error["msg"], field=".".join(str(p) for p in error["loc"]) or None)


def _commit(db: Session, what: str) -> None:
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise ConflictError(f"{what} was modified concurrently, reload and retry") from exc


# ---------------------------------------------------------------- customers

def db_create_customer(db: Session, data: Dict[str, Any]) -> Customer:
    if db.query(Customer).filter(Customer.nic == data["nic"]).first():
        raise ConflictError(f"A customer with NIC {data['nic']} already exists")
    db_obj = Customer(**{k: _plain(v) for k, v in data.items()})
    db_obj.income = _money(data["income"])
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    logger.info("Created customer %s", db_obj.id)
    return db_obj


def get_customer_by_id(db: Session, customer_id: str) -> Optional[Customer]:
    return db.query(Customer).filter(Customer.id == customer_id).first()


def get_customer_or_404(db: Session, customer_id: str) -> Customer:
    db_customer = get_customer_by_id(db, customer_id)
    if db_customer is None:
        raise NotFoundError(f"Customer not found with id of {customer_id}")
    return db_customer


def list_customers(db: Session, skip: int = 0, limit: int = 100) -> List[Customer]:
    return db.query(Customer).order_by(Customer.created_at).offset(skip).limit(limit).all()


def db_update_customer(db: Session, customer_id: str, changes: Dict[str, Any]) -> Customer:
    db_customer = get_customer_or_404(db, customer_id)
    nic = changes.get("nic")
    if nic and nic != db_customer.nic:
        clash = db.query(Customer).filter(Customer.nic == nic, Customer.id != customer_id).first()
        if clash:
            raise ConflictError(f"A customer with NIC {nic} already exists")
    # re-validate the whole record so an explicit null cannot clear a required field
    try:
        domain.Customer.model_validate({**to_customer(db_customer).model_dump(), **changes})
    except PydanticValidationError as exc:
        raise _invalid(exc) from exc
    for key, value in changes.items():
        setattr(db_customer, key, _money(value) if key == "income" else _plain(value))
    db.commit()
    db.refresh(db_customer)
    return db_customer


def db_delete_customer(db: Session, customer_id: str) -> None:
    db_customer = get_customer_or_404(db, customer_id)
    if db_customer.loans:
        raise ConflictError("Cannot delete customer with active loans")
    db.delete(db_customer)
    db.commit()
    logger.info("Deleted customer %s", customer_id)


def loans_for_customer(db: Session, customer_id: str) -> List[Loan]:
    return db.query(Loan).filter(Loan.customer_id == customer_id).order_by(Loan.created_at).all()


# -------------------------------------------------------------------- loans

def next_loan_id(db: Session, prefix: str = AppConfig.LOAN_ID_PREFIX) -> str:
    """Ids look like L001, L002, ...; skips forward past any id already taken."""
    number = db.query(Loan).count() + 1
    candidate = f"{prefix}{number:03d}"
    while db.get(Loan, candidate) is not None:
        number += 1
        candidate = f"{prefix}{number:03d}"
    return candidate


def _write_loan(db_loan: Loan, loan: domain.Loan) -> None:
    for field in _LOAN_FIELDS:
        value = getattr(loan, field)
        if field in ("requested_amount", "emi", "approved_amount", "disbursed_amount"):
            value = _money(value)
        setattr(db_loan, field, _plain(value))
    db_loan.guarantor = loan.guarantor.model_dump() if loan.guarantor else None
    db_loan.collateral = loan.collateral.model_dump() if loan.collateral else None


def db_create_loan(db: Session, customer_id: str, data: Dict[str, Any]) -> Loan:
    """
    Persist a new pending loan for `customer_id`. The EMI is derived from
    the requested terms, never taken from the caller.
    """
    get_customer_or_404(db, customer_id)
    for attempt in range(1, LOAN_ID_ATTEMPTS + 1):
        loan_id = next_loan_id(db)
        loan = domain.recompute_emi(
            domain.Loan.model_validate(
                {**data, "id": loan_id, "customer_id": customer_id, "status": domain.LoanStatus.PENDING}
            )
        )
        db_obj = Loan(id=loan_id, customer_id=customer_id)
        _write_loan(db_obj, loan)
        db.add(db_obj)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.warning("Loan id %s was taken concurrently (attempt %d)", loan_id, attempt)
            continue
        db.refresh(db_obj)
        logger.info("Created loan %s for customer %s (emi=%s)", loan_id, customer_id, loan.emi)
        return db_obj
    raise ConflictError("Could not allocate a loan id, retry the application")


def get_loan_by_id(db: Session, loan_id: str) -> Optional[Loan]:
    return db.query(Loan).filter(Loan.id == loan_id).first()


def get_loan_or_404(db: Session, loan_id: str) -> Loan:
    db_loan = get_loan_by_id(db, loan_id)
    if db_loan is None:
        raise NotFoundError(f"Loan not found with id of {loan_id}")
    return db_loan


def list_loans(db: Session, status: Optional[str] = None, skip: int = 0, limit: int = 100) -> List[Loan]:
    query = db.query(Loan)
    if status:
        query = query.filter(Loan.status == status)
    return query.order_by(Loan.created_at, Loan.id).offset(skip).limit(limit).all()


def all_loans(db: Session) -> List[Loan]:
    return db.query(Loan).all()


def db_update_loan(db: Session, loan_id: str, changes: Dict[str, Any]) -> Loan:
    """Edit a pending application; terms changes recompute the EMI."""
    db_loan = get_loan_or_404(db, loan_id)
    if db_loan.status != domain.LoanStatus.PENDING.value:
        raise ValidationError(f"Loan {loan_id} is {db_loan.status} and can no longer be edited")
    try:
        updated = to_loan(db_loan).with_changes(**changes)
    except PydanticValidationError as exc:
        raise _invalid(exc) from exc
    _write_loan(db_loan, updated)
    _commit(db, f"Loan {loan_id}")
    db.refresh(db_loan)
    return db_loan


def db_delete_loan(db: Session, loan_id: str) -> None:
    db_loan = get_loan_or_404(db, loan_id)
    if db_loan.repayments:
        raise ConflictError("Cannot delete loan with existing repayments")
    db.delete(db_loan)
    db.commit()
    logger.info("Deleted loan %s", loan_id)


def apply_transition(
    db: Session, loan_id: str, target: Union[domain.LoanStatus, str], payload: Any = None
) -> Loan:
    db_loan = get_loan_or_404(db, loan_id)
    updated = lifecycle.transition(to_loan(db_loan), target, payload)
    _write_loan(db_loan, updated)
    _commit(db, f"Loan {loan_id}")
    db.refresh(db_loan)
    return db_loan


def apply_quick_decision(db: Session, loan_id: str, approve: bool, decided_by: Optional[str]) -> Loan:
    db_loan = get_loan_or_404(db, loan_id)
    loan = to_loan(db_loan)
    if approve:
        updated = lifecycle.quick_approve(loan, decided_by)
    else:
        updated = lifecycle.quick_reject(loan, decided_by)
    _write_loan(db_loan, updated)
    _commit(db, f"Loan {loan_id}")
    db.refresh(db_loan)
    return db_loan


# ---------------------------------------------------------------- documents

def db_add_document(
    db: Session, name: str, content_type: str, url: str,
    loan_id: Optional[str] = None, customer_id: Optional[str] = None,
) -> Document:
    db_obj = Document(name=name, type=content_type, url=url, loan_id=loan_id, customer_id=customer_id)
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj


def db_remove_loan_document(db: Session, loan_id: str, document_id: str) -> Document:
    get_loan_or_404(db, loan_id)
    db_doc = (
        db.query(Document)
        .filter(Document.id == document_id, Document.loan_id == loan_id)
        .first()
    )
    if db_doc is None:
        raise NotFoundError(f"Document not found with id of {document_id}")
    db.delete(db_doc)
    db.commit()
    return db_doc


# --------------------------------------------------------------- repayments

def db_generate_schedule(db: Session, loan_id: str) -> List[Repayment]:
    """
    Replace the loan's repayment schedule with one installment per period,
    counted from the disbursement date.
    """
    db_loan = get_loan_or_404(db, loan_id)
    if db_loan.approved_amount is None or db_loan.disbursed_date is None:
        raise ValidationError("Loan must be approved and disbursed to generate schedule")
    if any(r.status in ("paid", "partial") for r in db_loan.repayments):
        raise ConflictError("Cannot regenerate a schedule that already has payments")

    db.query(Repayment).filter(Repayment.loan_id == loan_id).delete()
    repayments = []
    for item in calculator.build_schedule(
        db_loan.period, db_loan.period_unit, float(db_loan.emi), db_loan.disbursed_date
    ):
        repayment = Repayment(
            loan_id=loan_id,
            emi_no=item.emi_no,
            due_date=item.due_date,
            amount=_money(item.amount),
            balance=_money(item.amount),
            penalty=Decimal("0"),
            status="pending",
        )
        db.add(repayment)
        repayments.append(repayment)
    db.commit()
    for repayment in repayments:
        db.refresh(repayment)
    logger.info("Generated %d installments for loan %s", len(repayments), loan_id)
    return repayments


def repayments_for_loan(db: Session, loan_id: str) -> List[Repayment]:
    get_loan_or_404(db, loan_id)
    return db.query(Repayment).filter(Repayment.loan_id == loan_id).order_by(Repayment.emi_no).all()


def get_repayment_or_404(db: Session, repayment_id: str) -> Repayment:
    repayment = db.query(Repayment).filter(Repayment.id == repayment_id).first()
    if repayment is None:
        raise NotFoundError(f"Repayment not found with id of {repayment_id}")
    return repayment


def get_repayment_by_emi(db: Session, loan_id: str, emi_no: int) -> Optional[Repayment]:
    return (
        db.query(Repayment)
        .filter(Repayment.loan_id == loan_id, Repayment.emi_no == emi_no)
        .first()
    )


def overdue_repayments(db: Session, today: date) -> List[Repayment]:
    """Unsettled installments whose due date is before `today`, oldest first."""
    return (
        db.query(Repayment)
        .filter(Repayment.due_date < today, Repayment.status.in_(OPEN_REPAYMENT_STATUSES))
        .order_by(Repayment.due_date, Repayment.loan_id, Repayment.emi_no)
        .all()
    )


def repayments_due_on(db: Session, day: date) -> List[Repayment]:
    return (
        db.query(Repayment)
        .filter(Repayment.due_date == day)
        .order_by(Repayment.loan_id, Repayment.emi_no)
        .all()
    )


def outstanding_balance(db: Session, loan_id: str) -> float:
    open_items = (
        db.query(Repayment)
        .filter(Repayment.loan_id == loan_id, Repayment.status.in_(OPEN_REPAYMENT_STATUSES))
        .all()
    )
    return float(sum((r.balance for r in open_items), Decimal("0")))


def db_record_payment(
    db: Session,
    repayment_id: str,
    paid_amount: float,
    payment_date: date,
    payment_mode: str,
    processed_by: Optional[str] = None,
    receipt_number: Optional[str] = None,
    remarks: Optional[str] = None,
    penalty_rate: float = 0.0,
    penalty_type: str = calculator.PenaltyType.PER_DAY.value,
) -> Repayment:
    """
    Record money received against one installment.

    A late payment first accrues the penalty; the installment is `paid` once
    its balance reaches zero and `partial` before that. The first payment on
    a disbursed loan activates it, and settling the last open installment of
    an active loan completes it.
    """
    repayment = get_repayment_or_404(db, repayment_id)
    if repayment.status == "paid":
        raise ValidationError(f"Installment {repayment.emi_no} is already paid")

    db_loan = repayment.loan
    if db_loan.status not in (domain.LoanStatus.DISBURSED.value, domain.LoanStatus.ACTIVE.value):
        raise ValidationError(f"Loan {db_loan.id} is {db_loan.status} and cannot take payments")

    days_overdue = (payment_date - repayment.due_date).days
    penalty = calculator.calculate_penalty(float(repayment.amount), days_overdue, penalty_rate, penalty_type)
    already_paid = float(repayment.paid_amount or 0)
    total_paid = already_paid + paid_amount
    balance = max(float(repayment.amount) + penalty - total_paid, 0.0)

    repayment.penalty = _money(penalty)
    repayment.paid_amount = _money(total_paid)
    repayment.balance = _money(balance)
    repayment.payment_date = payment_date
    repayment.payment_mode = payment_mode
    repayment.remarks = remarks or repayment.remarks
    if processed_by and not repayment.processed_by:
        repayment.processed_by = processed_by
    repayment.status = "paid" if balance <= 0 else "partial"
    if repayment.status == "paid" and not repayment.receipt_number:
        repayment.receipt_number = receipt_number or f"RCP-{db_loan.id}-{repayment.emi_no:03d}"
    elif receipt_number:
        repayment.receipt_number = receipt_number

    loan = to_loan(db_loan)
    if loan.status is domain.LoanStatus.DISBURSED:
        loan = lifecycle.transition(loan, domain.LoanStatus.ACTIVE)
    db.flush()
    still_open = (
        db.query(Repayment)
        .filter(Repayment.loan_id == db_loan.id, Repayment.status.in_(OPEN_REPAYMENT_STATUSES))
        .count()
    )
    if still_open == 0:
        loan = lifecycle.transition(loan, domain.LoanStatus.COMPLETED)

    if loan.status.value != db_loan.status:
        _write_loan(db_loan, loan)
    _commit(db, f"Loan {db_loan.id}")
    db.refresh(repayment)
    logger.info(
        "Recorded payment of %s on loan %s installment %s (status=%s)",
        paid_amount, db_loan.id, repayment.emi_no, repayment.status,
    )
    return repayment
