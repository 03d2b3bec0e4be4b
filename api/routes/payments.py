import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from api.dependencies import get_publisher
from api.schemas.payments import (
    BulkPaymentFailure,
    BulkPaymentItem,
    BulkPaymentRequest,
    BulkPaymentResponse,
    BulkPaymentResults,
    CollectionList,
    CollectionRepayment,
    PaymentRequest,
    RepaymentResponse,
)
from config import AppConfig
from core.calculator import calculate_penalty
from core.errors import LoanServiceError
from db.crud import (
    db_record_payment,
    get_repayment_by_emi,
    get_repayment_or_404,
    outstanding_balance,
    overdue_repayments,
    repayments_due_on,
    to_customer,
    to_loan,
)
from db.database import get_db
from db.models import Repayment
from services.event_publisher import EventPublisher, LoanEvent, loan_event_payload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


def _publish_receipt(db: Session, publisher: EventPublisher, repayment: Repayment, amount: float) -> None:
    db_loan = repayment.loan
    publisher.publish(
        LoanEvent.PAYMENT_RECEIPT,
        loan_event_payload(
            to_loan(db_loan),
            to_customer(db_loan.customer),
            amount=amount,
            date=repayment.payment_date,
            balance=outstanding_balance(db, db_loan.id),
        ),
    )


def _collection_view(repayment: Repayment, today: date, next_due: Optional[date] = None) -> CollectionRepayment:
    view = CollectionRepayment.model_validate(repayment)
    customer = repayment.loan.customer
    days_overdue = (today - repayment.due_date).days
    is_overdue = days_overdue > 0 and repayment.status != "paid"
    return view.model_copy(update={
        "customer_name": customer.name,
        "customer_phone": customer.phone,
        "is_overdue": is_overdue,
        "days_overdue": days_overdue if is_overdue else 0,
        "next_payment_date": next_due,
    })


@router.get("/overdue", response_model=CollectionList)
async def get_overdue_payments(db: Session = Depends(get_db)):
    """Unsettled installments past their due date, with the penalty accrued so far."""
    today = date.today()
    data = []
    for repayment in overdue_repayments(db, today):
        view = _collection_view(repayment, today)
        penalty = calculate_penalty(
            float(repayment.amount), view.days_overdue, AppConfig.PENALTY_RATE, AppConfig.PENALTY_TYPE
        )
        data.append(view.model_copy(update={"penalty": penalty}))
    return CollectionList(count=len(data), data=data)


@router.get("/daily", response_model=CollectionList)
@router.get("/daily/{day}", response_model=CollectionList)
async def get_daily_payments(day: Optional[date] = None, db: Session = Depends(get_db)):
    today = date.today()
    data = []
    for repayment in repayments_due_on(db, day or today):
        following = get_repayment_by_emi(db, repayment.loan_id, repayment.emi_no + 1)
        data.append(_collection_view(repayment, today, following.due_date if following else None))
    return CollectionList(count=len(data), data=data)


@router.post("/bulk", response_model=BulkPaymentResponse)
async def pay_bulk(
    payload: BulkPaymentRequest,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    """
    Apply a batch of collected installments. Each entry succeeds or fails on
    its own; failures are reported with the reason.
    """
    success, failed = [], []
    for raw in payload.payments:
        try:
            item = BulkPaymentItem.model_validate(raw)
        except PydanticValidationError as exc:
            failed.append(BulkPaymentFailure(payment=raw, error=exc.errors()[0]["msg"]))
            continue

        repayment = get_repayment_by_emi(db, item.loan_id, item.emi_no)
        if repayment is None:
            failed.append(BulkPaymentFailure(payment=raw, error="Repayment not found"))
            continue

        try:
            repayment = db_record_payment(
                db,
                repayment.id,
                paid_amount=item.paid_amount,
                payment_date=item.payment_date,
                payment_mode=item.payment_mode.value,
                processed_by=item.processed_by,
                receipt_number=item.receipt_number,
                remarks=item.remarks,
                penalty_rate=AppConfig.PENALTY_RATE,
                penalty_type=AppConfig.PENALTY_TYPE,
            )
        except LoanServiceError as exc:
            db.rollback()
            failed.append(BulkPaymentFailure(payment=raw, error=str(exc)))
            continue

        _publish_receipt(db, publisher, repayment, item.paid_amount)
        success.append(RepaymentResponse.model_validate(repayment))

    logger.info("Bulk payment: %d processed, %d failed", len(success), len(failed))
    return BulkPaymentResponse(
        processed=len(success),
        failed=len(failed),
        results=BulkPaymentResults(success=success, failed=failed),
    )


@router.get("/{repayment_id}", response_model=RepaymentResponse)
async def get_payment(repayment_id: str, db: Session = Depends(get_db)):
    return RepaymentResponse.model_validate(get_repayment_or_404(db, repayment_id))


@router.post("/{repayment_id}/pay", response_model=RepaymentResponse)
async def pay_installment(
    repayment_id: str,
    payload: PaymentRequest,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    repayment = db_record_payment(
        db,
        repayment_id,
        paid_amount=payload.paid_amount,
        payment_date=payload.payment_date or date.today(),
        payment_mode=payload.payment_mode.value,
        processed_by=payload.processed_by,
        receipt_number=payload.receipt_number,
        remarks=payload.remarks,
        penalty_rate=AppConfig.PENALTY_RATE,
        penalty_type=AppConfig.PENALTY_TYPE,
    )
    _publish_receipt(db, publisher, repayment, payload.paid_amount)
    return RepaymentResponse.model_validate(repayment)
