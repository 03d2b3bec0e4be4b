import logging
from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from api.dependencies import get_publisher
from api.schemas.loans import (
    ApprovalRequest,
    ApprovalStatsResponse,
    DisbursementRequest,
    DocumentResponse,
    LoanList,
    LoanResponse,
    LoanUpdate,
    QuickDecisionRequest,
    RejectionRequest,
    ScoreResponse,
)
from api.schemas.payments import RepaymentList, RepaymentResponse
from core.models import LoanStatus, utcnow
from core.risk import approval_stats
from core.scoring import score
from db.crud import (
    all_loans,
    apply_quick_decision,
    apply_transition,
    db_add_document,
    db_delete_loan,
    db_generate_schedule,
    db_remove_loan_document,
    db_update_loan,
    get_loan_by_id,
    get_loan_or_404,
    list_loans,
    repayments_for_loan,
    to_customer,
    to_loan,
)
from db.database import get_db
from services.event_publisher import EventPublisher, LoanEvent, loan_event_payload
from services.uploads import remove_upload, store_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/loans", tags=["loans"])


def _publish(publisher: EventPublisher, event: LoanEvent, db_loan, **extra: Any) -> None:
    loan = to_loan(db_loan)
    publisher.publish(event, loan_event_payload(loan, to_customer(db_loan.customer), **extra))


@router.get("", response_model=LoanList)
async def get_loans(status: Optional[LoanStatus] = None, skip: int = 0, limit: int = 100,
                    db: Session = Depends(get_db)):
    loans = [to_loan(l) for l in list_loans(db, status.value if status else None, skip, limit)]
    return LoanList(count=len(loans), data=loans)


@router.get("/stats", response_model=ApprovalStatsResponse)
async def get_approval_stats(db: Session = Depends(get_db)):
    stats = approval_stats(to_loan(l) for l in all_loans(db))
    return ApprovalStatsResponse(**stats._asdict())


@router.get("/{loan_id}", response_model=LoanResponse)
async def get_loan(loan_id: str, db: Session = Depends(get_db)):
    db_loan = get_loan_by_id(db, loan_id)
    if not db_loan:
        raise HTTPException(status_code=404, detail="Loan not found")
    return to_loan(db_loan)


@router.put("/{loan_id}", response_model=LoanResponse)
async def update_loan(loan_id: str, payload: LoanUpdate, db: Session = Depends(get_db)):
    db_loan = db_update_loan(db, loan_id, payload.model_dump(exclude_unset=True))
    return to_loan(db_loan)


@router.delete("/{loan_id}")
async def delete_loan(loan_id: str, db: Session = Depends(get_db)):
    db_delete_loan(db, loan_id)
    return {"loan_id": loan_id, "deleted": True}


@router.get("/{loan_id}/score", response_model=ScoreResponse)
async def get_loan_score(loan_id: str, db: Session = Depends(get_db)):
    db_loan = get_loan_by_id(db, loan_id)
    if not db_loan:
        raise HTTPException(status_code=404, detail="Loan not found")
    customer = to_customer(db_loan.customer) if db_loan.customer else None
    result = score(to_loan(db_loan), customer)
    return ScoreResponse(loan_id=loan_id, **result.as_dict())


@router.post("/{loan_id}/approve", response_model=LoanResponse)
async def approve_loan(
    loan_id: str,
    payload: ApprovalRequest,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    db_loan = get_loan_or_404(db, loan_id)
    amount = payload.approved_amount
    if amount is None:
        amount = float(db_loan.requested_amount)
    approval = {
        "approved_amount": amount,
        "approved_by": payload.approved_by,
        "approved_date": utcnow(),
        "remarks": payload.remarks,
    }
    db_loan = apply_transition(db, loan_id, LoanStatus.APPROVED, approval)
    _publish(publisher, LoanEvent.LOAN_APPROVAL, db_loan,
             amount=float(db_loan.approved_amount), date=db_loan.approved_date.date())
    return to_loan(db_loan)


@router.post("/{loan_id}/reject", response_model=LoanResponse)
async def reject_loan(
    loan_id: str,
    payload: RejectionRequest,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    db_loan = apply_transition(db, loan_id, LoanStatus.REJECTED, payload.model_dump())
    _publish(publisher, LoanEvent.LOAN_REJECTION, db_loan)
    return to_loan(db_loan)


@router.post("/{loan_id}/quick-approve", response_model=LoanResponse)
async def quick_approve_loan(
    loan_id: str,
    payload: QuickDecisionRequest,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    db_loan = apply_quick_decision(db, loan_id, approve=True, decided_by=payload.decided_by)
    _publish(publisher, LoanEvent.LOAN_APPROVAL, db_loan,
             amount=float(db_loan.approved_amount), date=db_loan.approved_date.date())
    return to_loan(db_loan)


@router.post("/{loan_id}/quick-reject", response_model=LoanResponse)
async def quick_reject_loan(
    loan_id: str,
    payload: QuickDecisionRequest,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    db_loan = apply_quick_decision(db, loan_id, approve=False, decided_by=payload.decided_by)
    _publish(publisher, LoanEvent.LOAN_REJECTION, db_loan)
    return to_loan(db_loan)


@router.post("/{loan_id}/disburse", response_model=LoanResponse)
async def disburse_loan(
    loan_id: str,
    payload: DisbursementRequest,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    db_loan = get_loan_or_404(db, loan_id)
    disbursement = payload.model_dump()
    if disbursement["disbursed_amount"] is None and db_loan.approved_amount is not None:
        disbursement["disbursed_amount"] = float(db_loan.approved_amount)
    if disbursement["disbursed_date"] is None:
        disbursement["disbursed_date"] = date.today()
    if not disbursement["disbursement_reference"]:
        disbursement["disbursement_reference"] = (
            f"{payload.disbursement_method.value.upper()}-{int(utcnow().timestamp() * 1000)}"
        )

    db_loan = apply_transition(db, loan_id, LoanStatus.DISBURSED, disbursement)
    _publish(publisher, LoanEvent.LOAN_DISBURSEMENT, db_loan,
             amount=float(db_loan.disbursed_amount), date=db_loan.disbursed_date)
    return to_loan(db_loan)


@router.post("/{loan_id}/activate", response_model=LoanResponse)
async def activate_loan(loan_id: str, db: Session = Depends(get_db)):
    return to_loan(apply_transition(db, loan_id, LoanStatus.ACTIVE))


@router.post("/{loan_id}/complete", response_model=LoanResponse)
async def complete_loan(loan_id: str, db: Session = Depends(get_db)):
    return to_loan(apply_transition(db, loan_id, LoanStatus.COMPLETED))


@router.post("/{loan_id}/documents", status_code=201, response_model=DocumentResponse)
async def upload_loan_document(
    loan_id: str,
    file: UploadFile = File(...),
    document_name: str = Form(None),
    db: Session = Depends(get_db),
):
    get_loan_or_404(db, loan_id)
    stored = store_upload(file.file, file.filename, file.content_type, "loan_doc", loan_id)
    db_doc = db_add_document(db, document_name or stored.filename, stored.content_type, stored.url, loan_id=loan_id)
    return DocumentResponse(id=db_doc.id, name=db_doc.name, type=db_doc.type, url=db_doc.url)


@router.delete("/{loan_id}/documents/{document_id}")
async def delete_loan_document(loan_id: str, document_id: str, db: Session = Depends(get_db)):
    db_doc = db_remove_loan_document(db, loan_id, document_id)
    remove_upload(db_doc.url)
    return {"document_id": document_id, "deleted": True}


@router.post("/{loan_id}/schedule", response_model=RepaymentList)
async def generate_schedule(loan_id: str, db: Session = Depends(get_db)):
    repayments = [RepaymentResponse.model_validate(r) for r in db_generate_schedule(db, loan_id)]
    return RepaymentList(count=len(repayments), data=repayments)


@router.get("/{loan_id}/payments", response_model=RepaymentList)
async def get_loan_payments(loan_id: str, db: Session = Depends(get_db)):
    repayments = [RepaymentResponse.model_validate(r) for r in repayments_for_loan(db, loan_id)]
    return RepaymentList(count=len(repayments), data=repayments)
