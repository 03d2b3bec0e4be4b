import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from api.dependencies import get_publisher
from api.schemas.customers import CustomerList, CustomerRequest, CustomerResponse, CustomerUpdate, RiskResponse
from api.schemas.loans import DocumentResponse, LoanList, LoanRequest, LoanResponse
from core.risk import classify_risk
from db.crud import (
    db_add_document,
    db_create_customer,
    db_create_loan,
    db_delete_customer,
    db_update_customer,
    get_customer_by_id,
    list_customers,
    loans_for_customer,
    to_customer,
    to_loan,
)
from db.database import get_db
from services.event_publisher import EventPublisher, LoanEvent, loan_event_payload
from services.uploads import store_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/customers", tags=["customers"])


@router.post("", status_code=201, response_model=CustomerResponse)
async def create_customer(payload: CustomerRequest, db: Session = Depends(get_db)):
    db_customer = db_create_customer(db, payload.model_dump())
    return to_customer(db_customer)


@router.get("", response_model=CustomerList)
async def get_customers(skip: int = 0, limit: int = 100, db: Session = Depends(get_db)):
    customers = [to_customer(c) for c in list_customers(db, skip=skip, limit=limit)]
    return CustomerList(count=len(customers), data=customers)


@router.get("/{customer_id}", response_model=CustomerResponse)
async def get_customer(customer_id: str, db: Session = Depends(get_db)):
    db_customer = get_customer_by_id(db, customer_id)
    if not db_customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    return to_customer(db_customer)


@router.put("/{customer_id}", response_model=CustomerResponse)
async def update_customer(customer_id: str, payload: CustomerUpdate, db: Session = Depends(get_db)):
    db_customer = db_update_customer(db, customer_id, payload.model_dump(exclude_unset=True))
    return to_customer(db_customer)


@router.delete("/{customer_id}")
async def delete_customer(customer_id: str, db: Session = Depends(get_db)):
    db_delete_customer(db, customer_id)
    return {"customer_id": customer_id, "deleted": True}


@router.get("/{customer_id}/risk", response_model=RiskResponse)
async def get_customer_risk(customer_id: str, db: Session = Depends(get_db)):
    db_customer = get_customer_by_id(db, customer_id)
    loans = [to_loan(l) for l in loans_for_customer(db, customer_id)] if db_customer else []
    level = classify_risk(to_customer(db_customer) if db_customer else None, loans)
    return RiskResponse(customer_id=customer_id, risk_level=level.value, loans=len(loans))


@router.get("/{customer_id}/loans", response_model=LoanList)
async def get_customer_loans(customer_id: str, db: Session = Depends(get_db)):
    if not get_customer_by_id(db, customer_id):
        raise HTTPException(status_code=404, detail="Customer not found")
    loans = [to_loan(l) for l in loans_for_customer(db, customer_id)]
    return LoanList(count=len(loans), data=loans)


@router.post("/{customer_id}/loans", status_code=201, response_model=LoanResponse)
async def create_loan(
    customer_id: str,
    payload: LoanRequest,
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
):
    db_loan = db_create_loan(db, customer_id, payload.model_dump())
    loan = to_loan(db_loan)
    logger.info("Loan application %s submitted for customer %s", loan.id, customer_id)

    publisher.publish(
        LoanEvent.LOAN_APPLICATION,
        loan_event_payload(loan, to_customer(db_loan.customer), amount=loan.requested_amount),
    )
    return loan


@router.post("/{customer_id}/documents", status_code=201, response_model=DocumentResponse)
async def upload_customer_document(
    customer_id: str,
    file: UploadFile = File(...),
    document_name: str = Form(None),
    db: Session = Depends(get_db),
):
    if not get_customer_by_id(db, customer_id):
        raise HTTPException(status_code=404, detail="Customer not found")
    stored = store_upload(file.file, file.filename, file.content_type, "customer_doc", customer_id)
    db_doc = db_add_document(
        db, document_name or stored.filename, stored.content_type, stored.url, customer_id=customer_id
    )
    return DocumentResponse(id=db_doc.id, name=db_doc.name, type=db_doc.type, url=db_doc.url)
