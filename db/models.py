from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, JSON, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base
import uuid


def _uuid() -> str:
    return str(uuid.uuid4())


class Customer(Base):
    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(100), nullable=False)
    nic = Column(String(20), nullable=False, unique=True)
    dob = Column(Date, nullable=False)
    address = Column(Text, nullable=False)
    phone = Column(String(20), nullable=False)
    email = Column(String(255))
    marital_status = Column(String(10), nullable=False)
    occupation = Column(String(100), nullable=False)
    income = Column(Numeric(12, 2), nullable=False)
    bank_account = Column(String(50))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    documents = relationship(
        "Document", back_populates="customer", cascade="all, delete-orphan", order_by="Document.uploaded_at"
    )
    loans = relationship("Loan", back_populates="customer")


class Loan(Base):
    __tablename__ = "loans"

    id = Column(String(20), primary_key=True)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    requested_amount = Column(Numeric(12, 2), nullable=False)
    interest_rate = Column(Numeric(6, 3), nullable=False)
    period = Column(Integer, nullable=False)
    period_unit = Column(String(10), nullable=False, default="months")
    emi = Column(Numeric(12, 2), nullable=False)
    purpose = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)
    guarantor = Column(JSON, nullable=True)
    collateral = Column(JSON, nullable=True)
    approved_by = Column(String(100))
    approved_date = Column(DateTime(timezone=True))
    approved_amount = Column(Numeric(12, 2))
    remarks = Column(Text)
    disbursed_date = Column(Date)
    disbursed_amount = Column(Numeric(12, 2))
    disbursement_method = Column(String(20))
    disbursement_reference = Column(String(100))
    disbursed_by = Column(String(100))
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # concurrent writers to the same loan: the second flush raises StaleDataError
    __mapper_args__ = {"version_id_col": version}

    customer = relationship("Customer", back_populates="loans")
    documents = relationship(
        "Document", back_populates="loan", cascade="all, delete-orphan", order_by="Document.uploaded_at"
    )
    repayments = relationship(
        "Repayment", back_populates="loan", cascade="all, delete-orphan", order_by="Repayment.emi_no"
    )


class Document(Base):
    __tablename__ = "documents"

    id = Column(String(36), primary_key=True, default=_uuid)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=True, index=True)
    loan_id = Column(String(20), ForeignKey("loans.id"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    type = Column(String(100), nullable=False)
    url = Column(String(500), nullable=False)
    uploaded_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    customer = relationship("Customer", back_populates="documents")
    loan = relationship("Loan", back_populates="documents")


class Repayment(Base):
    __tablename__ = "repayments"
    __table_args__ = (
        UniqueConstraint("loan_id", "emi_no", name="uq_repayment_emi_no"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    loan_id = Column(String(20), ForeignKey("loans.id"), nullable=False, index=True)
    emi_no = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    paid_amount = Column(Numeric(12, 2))
    balance = Column(Numeric(12, 2), nullable=False)
    payment_date = Column(Date)
    payment_mode = Column(String(10))
    penalty = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(String(10), nullable=False, default="pending")
    remarks = Column(Text)
    receipt_number = Column(String(50))
    processed_by = Column(String(100))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    loan = relationship("Loan", back_populates="repayments")
