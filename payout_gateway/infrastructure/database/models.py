"""SQLAlchemy ORM models for contracts, the payout ledger and bank accounts"""

import uuid
from sqlalchemy import Column, String, BigInteger, DateTime, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class WorkContract(Base):
    """Commission contract; owned by the contract-lifecycle workflow, read-only here"""

    __tablename__ = "work_contract"

    id = Column(Text, primary_key=True)
    title = Column(Text, nullable=False, default="")
    creator_id = Column(Text, nullable=False, index=True)
    requester_id = Column(Text, nullable=False)
    final_price = Column(BigInteger, nullable=False)
    status = Column(Text, nullable=False, index=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    payment_records = relationship("PaymentRecord", back_populates="contract")


class PaymentRecord(Base):
    """Ledger entry: settlement state of exactly one completed contract"""

    __tablename__ = "payment_record"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # Unique: the idempotency guard against double settlement
    contract_id = Column(Text, ForeignKey("work_contract.id"), nullable=False, unique=True)
    creator_id = Column(Text, nullable=False, index=True)
    amount = Column(BigInteger, nullable=True)
    transfer_fee = Column(BigInteger, nullable=True)
    completed_month = Column(String(7), nullable=False, index=True)
    status = Column(Text, nullable=False, default="pending")
    paid_at = Column(DateTime(timezone=True), nullable=True)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    contract = relationship("WorkContract", back_populates="payment_records")


class BankAccount(Base):
    """Creator payout destination; edited elsewhere, read-only here"""

    __tablename__ = "bank_account"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    creator_id = Column(Text, nullable=False, unique=True)
    bank_name = Column(Text, nullable=False)
    branch_name = Column(Text, nullable=False)
    account_type = Column(Text, nullable=False)
    account_number = Column(Text, nullable=False)
    account_holder_name = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
