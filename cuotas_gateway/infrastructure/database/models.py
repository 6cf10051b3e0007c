"""SQLAlchemy ORM models for plans, enrollments, installments and withdrawals"""

import uuid
from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class PaymentPlan(Base):
    """Plan definition with its optional Plan B link and policy parameters"""

    __tablename__ = "payment_plan"

    code = Column(Text, primary_key=True)
    name = Column(Text, nullable=False)
    fiscal_year = Column(Integer, nullable=False)
    audience = Column(Text, nullable=False)
    currency = Column(Text, nullable=False)
    total_minor = Column(BigInteger, nullable=False)
    strategy = Column(Text, nullable=False)  # FIXED_INSTALLMENT | DIVIDED_AMOUNT
    fixed_installment_minor = Column(BigInteger, nullable=True)
    min_installments = Column(Integer, nullable=True)
    max_installments = Column(Integer, nullable=True)
    due_day = Column(Integer, nullable=False)
    start_month = Column(Integer, nullable=False)
    end_month = Column(Integer, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    enrollment_cutoff_month = Column(Integer, nullable=True)

    # Migration policy: all set or all null
    destination_plan_code = Column(Text, ForeignKey("payment_plan.code"), nullable=True)
    control_start_month = Column(Integer, nullable=True)
    minimum_paid_before_control = Column(Integer, nullable=True)
    tolerated_arrears_months = Column(Integer, nullable=True)

    # Refund policy: all set or all null
    full_refund_cutoff_month = Column(Integer, nullable=True)
    half_refund_cutoff_month = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class EnrollmentRecord(Base):
    """Participant enrollment; version column serializes concurrent writers"""

    __tablename__ = "enrollment"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    participant_id = Column(Text, nullable=False, index=True)
    plan_code = Column(Text, ForeignKey("payment_plan.code"), nullable=False, index=True)
    original_plan_code = Column(Text, ForeignKey("payment_plan.code"), nullable=False)
    admission_month = Column(Integer, nullable=False)
    installment_count = Column(Integer, nullable=False)
    status = Column(Text, nullable=False, default="ACTIVE")
    migrated_on = Column(Date, nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True)

    cuotas = relationship(
        "CuotaRecord",
        back_populates="enrollment",
        cascade="all, delete-orphan",
        order_by="CuotaRecord.sequence",
    )

    __mapper_args__ = {"version_id_col": version}


class CuotaRecord(Base):
    """Individual installment within an enrollment"""

    __tablename__ = "cuota"
    __table_args__ = (UniqueConstraint("enrollment_id", "sequence", name="uq_cuota_enrollment_sequence"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    enrollment_id = Column(Uuid, ForeignKey("enrollment.id", ondelete="CASCADE"), nullable=False)
    sequence = Column(Integer, nullable=False)
    plan_code = Column(Text, nullable=False)
    due_date = Column(Date, nullable=False)
    amount_minor = Column(BigInteger, nullable=False)
    currency = Column(Text, nullable=False)
    state = Column(Text, nullable=False, default="PLANNED")
    paid_on = Column(Date, nullable=True)
    payment_method = Column(Text, nullable=True)
    note = Column(Text, nullable=True)

    enrollment = relationship("EnrollmentRecord", back_populates="cuotas")


class WithdrawalRecord(Base):
    """Withdrawal request with its computed refund"""

    __tablename__ = "withdrawal_request"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    enrollment_id = Column(Uuid, ForeignKey("enrollment.id"), nullable=False, index=True)
    participant_id = Column(Text, nullable=False)
    plan_code = Column(Text, nullable=False)
    requested_month = Column(Integer, nullable=False)
    refund_percentage = Column(Integer, nullable=False)
    currency = Column(Text, nullable=False)
    paid_minor = Column(BigInteger, nullable=False)
    refund_minor = Column(BigInteger, nullable=False)
    state = Column(Text, nullable=False, default="PENDING")
    reason = Column(Text, nullable=True)
    treasurer_note = Column(Text, nullable=True)
    payment_reference = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    processed_at = Column(DateTime(timezone=True), nullable=True)


class PaymentIntentRecord(Base):
    """Payment intent handed to the external gateway"""

    __tablename__ = "payment_intent"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    enrollment_id = Column(Uuid, ForeignKey("enrollment.id"), nullable=False, index=True)
    cuota_ids = Column(JSON, nullable=False)
    amount_minor = Column(BigInteger, nullable=False)
    currency = Column(Text, nullable=False)
    method = Column(Text, nullable=False)
    preference_id = Column(Text, nullable=True)
    redirect_url = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="PENDING")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
