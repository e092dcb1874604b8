from sqlalchemy import Column, String, ForeignKey, DateTime, Numeric, Integer, Boolean, Enum as SQLEnum, Text, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
import uuid
import enum
from decimal import Decimal
from savings_group.db.base import Base
from savings_group.core.dates import utcnow


class ContributionStatus(str, enum.Enum):
    """Contribution status."""
    UNPAID = "unpaid"
    OVERDUE = "overdue"
    PAID = "paid"


class LoanStatus(str, enum.Enum):
    """Loan status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CLOSED = "closed"


class InstallmentStatus(str, enum.Enum):
    """Loan installment status."""
    DUE = "due"
    PAID = "paid"
    LATE = "late"  # settled after its due date


class PenaltyStatus(str, enum.Enum):
    """Penalty status."""
    UNPAID = "unpaid"
    PAID = "paid"


class Contribution(Base):
    """Monthly savings obligation of one member."""
    __tablename__ = "contribution"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    group_id = Column(Uuid(as_uuid=True), ForeignKey("savings_group.id"), nullable=False, index=True)
    member_id = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    month = Column(String(7), nullable=False, index=True)  # "YYYY-MM"
    due_date = Column(DateTime, nullable=False)
    status = Column(SQLEnum(ContributionStatus, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), default=ContributionStatus.UNPAID, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    paid_at = Column(DateTime, nullable=True)

    # Relationships
    member = relationship("Member", back_populates="contributions")

    __table_args__ = (
        UniqueConstraint("member_id", "month", name="uq_contribution_member_month"),
    )


class Loan(Base):
    """Member loan; owns its installment schedule once approved."""
    __tablename__ = "loan"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    group_id = Column(Uuid(as_uuid=True), ForeignKey("savings_group.id"), nullable=False, index=True)
    member_id = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=False, index=True)
    principal = Column(Numeric(15, 2), nullable=False)
    interest_rate = Column(Numeric(7, 4), nullable=False, default=Decimal("0.0000"))  # snapshot at approval
    total_interest = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    total_due = Column(Numeric(15, 2), nullable=False)
    balance = Column(Numeric(15, 2), nullable=False)  # outstanding
    status = Column(SQLEnum(LoanStatus, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), default=LoanStatus.PENDING, nullable=False)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    approved_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    closed_at = Column(DateTime, nullable=True)
    due_date = Column(DateTime, nullable=True)  # last installment

    # Relationships
    member = relationship("Member", back_populates="loans")
    installments = relationship(
        "LoanInstallment",
        back_populates="loan",
        order_by="LoanInstallment.installment_number",
        cascade="all, delete-orphan",
    )


class LoanInstallment(Base):
    """One scheduled repayment slice of an approved loan."""
    __tablename__ = "loan_installment"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_id = Column(Uuid(as_uuid=True), ForeignKey("loan.id"), nullable=False, index=True)
    installment_number = Column(Integer, nullable=False)
    due_date = Column(DateTime, nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    principal_amount = Column(Numeric(15, 2), nullable=False)
    interest_amount = Column(Numeric(15, 2), nullable=False)
    status = Column(SQLEnum(InstallmentStatus, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), default=InstallmentStatus.DUE, nullable=False)
    paid_at = Column(DateTime, nullable=True)

    # Relationships
    loan = relationship("Loan", back_populates="installments")

    __table_args__ = (
        UniqueConstraint("loan_id", "installment_number", name="uq_installment_loan_number"),
    )

    @property
    def is_settled(self) -> bool:
        return self.status in (InstallmentStatus.PAID, InstallmentStatus.LATE)


class Penalty(Base):
    """Charge levied for a missed deadline, rolled into the member's penalty total."""
    __tablename__ = "penalty"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    group_id = Column(Uuid(as_uuid=True), ForeignKey("savings_group.id"), nullable=False, index=True)
    member_id = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=False, index=True)
    loan_id = Column(Uuid(as_uuid=True), ForeignKey("loan.id"), nullable=True, index=True)
    installment_id = Column(Uuid(as_uuid=True), ForeignKey("loan_installment.id"), nullable=True, unique=True)
    contribution_id = Column(Uuid(as_uuid=True), ForeignKey("contribution.id"), nullable=True, unique=True)
    amount = Column(Numeric(15, 2), nullable=False)
    reason = Column(Text, nullable=False)
    status = Column(SQLEnum(PenaltyStatus, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), default=PenaltyStatus.UNPAID, nullable=False)
    is_paid = Column(Boolean, nullable=False, default=False)
    due_date = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    paid_at = Column(DateTime, nullable=True)

    # Relationships
    member = relationship("Member", back_populates="penalties")
