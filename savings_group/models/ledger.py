from sqlalchemy import Column, String, ForeignKey, DateTime, Numeric, Enum as SQLEnum, Uuid, Index, event
import uuid
import enum
from decimal import Decimal
from savings_group.db.base import Base
from savings_group.core.dates import utcnow
from savings_group.core.exceptions import ConflictError


class TransactionType(str, enum.Enum):
    """Kinds of financial events recorded on the ledger."""
    CONTRIBUTION = "contribution"
    LOAN_DISBURSEMENT = "loan_disbursement"
    LOAN_REPAYMENT = "loan_repayment"
    PENALTY_CHARGED = "penalty_charged"
    PENALTY_PAYMENT = "penalty_payment"
    CYCLE_DISTRIBUTION = "cycle_distribution"
    SEED_DEPOSIT = "seed_deposit"
    SHARE_PURCHASE = "share_purchase"
    COMPULSORY_INTEREST = "compulsory_interest"
    INITIAL_DEPOSIT = "initial_deposit"


class LedgerTransaction(Base):
    """Immutable ledger entry with its effect on member savings and group treasury."""
    __tablename__ = "ledger_transaction"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    group_id = Column(Uuid(as_uuid=True), ForeignKey("savings_group.id"), nullable=False, index=True)
    member_id = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=True, index=True)
    type = Column(SQLEnum(TransactionType, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    description = Column(String(255), nullable=True)
    member_savings_change = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    group_income_change = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    group_cash_change = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    contribution_id = Column(Uuid(as_uuid=True), ForeignKey("contribution.id"), nullable=True)
    loan_id = Column(Uuid(as_uuid=True), ForeignKey("loan.id"), nullable=True)
    installment_id = Column(Uuid(as_uuid=True), ForeignKey("loan_installment.id"), nullable=True)
    penalty_id = Column(Uuid(as_uuid=True), ForeignKey("penalty.id"), nullable=True)
    distribution_id = Column(Uuid(as_uuid=True), ForeignKey("distribution.id"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    created_by = Column(String(64), nullable=False, default="system")

    __table_args__ = (
        Index("idx_ledger_transaction_group_created", "group_id", "created_at"),
    )


class LedgerImmutableError(ConflictError):
    """Raised when code tries to rewrite or remove a ledger entry."""


@event.listens_for(LedgerTransaction, "before_update")
def _refuse_update(mapper, connection, target):
    raise LedgerImmutableError(f"Ledger transaction {target.id} is append-only and cannot be updated")


@event.listens_for(LedgerTransaction, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise LedgerImmutableError(f"Ledger transaction {target.id} is append-only and cannot be deleted")
