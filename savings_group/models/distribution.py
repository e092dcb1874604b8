from sqlalchemy import Column, ForeignKey, DateTime, Numeric, Integer, Enum as SQLEnum, Uuid, UniqueConstraint, Index, text
from sqlalchemy.orm import relationship
import uuid
import enum
from decimal import Decimal
from savings_group.db.base import Base
from savings_group.core.dates import utcnow


class DistributionStatus(str, enum.Enum):
    """Distribution status."""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Distribution(Base):
    """Year-end profit split for one group."""
    __tablename__ = "distribution"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    group_id = Column(Uuid(as_uuid=True), ForeignKey("savings_group.id"), nullable=False, index=True)
    year = Column(Integer, nullable=False)
    total_contributions = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    total_profit_pool = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))  # loan interest + penalties
    total_loan_interest = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    total_penalties = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    number_of_members = Column(Integer, nullable=False)
    profit_per_member = Column(Numeric(15, 2), nullable=False)
    status = Column(SQLEnum(DistributionStatus, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), default=DistributionStatus.PENDING, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    distributed_at = Column(DateTime, nullable=True)

    # Relationships
    member_distributions = relationship("MemberDistribution", back_populates="distribution")

    # One live (non-cancelled) distribution per group and year
    __table_args__ = (
        Index(
            "uq_distribution_group_year_live",
            "group_id",
            "year",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )


class MemberDistribution(Base):
    """A member's cached share of a distribution; paid_at is stamped once on payout."""
    __tablename__ = "member_distribution"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    distribution_id = Column(Uuid(as_uuid=True), ForeignKey("distribution.id"), nullable=False, index=True)
    member_id = Column(Uuid(as_uuid=True), ForeignKey("member.id"), nullable=False, index=True)
    total_contributions = Column(Numeric(15, 2), nullable=False)
    profit_share = Column(Numeric(15, 2), nullable=False)
    total_payout = Column(Numeric(15, 2), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    paid_at = Column(DateTime, nullable=True)

    # Relationships
    distribution = relationship("Distribution", back_populates="member_distributions")

    __table_args__ = (
        UniqueConstraint("distribution_id", "member_id", name="uq_member_distribution"),
    )
