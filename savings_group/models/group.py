from sqlalchemy import Column, String, DateTime, Numeric, Integer, Boolean, Uuid
from sqlalchemy.orm import relationship
import uuid
from decimal import Decimal
from savings_group.db.base import Base
from savings_group.core.dates import utcnow


class Group(Base):
    """Savings group with its settings and treasury counters."""
    __tablename__ = "savings_group"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    # Settings (mutated by admin action through services.group.update_settings)
    contribution_amount = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    loan_interest_rate = Column(Numeric(7, 4), nullable=False, default=Decimal("0.0000"))  # fraction, 0.05 = 5%
    penalty_rate = Column(Numeric(7, 4), nullable=False, default=Decimal("0.0000"))
    contribution_penalty_rate = Column(Numeric(7, 4), nullable=False, default=Decimal("0.0000"))
    compulsory_interest_rate = Column(Numeric(7, 4), nullable=False, default=Decimal("0.0000"))  # monthly, on share value
    share_fee = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))  # value of one share
    seed_amount = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))  # seed deposit per share; 0 = none required
    minimum_contribution_months = Column(Integer, nullable=True)
    loan_to_savings_ratio = Column(Numeric(7, 2), nullable=True)
    automatic_penalties_enabled = Column(Boolean, nullable=False, default=True)

    # Treasury counters (written only by the engines)
    total_savings = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    total_income = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    cash = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))

    # Relationships
    members = relationship("Member", back_populates="group")
