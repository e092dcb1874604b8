from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from decimal import Decimal
from uuid import UUID
import enum
from savings_group.models.distribution import DistributionStatus


class ComplianceStatus(str, enum.Enum):
    """How a member's paid contributions compare with a full cycle."""
    COMPLETED = "completed"
    PARTIAL = "partial"
    DEFAULTED = "defaulted"


class DistributionUpdate(BaseModel):
    status: Optional[DistributionStatus] = None
    distributed_at: Optional[datetime] = None

    class Config:
        extra = "forbid"


class MemberDistributionUpdate(BaseModel):
    """Only the payout stamp may change once a member share is cached."""
    paid_at: Optional[datetime] = None

    class Config:
        extra = "forbid"


class PayoutEstimate(BaseModel):
    """What a member would receive if the year were distributed now."""
    year: int
    member_id: UUID
    base_share: Decimal
    expected_contribution: Decimal
    actual_contribution: Decimal
    remaining_contribution_balance: Decimal
    compliance_status: ComplianceStatus
    loan_balance: Decimal
    pending_penalties: Decimal
    estimated_payout: Decimal
