from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from savings_group.models.transaction import LoanStatus, InstallmentStatus


class LoanUpdate(BaseModel):
    """Fields a lifecycle transition may write on a loan."""
    interest_rate: Optional[Decimal] = None
    total_interest: Optional[Decimal] = None
    total_due: Optional[Decimal] = None
    balance: Optional[Decimal] = None
    status: Optional[LoanStatus] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    closed_at: Optional[datetime] = None
    due_date: Optional[datetime] = None

    class Config:
        extra = "forbid"


class InstallmentUpdate(BaseModel):
    status: Optional[InstallmentStatus] = None
    paid_at: Optional[datetime] = None

    class Config:
        extra = "forbid"


class LoanEligibility(BaseModel):
    """Outcome of a loan eligibility check, with every failed rule listed."""
    is_eligible: bool
    reasons: List[str] = Field(default_factory=list)
    max_loan_amount: Decimal
    contribution_months: int
    required_months: int
