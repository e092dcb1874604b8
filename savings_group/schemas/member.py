from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from decimal import Decimal
from savings_group.models.member import MemberStatus


class MemberUpdate(BaseModel):
    status: Optional[MemberStatus] = None
    activated_at: Optional[datetime] = None
    shares_owned: Optional[int] = None
    seed_paid: Optional[bool] = None
    seed_paid_at: Optional[datetime] = None

    class Config:
        extra = "forbid"


class MemberCredit(BaseModel):
    """Amounts added to a member's running totals."""
    balance: Optional[Decimal] = None
    penalties_total: Optional[Decimal] = None

    class Config:
        extra = "forbid"
