from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from savings_group.models.transaction import ContributionStatus


class ContributionUpdate(BaseModel):
    status: Optional[ContributionStatus] = None
    paid_at: Optional[datetime] = None

    class Config:
        extra = "forbid"


class OverdueResult(BaseModel):
    """Counts reported by a mark-overdue run."""
    marked: int = 0
    penalties_generated: int = 0
