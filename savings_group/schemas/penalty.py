from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from savings_group.models.transaction import PenaltyStatus


class PenaltyUpdate(BaseModel):
    """Resolution of a penalty; amounts and linkage are never rewritten."""
    status: Optional[PenaltyStatus] = None
    is_paid: Optional[bool] = None
    paid_at: Optional[datetime] = None

    class Config:
        extra = "forbid"
