from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from uuid import UUID
from savings_group.models.member import ActorRole
from savings_group.models.ledger import TransactionType


class LedgerQuery(BaseModel):
    """Filters for the transaction ledger view.

    ``limit`` is clamped by the service rather than rejected, so out-of-range
    values from a client still produce a page.
    """
    group_id: UUID
    role: ActorRole
    requester_id: UUID
    member_id: Optional[UUID] = Field(None, description="Admin-only member filter; ignored for members")
    type: Optional[TransactionType] = None
    date_from: Optional[datetime] = Field(None, alias="from")
    date_to: Optional[datetime] = Field(None, alias="to")
    limit: Optional[int] = None

    class Config:
        populate_by_name = True
