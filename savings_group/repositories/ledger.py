from datetime import datetime
from typing import List, Optional
from uuid import UUID

from savings_group.models.ledger import LedgerImmutableError, LedgerTransaction, TransactionType
from savings_group.repositories.base import Repository


class TransactionRepository(Repository[LedgerTransaction]):
    """Append-only: there is no update path for ledger entries."""
    model = LedgerTransaction

    def update(self, entity, changes):
        raise LedgerImmutableError(f"Ledger transaction {entity.id} is append-only and cannot be updated")

    def increment(self, entity_id, deltas):
        raise LedgerImmutableError(f"Ledger transaction {entity_id} is append-only and cannot be updated")

    def search(
        self,
        group_id: UUID,
        member_id: Optional[UUID] = None,
        type: Optional[TransactionType] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: int = 100
    ) -> List[LedgerTransaction]:
        """Filtered page of a group's ledger, newest first."""
        query = self.db.query(LedgerTransaction).filter(LedgerTransaction.group_id == group_id)
        if member_id is not None:
            query = query.filter(LedgerTransaction.member_id == member_id)
        if type is not None:
            query = query.filter(LedgerTransaction.type == type)
        if date_from is not None:
            query = query.filter(LedgerTransaction.created_at >= date_from)
        if date_to is not None:
            query = query.filter(LedgerTransaction.created_at <= date_to)
        return query.order_by(LedgerTransaction.created_at.desc()).limit(limit).all()
