from sqlalchemy.orm import Session
from savings_group.core.config import settings
from savings_group.core.dates import utcnow
from savings_group.core.money import ZERO, round_money
from savings_group.models.ledger import LedgerTransaction, TransactionType
from savings_group.models.member import ActorRole
from savings_group.repositories.ledger import TransactionRepository
from savings_group.schemas.ledger import LedgerQuery
from uuid import UUID
from decimal import Decimal
from datetime import datetime
from typing import List, Optional


def record_transaction(
    db: Session,
    group_id: UUID,
    type: TransactionType,
    amount: Decimal,
    description: str,
    member_id: UUID = None,
    member_savings_change: Decimal = ZERO,
    group_income_change: Decimal = ZERO,
    group_cash_change: Decimal = ZERO,
    contribution_id: UUID = None,
    loan_id: UUID = None,
    installment_id: UUID = None,
    penalty_id: UUID = None,
    distribution_id: UUID = None,
    created_by: Optional[str] = None,
    created_at: Optional[datetime] = None
) -> LedgerTransaction:
    """Append one entry to the ledger inside the caller's unit of work."""
    entry = LedgerTransaction(
        group_id=group_id,
        member_id=member_id,
        type=type,
        amount=round_money(amount),
        description=description[:255],
        member_savings_change=round_money(member_savings_change),
        group_income_change=round_money(group_income_change),
        group_cash_change=round_money(group_cash_change),
        contribution_id=contribution_id,
        loan_id=loan_id,
        installment_id=installment_id,
        penalty_id=penalty_id,
        distribution_id=distribution_id,
        created_by=str(created_by) if created_by else "system",
        created_at=created_at or utcnow()
    )
    return TransactionRepository(db).create(entry)


def clamp_limit(limit: Optional[int]) -> int:
    """Default to LEDGER_DEFAULT_LIMIT and clamp into [1, LEDGER_MAX_LIMIT]."""
    if not limit:
        limit = settings.LEDGER_DEFAULT_LIMIT
    return min(max(limit, 1), settings.LEDGER_MAX_LIMIT)


def list_entries(db: Session, query: LedgerQuery) -> List[LedgerTransaction]:
    """
    Role-scoped, filtered view of the group's ledger, newest first.

    Members only ever see their own entries, whatever member filter they
    send; admins may filter by any member of the group.
    """
    if query.role == ActorRole.MEMBER:
        member_scope = query.requester_id
    else:
        member_scope = query.member_id

    return TransactionRepository(db).search(
        group_id=query.group_id,
        member_id=member_scope,
        type=query.type,
        date_from=query.date_from,
        date_to=query.date_to,
        limit=clamp_limit(query.limit)
    )
