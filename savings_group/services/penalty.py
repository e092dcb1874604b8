import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from savings_group.core.config import settings
from savings_group.core.dates import utcnow
from savings_group.core.exceptions import NotFoundError, AccessDeniedError, ConflictError, ValidationError
from savings_group.core.locks import entity_lock
from savings_group.core.money import round_money, to_decimal
from savings_group.db.base import transaction
from savings_group.models.ledger import TransactionType
from savings_group.models.transaction import Penalty, PenaltyStatus
from savings_group.repositories.member import MemberRepository
from savings_group.repositories.penalty import PenaltyRepository
from savings_group.schemas.penalty import PenaltyUpdate
from savings_group.services.group import ensure_cycle_open, credit_treasury
from savings_group.services.ledger import record_transaction
from savings_group.services.member import credit_member

logger = logging.getLogger(__name__)


def charge_penalty(
    db: Session,
    group_id: UUID,
    member_id: UUID,
    amount: Decimal,
    reason: str,
    loan_id: UUID = None,
    installment_id: UUID = None,
    contribution_id: UUID = None,
    created_by: Optional[str] = None,
    now: Optional[datetime] = None,
    due_date: Optional[datetime] = None,
    ledger_type: TransactionType = TransactionType.PENALTY_CHARGED,
    description: Optional[str] = None
) -> Penalty:
    """
    Stage a penalty inside the caller's unit of work.

    Does not commit and does not check the cycle lock; the calling engine
    owns both. The penalty amount is added to the member's running
    penalties_total together with the penalty row itself.
    """
    now = now or utcnow()
    amount = round_money(to_decimal(amount))
    if amount <= 0:
        raise ValidationError("Penalty amount must be positive")

    member = MemberRepository(db).get_by_id(member_id)
    if not member:
        raise NotFoundError("Member not found")
    if member.group_id != group_id:
        raise AccessDeniedError("Member does not belong to this group")

    penalties = PenaltyRepository(db)
    if installment_id and penalties.list_by_installment(installment_id):
        raise ConflictError("A penalty already exists for this installment")
    if contribution_id and penalties.list_by_contribution(contribution_id):
        raise ConflictError("A penalty already exists for this contribution")

    penalty = penalties.create(Penalty(
        group_id=group_id,
        member_id=member_id,
        loan_id=loan_id,
        installment_id=installment_id,
        contribution_id=contribution_id,
        amount=amount,
        reason=reason,
        status=PenaltyStatus.UNPAID,
        is_paid=False,
        due_date=due_date or now + timedelta(days=settings.PENALTY_DUE_DAYS),
        created_at=now
    ))
    credit_member(db, member_id, penalties_change=amount)

    record_transaction(
        db,
        group_id=group_id,
        member_id=member_id,
        type=ledger_type,
        amount=amount,
        description=description or f"Penalty charged: {reason}",
        loan_id=loan_id,
        installment_id=installment_id,
        contribution_id=contribution_id,
        penalty_id=penalty.id,
        created_by=created_by,
        created_at=now
    )
    logger.info("Charged penalty %s of %s to member %s", penalty.id, amount, member_id)
    return penalty


def create_penalty(
    db: Session,
    group_id: UUID,
    member_id: UUID,
    amount: Decimal,
    reason: str,
    loan_id: UUID = None,
    installment_id: UUID = None,
    contribution_id: UUID = None,
    actor_id: UUID = None,
    now: Optional[datetime] = None
) -> Penalty:
    """Record a penalty as its own unit of work (manual admin entry)."""
    now = now or utcnow()
    with entity_lock("member", member_id), transaction(db):
        ensure_cycle_open(db, group_id, now)
        penalty = charge_penalty(
            db,
            group_id=group_id,
            member_id=member_id,
            amount=amount,
            reason=reason,
            loan_id=loan_id,
            installment_id=installment_id,
            contribution_id=contribution_id,
            created_by=actor_id,
            now=now
        )
    db.refresh(penalty)
    return penalty


def pay_penalty(
    db: Session,
    penalty_id: UUID,
    member_id: UUID,
    actor_id: UUID = None,
    now: Optional[datetime] = None
) -> Penalty:
    """Settle a penalty; the amount becomes group income and cash."""
    now = now or utcnow()
    with entity_lock("penalty", penalty_id), transaction(db):
        penalties = PenaltyRepository(db)
        penalty = penalties.get_by_id(penalty_id, for_update=True)
        if not penalty:
            raise NotFoundError("Penalty not found")
        if penalty.member_id != member_id:
            raise AccessDeniedError("Penalty belongs to another member")
        if penalty.is_paid:
            logger.warning("Refused payment of already paid penalty %s", penalty_id)
            raise ConflictError("Penalty is already paid")
        ensure_cycle_open(db, penalty.group_id, now)

        penalties.update(penalty, PenaltyUpdate(status=PenaltyStatus.PAID, is_paid=True, paid_at=now))
        credit_treasury(db, penalty.group_id, income_change=penalty.amount, cash_change=penalty.amount)
        record_transaction(
            db,
            group_id=penalty.group_id,
            member_id=penalty.member_id,
            type=TransactionType.PENALTY_PAYMENT,
            amount=penalty.amount,
            description=f"Penalty payment: {penalty.reason}",
            group_income_change=penalty.amount,
            group_cash_change=penalty.amount,
            loan_id=penalty.loan_id,
            installment_id=penalty.installment_id,
            contribution_id=penalty.contribution_id,
            penalty_id=penalty.id,
            created_by=actor_id or member_id,
            created_at=now
        )

    logger.info("Penalty %s paid by member %s", penalty_id, member_id)
    db.refresh(penalty)
    return penalty


def get_penalty(db: Session, penalty_id: UUID) -> Penalty:
    penalty = PenaltyRepository(db).get_by_id(penalty_id)
    if not penalty:
        raise NotFoundError("Penalty not found")
    return penalty


def list_by_group(db: Session, group_id: UUID) -> List[Penalty]:
    return PenaltyRepository(db).list_by_group(group_id)


def list_by_member(db: Session, member_id: UUID) -> List[Penalty]:
    return PenaltyRepository(db).list_by_member(member_id)
