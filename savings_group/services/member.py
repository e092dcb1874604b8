import logging
from datetime import datetime
from sqlalchemy.orm import Session
from savings_group.core.audit import write_audit_log
from savings_group.core.dates import utcnow
from savings_group.core.exceptions import NotFoundError, AccessDeniedError, ConflictError, ValidationError
from savings_group.core.locks import entity_lock
from savings_group.core.money import ZERO, round_money
from savings_group.db.base import transaction
from savings_group.models.ledger import TransactionType
from savings_group.models.member import Member, MemberStatus
from savings_group.repositories.member import MemberRepository
from savings_group.schemas.member import MemberCredit, MemberUpdate
from savings_group.services.group import get_group, ensure_cycle_open, credit_treasury
from savings_group.services.ledger import record_transaction
from uuid import UUID
from decimal import Decimal
from typing import List, Optional

logger = logging.getLogger(__name__)


def register_member(
    db: Session,
    group_id: UUID,
    full_name: str,
    now: Optional[datetime] = None
) -> Member:
    """Add a member to a group; they stay pending until an admin activates them."""
    if not full_name or not full_name.strip():
        raise ValidationError("Member name is required")

    with transaction(db):
        get_group(db, group_id)
        member = MemberRepository(db).create(Member(
            group_id=group_id,
            full_name=full_name.strip(),
            status=MemberStatus.PENDING,
            created_at=now or utcnow()
        ))

    logger.info("Registered member %s in group %s", member.id, group_id)
    db.refresh(member)
    return member


def get_member(db: Session, member_id: UUID) -> Member:
    member = MemberRepository(db).get_by_id(member_id)
    if not member:
        raise NotFoundError("Member not found")
    return member


def activate_member(
    db: Session,
    member_id: UUID,
    activated_by: UUID = None,
    now: Optional[datetime] = None
) -> Member:
    """Activate a pending member. Activating an active member is a no-op."""
    with transaction(db):
        members = MemberRepository(db)
        member = members.get_by_id(member_id, for_update=True)
        if not member:
            raise NotFoundError("Member not found")
        if member.status == MemberStatus.ACTIVE:
            return member  # Already active
        if member.status == MemberStatus.REJECTED:
            raise ConflictError("Rejected members cannot be activated")
        members.update(member, MemberUpdate(status=MemberStatus.ACTIVE, activated_at=now or utcnow()))

    write_audit_log(member.group_id, activated_by, "group_admin", "member_activated", "member", member_id)
    db.refresh(member)
    return member


def reject_member(db: Session, member_id: UUID, rejected_by: UUID = None) -> Member:
    with transaction(db):
        members = MemberRepository(db)
        member = members.get_by_id(member_id, for_update=True)
        if not member:
            raise NotFoundError("Member not found")
        if member.status != MemberStatus.PENDING:
            raise ConflictError("Only pending members can be rejected")
        members.update(member, MemberUpdate(status=MemberStatus.REJECTED))

    write_audit_log(member.group_id, rejected_by, "group_admin", "member_rejected", "member", member_id)
    db.refresh(member)
    return member


def list_members(db: Session, group_id: UUID) -> List[Member]:
    return MemberRepository(db).list_by_group(group_id)


def list_active_members(db: Session, group_id: UUID) -> List[Member]:
    return MemberRepository(db).list_active_by_group(group_id)


def credit_member(
    db: Session,
    member_id: UUID,
    balance_change: Decimal = ZERO,
    penalties_change: Decimal = ZERO
) -> Member:
    """
    Add to a member's savings balance and running penalty total.

    Runs inside the caller's unit of work. The amounts are added in SQL, so
    two engines crediting the same member at once both land.
    """
    member = MemberRepository(db).increment(member_id, MemberCredit(
        balance=round_money(balance_change),
        penalties_total=round_money(penalties_change)
    ))
    if not member:
        raise NotFoundError("Member not found")
    return member


def record_seed_deposit(
    db: Session,
    group_id: UUID,
    member_id: UUID,
    shares: int,
    actor_id: UUID = None,
    now: Optional[datetime] = None
) -> Member:
    """
    Take a member's seed deposit of ``shares`` times the group's seed amount.

    The deposit becomes part of the member's savings and the group treasury.
    Groups with a seed amount require it before a member's contributions can
    be generated or paid.
    """
    now = now or utcnow()
    if isinstance(shares, bool) or not isinstance(shares, int) or shares < 1:
        raise ValidationError("Shares must be a positive whole number")

    with entity_lock("member", member_id), transaction(db):
        group = get_group(db, group_id)
        ensure_cycle_open(db, group_id, now)
        if (group.seed_amount or ZERO) <= 0:
            raise ValidationError("This group does not take seed deposits")

        members = MemberRepository(db)
        member = members.get_by_id(member_id, for_update=True)
        if not member:
            raise NotFoundError("Member not found")
        if member.group_id != group_id:
            raise AccessDeniedError("Member does not belong to this group")
        if member.status != MemberStatus.ACTIVE:
            raise ValidationError("Member is not active")
        if member.seed_paid:
            raise ConflictError("Seed deposit already paid")

        amount = round_money(group.seed_amount * shares)
        members.update(member, MemberUpdate(shares_owned=shares, seed_paid=True, seed_paid_at=now))
        credit_member(db, member_id, balance_change=amount)
        credit_treasury(db, group_id, savings_change=amount, cash_change=amount)
        record_transaction(
            db,
            group_id=group_id,
            member_id=member_id,
            type=TransactionType.SEED_DEPOSIT,
            amount=amount,
            description=f"Seed deposit for {shares} share(s)",
            member_savings_change=amount,
            group_cash_change=amount,
            created_by=actor_id or member_id,
            created_at=now
        )

    write_audit_log(group_id, actor_id, "group_admin", "seed_deposit_recorded", "member", member_id,
                    shares=shares, amount=amount)
    logger.info("Seed deposit of %s (%d shares) recorded for member %s", amount, shares, member_id)
    db.refresh(member)
    return member
