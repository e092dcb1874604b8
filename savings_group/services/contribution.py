import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from savings_group.core.dates import utcnow, parse_month, next_month, end_of_month, start_of_day
from savings_group.core.exceptions import NotFoundError, AccessDeniedError, ConflictError, ValidationError
from savings_group.core.locks import entity_lock
from savings_group.core.money import ZERO, round_money, to_decimal
from savings_group.db.base import transaction
from savings_group.models.ledger import TransactionType
from savings_group.models.member import ActorRole, MemberStatus
from savings_group.models.transaction import Contribution, ContributionStatus, LoanStatus, Penalty
from savings_group.repositories.contribution import ContributionRepository
from savings_group.repositories.loan import LoanRepository
from savings_group.repositories.member import MemberRepository
from savings_group.repositories.penalty import PenaltyRepository
from savings_group.schemas.contribution import ContributionUpdate, OverdueResult
from savings_group.services.group import get_group, ensure_cycle_open, credit_treasury
from savings_group.services.ledger import record_transaction
from savings_group.services.member import credit_member
from savings_group.services.penalty import charge_penalty

logger = logging.getLogger(__name__)


def _validate_amount(amount) -> Decimal:
    amount = round_money(to_decimal(amount))
    if amount <= 0:
        raise ValidationError("Contribution amount must be positive")
    return amount


def _seed_required(group) -> bool:
    return (group.seed_amount or ZERO) > 0


def _credit_contribution(db: Session, contribution: Contribution, created_by, now: datetime):
    """Move a paid contribution into the member's savings and the group treasury."""
    credit_member(db, contribution.member_id, balance_change=contribution.amount)
    credit_treasury(
        db,
        contribution.group_id,
        savings_change=contribution.amount,
        cash_change=contribution.amount
    )
    record_transaction(
        db,
        group_id=contribution.group_id,
        member_id=contribution.member_id,
        type=TransactionType.CONTRIBUTION,
        amount=contribution.amount,
        description=f"Contribution payment for {contribution.month}",
        member_savings_change=contribution.amount,
        group_cash_change=contribution.amount,
        contribution_id=contribution.id,
        created_by=created_by,
        created_at=now
    )


def generate_monthly_obligations(
    db: Session,
    group_id: UUID,
    month: str,
    amount: Decimal,
    due_date: datetime,
    now: Optional[datetime] = None
) -> List[Contribution]:
    """
    Create the month's unpaid contribution for every active member.

    Running it again for the same month only fills in members that still
    lack one, so it is safe to repeat. Months are generated in order: the
    requested month must be the latest one generated or the month after it.
    Groups that take seed deposits refuse to generate while any active
    member has not paid theirs. The month's compulsory interest is charged
    in the same unit of work.
    """
    now = now or utcnow()
    month = (month or "").strip()
    if not parse_month(month):
        raise ValidationError("Invalid month format. Use YYYY-MM")
    amount = _validate_amount(amount)
    if due_date is None:
        raise ValidationError("Invalid due date")
    if start_of_day(due_date) < start_of_day(now):
        raise ValidationError("Due date cannot be before today")

    generated = []
    with entity_lock("obligations", group_id), transaction(db):
        group = get_group(db, group_id)
        ensure_cycle_open(db, group_id, now)

        contributions = ContributionRepository(db)
        latest = contributions.latest_month(group_id)
        if latest and month not in (latest, next_month(latest)):
            raise ValidationError(
                f"Contributions must be generated sequentially. Latest generated month is {latest}, "
                f"so the next month must be {next_month(latest)}"
            )

        active_members = MemberRepository(db).list_active_by_group(group_id)
        if _seed_required(group):
            missing = [m.full_name for m in active_members if not m.seed_paid]
            if missing:
                suffix = f" +{len(missing) - 5} more" if len(missing) > 5 else ""
                raise ValidationError(
                    "Seed deposit is required before generating contributions. "
                    f"Pending seed payments for: {', '.join(missing[:5])}{suffix}"
                )

        apply_compulsory_interest(db, group_id, month, now=now)

        for member in active_members:
            if contributions.list_by_member_and_month(member.id, month):
                continue
            generated.append(contributions.create(Contribution(
                group_id=group_id,
                member_id=member.id,
                amount=amount,
                month=month,
                due_date=due_date,
                status=ContributionStatus.UNPAID,
                created_at=now
            )))

    logger.info("Generated %d contributions for group %s, month %s", len(generated), group_id, month)
    return generated


def record_payment(
    db: Session,
    contribution_id: UUID,
    member_id: UUID,
    group_id: UUID,
    requester_role: ActorRole = ActorRole.MEMBER,
    now: Optional[datetime] = None
) -> Contribution:
    """Mark a contribution paid and credit the member and the treasury."""
    now = now or utcnow()
    with entity_lock("contribution", contribution_id), transaction(db):
        contributions = ContributionRepository(db)
        contribution = contributions.get_by_id(contribution_id, for_update=True)
        if not contribution:
            raise NotFoundError("Contribution not found")
        if contribution.group_id != group_id:
            raise AccessDeniedError("Access denied")
        if ActorRole(requester_role) == ActorRole.MEMBER and contribution.member_id != member_id:
            raise AccessDeniedError("Access denied")
        if contribution.status == ContributionStatus.PAID:
            logger.warning("Refused second payment of contribution %s", contribution_id)
            raise ConflictError("Contribution already paid")
        ensure_cycle_open(db, group_id, now)

        member = MemberRepository(db).get_by_id(contribution.member_id)
        if not member:
            raise NotFoundError("Member not found")
        if _seed_required(get_group(db, group_id)) and not member.seed_paid:
            raise ValidationError("Seed deposit is required before paying contributions")

        contributions.update(contribution, ContributionUpdate(status=ContributionStatus.PAID, paid_at=now))
        _credit_contribution(db, contribution, created_by=member_id, now=now)

    logger.info("Contribution %s for %s paid", contribution_id, contribution.month)
    db.refresh(contribution)
    return contribution


def mark_overdue(
    db: Session,
    group_id: UUID,
    auto_penalize: bool = False,
    now: Optional[datetime] = None
) -> OverdueResult:
    """Flag unpaid contributions past their due date, optionally charging a penalty for each."""
    now = now or utcnow()
    result = OverdueResult()
    with entity_lock("obligations", group_id), transaction(db):
        group = get_group(db, group_id)
        contributions = ContributionRepository(db)
        penalties = PenaltyRepository(db)
        rate = group.contribution_penalty_rate or 0

        for contribution in contributions.list_unpaid_by_group(group_id, for_update=True):
            if contribution.due_date >= now:
                continue
            if not contributions.flag_overdue(contribution):
                continue
            result.marked += 1

            if not auto_penalize or rate <= 0:
                continue
            if penalties.list_by_contribution(contribution.id):
                continue
            amount = round_money(contribution.amount * rate)
            if amount <= 0:
                continue
            charge_penalty(
                db,
                group_id=group_id,
                member_id=contribution.member_id,
                amount=amount,
                reason=f"Late contribution for {contribution.month}",
                contribution_id=contribution.id,
                now=now
            )
            result.penalties_generated += 1

    if result.marked:
        logger.info(
            "Group %s: %d contributions overdue, %d penalties generated",
            group_id, result.marked, result.penalties_generated
        )
    return result


def apply_compulsory_interest(
    db: Session,
    group_id: UUID,
    month: str,
    now: Optional[datetime] = None
) -> List[Penalty]:
    """
    Charge the month's compulsory interest on each member's share value.

    Members with a pending or approved loan are exempt, as are members
    without shares. Nobody is charged twice for the same month. The charge
    is a penalty due at the end of the month.
    """
    now = now or utcnow()
    if not parse_month(month):
        raise ValidationError("Invalid month format. Use YYYY-MM")

    charged = []
    with entity_lock("obligations", group_id), transaction(db):
        group = get_group(db, group_id)
        rate = group.compulsory_interest_rate or ZERO
        share_fee = group.share_fee or ZERO
        if rate <= 0 or share_fee <= 0:
            return charged
        ensure_cycle_open(db, group_id, now)

        borrowers = {
            loan.member_id for loan in LoanRepository(db).list_by_group(group_id)
            if loan.status in (LoanStatus.PENDING, LoanStatus.APPROVED)
        }
        penalties = PenaltyRepository(db)
        reason = f"Compulsory interest on share value for {month}"

        for member in MemberRepository(db).list_active_by_group(group_id):
            if member.id in borrowers or not member.shares_owned:
                continue
            amount = round_money(member.shares_owned * share_fee * rate)
            if amount <= 0 or penalties.list_by_member_and_reason(member.id, reason):
                continue
            charged.append(charge_penalty(
                db,
                group_id=group_id,
                member_id=member.id,
                amount=amount,
                reason=reason,
                now=now,
                due_date=end_of_month(month),
                ledger_type=TransactionType.COMPULSORY_INTEREST,
                description=f"Compulsory interest charge for {month}"
            ))

    if charged:
        logger.info("Charged compulsory interest for %s to %d members of group %s", month, len(charged), group_id)
    return charged


def add_contribution(
    db: Session,
    group_id: UUID,
    member_id: UUID,
    amount: Decimal,
    month: str,
    actor_id: UUID = None,
    now: Optional[datetime] = None
) -> Contribution:
    """Record a contribution that was paid outside the monthly schedule."""
    now = now or utcnow()
    if not parse_month(month):
        raise ValidationError("Invalid month format. Use YYYY-MM")
    amount = _validate_amount(amount)

    with entity_lock("member", member_id), transaction(db):
        ensure_cycle_open(db, group_id, now)
        member = MemberRepository(db).get_by_id(member_id)
        if not member:
            raise NotFoundError("Member not found")
        if member.group_id != group_id:
            raise AccessDeniedError("Member does not belong to this group")
        if member.status != MemberStatus.ACTIVE:
            raise ValidationError("Member is not active")

        contributions = ContributionRepository(db)
        if contributions.list_by_member_and_month(member_id, month):
            raise ConflictError(f"Contribution for {month} already exists")

        contribution = contributions.create(Contribution(
            group_id=group_id,
            member_id=member_id,
            amount=amount,
            month=month,
            due_date=end_of_month(month),
            status=ContributionStatus.PAID,
            created_at=now,
            paid_at=now
        ))
        _credit_contribution(db, contribution, created_by=actor_id or member_id, now=now)

    logger.info("Manual contribution %s recorded for member %s", contribution.id, member_id)
    db.refresh(contribution)
    return contribution


def list_by_group(db: Session, group_id: UUID) -> List[Contribution]:
    return ContributionRepository(db).list_by_group(group_id)


def list_by_member(db: Session, member_id: UUID) -> List[Contribution]:
    return ContributionRepository(db).list_by_member(member_id)


def list_unpaid_by_group(db: Session, group_id: UUID) -> List[Contribution]:
    return ContributionRepository(db).list_unpaid_by_group(group_id)


def list_overdue(db: Session, group_id: UUID) -> List[Contribution]:
    return ContributionRepository(db).list_overdue(group_id)
