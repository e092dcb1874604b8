"""Year-end profit distribution.

The profit pool of a year is the loan interest collected in it plus the
penalties paid on charges raised in it. Every active member receives an
equal share of the pool on top of their own paid contributions for that
year. Once executed, the year's cycle is locked against new activity.
"""
import logging
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from savings_group.core.audit import write_audit_log
from savings_group.core.dates import utcnow, year_bounds
from savings_group.core.exceptions import NotFoundError, ConflictError, ValidationError
from savings_group.core.locks import entity_lock
from savings_group.core.money import ZERO, round_money
from savings_group.db.base import transaction
from savings_group.models.distribution import Distribution, DistributionStatus, MemberDistribution
from savings_group.models.ledger import TransactionType
from savings_group.models.transaction import ContributionStatus, LoanStatus
from savings_group.repositories.contribution import ContributionRepository
from savings_group.repositories.distribution import DistributionRepository
from savings_group.repositories.loan import LoanRepository
from savings_group.repositories.member import MemberRepository
from savings_group.repositories.penalty import PenaltyRepository
from savings_group.schemas.distribution import (
    ComplianceStatus, DistributionUpdate, MemberDistributionUpdate, PayoutEstimate
)
from savings_group.services import group as group_service
from savings_group.services.ledger import record_transaction
from savings_group.services.member import credit_member

logger = logging.getLogger(__name__)

MIN_YEAR = 1900
MAX_YEAR = 9999
CYCLE_MONTHS = 12


def _validate_year(year) -> int:
    if year is None or isinstance(year, bool) or not isinstance(year, int):
        raise ValidationError("Year is required")
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise ValidationError(f"Year must be between {MIN_YEAR} and {MAX_YEAR}")
    return year


def _cycle_key(group_id: UUID, year: int) -> str:
    return f"{group_id}:{year}"


def _contributions_by_member(db: Session, group_id: UUID, year: int) -> Dict[UUID, Decimal]:
    """Paid contributions of the year per member, dated by payment (or creation when unstamped)."""
    totals = defaultdict(lambda: ZERO)
    for contribution in ContributionRepository(db).list_by_group(group_id):
        if contribution.status != ContributionStatus.PAID:
            continue
        dated = contribution.paid_at or contribution.created_at
        if dated.year == year:
            totals[contribution.member_id] += contribution.amount
    return totals


def is_cycle_locked(db: Session, group_id: UUID, year: int) -> bool:
    return group_service.is_cycle_locked(db, group_id, year)


def calculate_distribution(
    db: Session,
    group_id: UUID,
    year: int,
    now: Optional[datetime] = None
) -> Distribution:
    """
    Compute and persist the pending distribution for a year.

    An existing pending distribution is returned as it is; a completed one
    cannot be recalculated.
    """
    year = _validate_year(year)
    now = now or utcnow()
    with entity_lock("distribution", _cycle_key(group_id, year)), transaction(db):
        distributions = DistributionRepository(db)
        existing = distributions.get_by_group_and_year(group_id, year, for_update=True)
        if existing and existing.status == DistributionStatus.COMPLETED:
            raise ConflictError("Distribution already completed for this year")
        if existing:
            return existing

        group_service.get_group(db, group_id)
        active_members = MemberRepository(db).list_active_by_group(group_id)
        if not active_members:
            raise ValidationError("No active members found")

        start, end = year_bounds(year)
        total_contributions = sum(_contributions_by_member(db, group_id, year).values(), ZERO)
        total_interest = sum(
            (i.interest_amount for i in LoanRepository(db).list_installments_paid_between(group_id, start, end)
             if i.is_settled),
            ZERO
        )
        total_penalties = sum(
            (p.amount for p in PenaltyRepository(db).list_paid_created_between(group_id, start, end)),
            ZERO
        )
        pool = round_money(total_interest + total_penalties)

        distribution = distributions.create(Distribution(
            group_id=group_id,
            year=year,
            total_contributions=round_money(total_contributions),
            total_profit_pool=pool,
            total_loan_interest=round_money(total_interest),
            total_penalties=round_money(total_penalties),
            number_of_members=len(active_members),
            profit_per_member=round_money(pool / len(active_members)),
            status=DistributionStatus.PENDING,
            created_at=now
        ))

    logger.info(
        "Calculated %s distribution for group %s: pool %s across %d members",
        year, group_id, distribution.total_profit_pool, distribution.number_of_members
    )
    return distribution


def get_distribution_breakdown(
    db: Session,
    group_id: UUID,
    year: int,
    now: Optional[datetime] = None
) -> List[MemberDistribution]:
    """Each active member's share, creating the cached record the first time it is asked for."""
    year = _validate_year(year)
    now = now or utcnow()
    with entity_lock("distribution", _cycle_key(group_id, year)), transaction(db):
        distribution = DistributionRepository(db).get_by_group_and_year(group_id, year)
        if distribution is None:
            distribution = calculate_distribution(db, group_id, year, now=now)

        distributions = DistributionRepository(db)
        existing = {
            md.member_id: md
            for md in distributions.list_member_distributions_by_distribution(distribution.id)
        }
        contributions = _contributions_by_member(db, group_id, year)

        breakdown = []
        for member in MemberRepository(db).list_active_by_group(group_id):
            if member.id in existing:
                breakdown.append(existing[member.id])
                continue
            member_total = round_money(contributions.get(member.id, ZERO))
            breakdown.append(distributions.create_member_distribution(MemberDistribution(
                distribution_id=distribution.id,
                member_id=member.id,
                total_contributions=member_total,
                profit_share=distribution.profit_per_member,
                total_payout=round_money(member_total + distribution.profit_per_member),
                created_at=now
            )))

    return breakdown


def get_estimated_payout(
    db: Session,
    group_id: UUID,
    member_id: UUID,
    year: int,
    now: Optional[datetime] = None
) -> PayoutEstimate:
    """
    A member's expected payout, alongside what they still owe the group.

    The expected contribution is a full cycle of the group's monthly
    amount; the shortfall and compliance status compare the member's paid
    contributions of the year against it.
    """
    distribution = DistributionRepository(db).get_by_group_and_year(group_id, _validate_year(year))
    if distribution is None:
        distribution = calculate_distribution(db, group_id, year, now=now)

    member = MemberRepository(db).get_by_id(member_id)
    if not member or member.group_id != group_id:
        raise NotFoundError("Member not found in active cycle members")

    contribution = round_money(_contributions_by_member(db, group_id, year).get(member_id, ZERO))
    expected = round_money((group_service.get_group(db, group_id).contribution_amount or ZERO) * CYCLE_MONTHS)
    if contribution >= expected:
        compliance = ComplianceStatus.COMPLETED
    elif contribution > 0:
        compliance = ComplianceStatus.PARTIAL
    else:
        compliance = ComplianceStatus.DEFAULTED
    loan_balance = sum(
        (loan.balance for loan in LoanRepository(db).list_by_member(member_id)
         if loan.status == LoanStatus.APPROVED),
        ZERO
    )
    pending_penalties = sum(
        (p.amount for p in PenaltyRepository(db).list_by_member(member_id) if not p.is_paid),
        ZERO
    )
    return PayoutEstimate(
        year=year,
        member_id=member_id,
        base_share=distribution.profit_per_member,
        expected_contribution=expected,
        actual_contribution=contribution,
        remaining_contribution_balance=max(expected - contribution, ZERO),
        compliance_status=compliance,
        loan_balance=round_money(loan_balance),
        pending_penalties=round_money(pending_penalties),
        estimated_payout=round_money(contribution + distribution.profit_per_member)
    )


def execute_distribution(
    db: Session,
    group_id: UUID,
    year: int,
    actor_id: UUID = None,
    now: Optional[datetime] = None
) -> Distribution:
    """
    Pay every member share into member balances and close the year's cycle.

    Shares already stamped as paid are skipped, so no member is credited
    twice for the same distribution.
    """
    year = _validate_year(year)
    now = now or utcnow()
    with entity_lock("distribution", _cycle_key(group_id, year)), transaction(db):
        distributions = DistributionRepository(db)
        distribution = distributions.get_by_group_and_year(group_id, year, for_update=True)
        if distribution is None:
            raise NotFoundError("Distribution not found")
        if distribution.status == DistributionStatus.COMPLETED:
            logger.warning("Refused re-execution of %s distribution for group %s", year, group_id)
            raise ConflictError("Distribution already completed")

        total_paid_out = ZERO
        for share in get_distribution_breakdown(db, group_id, year, now=now):
            if share.paid_at is not None:
                continue
            credit_member(db, share.member_id, balance_change=share.total_payout)
            distributions.update(share, MemberDistributionUpdate(paid_at=now))
            record_transaction(
                db,
                group_id=group_id,
                member_id=share.member_id,
                type=TransactionType.CYCLE_DISTRIBUTION,
                amount=share.total_payout,
                description=f"Cycle distribution payout for {year}",
                member_savings_change=share.total_payout,
                group_cash_change=-share.total_payout,
                distribution_id=distribution.id,
                created_by=actor_id,
                created_at=now
            )
            total_paid_out += share.total_payout

        group_service.credit_treasury(db, group_id, cash_change=-total_paid_out)
        distributions.update(distribution, DistributionUpdate(
            status=DistributionStatus.COMPLETED,
            distributed_at=now
        ))

    write_audit_log(group_id, actor_id, "group_admin", "distribution_executed", "distribution",
                    distribution.id, year=year, total_paid_out=total_paid_out)
    logger.info("Executed %s distribution for group %s, paid out %s", year, group_id, total_paid_out)
    db.refresh(distribution)
    return distribution


def cancel_distribution(
    db: Session,
    group_id: UUID,
    year: int,
    actor_id: UUID = None
) -> Distribution:
    """Discard a pending distribution so the year can be recalculated."""
    year = _validate_year(year)
    with entity_lock("distribution", _cycle_key(group_id, year)), transaction(db):
        distributions = DistributionRepository(db)
        distribution = distributions.get_by_group_and_year(group_id, year, for_update=True)
        if distribution is None:
            raise NotFoundError("Distribution not found")
        if distribution.status != DistributionStatus.PENDING:
            raise ConflictError("Only pending distributions can be cancelled")
        distributions.update(distribution, DistributionUpdate(status=DistributionStatus.CANCELLED))

    write_audit_log(group_id, actor_id, "group_admin", "distribution_cancelled", "distribution",
                    distribution.id, year=year)
    db.refresh(distribution)
    return distribution


def list_distributions(db: Session, group_id: UUID) -> List[Distribution]:
    return DistributionRepository(db).list_by_group(group_id)


def get_distribution(db: Session, distribution_id: UUID) -> Distribution:
    distribution = DistributionRepository(db).get_by_id(distribution_id)
    if not distribution:
        raise NotFoundError("Distribution not found")
    return distribution


def list_member_distributions(db: Session, member_id: UUID) -> List[MemberDistribution]:
    return DistributionRepository(db).list_member_distributions_by_member(member_id)
