import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from savings_group.core.audit import write_audit_log
from savings_group.core.config import settings
from savings_group.core.dates import utcnow, is_late, add_months
from savings_group.core.exceptions import NotFoundError, AccessDeniedError, ConflictError, ValidationError
from savings_group.core.locks import entity_lock
from savings_group.core.money import ZERO, round_money, to_decimal
from savings_group.db.base import transaction
from savings_group.models.ledger import TransactionType
from savings_group.models.member import Member, MemberStatus
from savings_group.models.transaction import Loan, LoanStatus, LoanInstallment, InstallmentStatus, ContributionStatus
from savings_group.repositories.contribution import ContributionRepository
from savings_group.repositories.loan import LoanRepository
from savings_group.repositories.member import MemberRepository
from savings_group.repositories.penalty import PenaltyRepository
from savings_group.schemas.loan import LoanUpdate, InstallmentUpdate, LoanEligibility
from savings_group.services.group import get_group, credit_treasury
from savings_group.services.ledger import record_transaction
from savings_group.services.penalty import charge_penalty

logger = logging.getLogger(__name__)

DEFAULT_MINIMUM_CONTRIBUTION_MONTHS = 3
DEFAULT_LOAN_TO_SAVINGS_RATIO = Decimal("2.0")


def _get_member_in_group(db: Session, group_id: UUID, member_id: UUID) -> Member:
    member = MemberRepository(db).get_by_id(member_id)
    if not member:
        raise NotFoundError("Member not found")
    if member.group_id != group_id:
        raise AccessDeniedError("Access denied")
    return member


def _get_loan_in_group(db: Session, group_id: UUID, loan_id: UUID, for_update: bool = False) -> Loan:
    loan = LoanRepository(db).get_by_id(loan_id, for_update=for_update)
    if not loan:
        raise NotFoundError("Loan not found")
    if loan.group_id != group_id:
        raise AccessDeniedError("Access denied")
    return loan


def _counts_toward_closure(installment: LoanInstallment) -> bool:
    if settings.LATE_INSTALLMENT_SETTLES_LOAN:
        return installment.is_settled
    return installment.status == InstallmentStatus.PAID


def check_eligibility(
    db: Session,
    group_id: UUID,
    member_id: UUID,
    requested_amount: Decimal = ZERO,
    now: Optional[datetime] = None
) -> LoanEligibility:
    """
    Evaluate every lending rule for a member and collect the failures.

    The result lists all failing rules rather than stopping at the first,
    so a member sees everything that stands between them and a loan.
    """
    now = now or utcnow()
    member = _get_member_in_group(db, group_id, member_id)
    group = get_group(db, group_id)
    requested_amount = to_decimal(requested_amount or ZERO)
    reasons = []

    if member.status != MemberStatus.ACTIVE:
        reasons.append("Member status must be Active")

    loans = LoanRepository(db).list_by_member(member_id)
    has_overdue = any(
        not installment.is_settled and is_late(now, installment.due_date)
        for loan in loans
        if loan.status == LoanStatus.APPROVED
        for installment in loan.installments
    )
    if has_overdue:
        reasons.append("You have overdue loan installments")

    unpaid_penalties = [p for p in PenaltyRepository(db).list_by_member(member_id) if not p.is_paid]
    if unpaid_penalties:
        reasons.append(f"You have {len(unpaid_penalties)} unpaid penalties")

    paid_contributions = [
        c for c in ContributionRepository(db).list_by_member(member_id)
        if c.status == ContributionStatus.PAID
    ]
    required_months = group.minimum_contribution_months or DEFAULT_MINIMUM_CONTRIBUTION_MONTHS
    if len(paid_contributions) < required_months:
        reasons.append(
            f"Minimum {required_months} months of contributions required (you have {len(paid_contributions)})"
        )

    total_paid = sum((c.amount for c in paid_contributions), ZERO)
    ratio = group.loan_to_savings_ratio or DEFAULT_LOAN_TO_SAVINGS_RATIO
    max_loan_amount = round_money(total_paid * ratio)
    if requested_amount > 0 and requested_amount > max_loan_amount:
        reasons.append(
            f"Requested amount exceeds maximum allowed ({max_loan_amount} based on your contributions)"
        )

    if any(loan.status == LoanStatus.APPROVED and loan.balance > 0 for loan in loans):
        reasons.append("You already have an active loan. Please clear it before applying for a new one")

    return LoanEligibility(
        is_eligible=not reasons,
        reasons=reasons,
        max_loan_amount=max_loan_amount,
        contribution_months=len(paid_contributions),
        required_months=required_months
    )


def request_loan(
    db: Session,
    group_id: UUID,
    member_id: UUID,
    principal: Decimal,
    installment_count: int,
    reason: str = None,
    now: Optional[datetime] = None
) -> Loan:
    """Open a pending loan request for an eligible member."""
    now = now or utcnow()
    principal = round_money(to_decimal(principal))
    if principal <= 0:
        raise ValidationError("Principal must be positive")
    if installment_count is None or installment_count < 1:
        raise ValidationError("Installment count must be at least 1")

    with entity_lock("member", member_id), transaction(db):
        eligibility = check_eligibility(db, group_id, member_id, principal, now=now)
        if not eligibility.is_eligible:
            logger.warning("Loan request by member %s refused: %s", member_id, eligibility.reasons)
            raise ValidationError("Loan request not eligible: " + "; ".join(eligibility.reasons))

        loan = LoanRepository(db).create(Loan(
            group_id=group_id,
            member_id=member_id,
            principal=principal,
            interest_rate=ZERO,
            total_interest=ZERO,
            total_due=principal,
            balance=principal,
            status=LoanStatus.PENDING,
            reason=reason,
            created_at=now
        ))

    write_audit_log(group_id, member_id, "member", "loan_requested", "loan", loan.id,
                    principal=principal, installments=installment_count)
    logger.info("Loan %s of %s requested by member %s", loan.id, principal, member_id)
    db.refresh(loan)
    return loan


def approve_loan(
    db: Session,
    group_id: UUID,
    loan_id: UUID,
    installment_count: int,
    actor_id: UUID = None,
    now: Optional[datetime] = None
) -> Loan:
    """
    Approve a pending loan and lay out its monthly repayment schedule.

    Interest is flat: the group's current rate is snapshotted onto the loan
    and applied once to the principal. The principal leaves the group's cash.
    """
    now = now or utcnow()
    if installment_count is None or installment_count < 1:
        raise ValidationError("Installment count must be at least 1")

    with entity_lock("loan", loan_id), transaction(db):
        loans = LoanRepository(db)
        loan = _get_loan_in_group(db, group_id, loan_id, for_update=True)
        if loan.status != LoanStatus.PENDING:
            raise ConflictError("Only pending loans can be approved")
        group = get_group(db, group_id)

        rate = group.loan_interest_rate or ZERO
        total_interest = round_money(loan.principal * rate)
        total_due = round_money(loan.principal + total_interest)
        amount = round_money(total_due / installment_count)
        principal_part = round_money(loan.principal / installment_count)
        interest_part = round_money(total_interest / installment_count)

        due_date = None
        for number in range(1, installment_count + 1):
            due_date = add_months(now, number)
            loans.add_installment(LoanInstallment(
                loan_id=loan.id,
                installment_number=number,
                due_date=due_date,
                amount=amount,
                principal_amount=principal_part,
                interest_amount=interest_part,
                status=InstallmentStatus.DUE
            ))

        loans.update(loan, LoanUpdate(
            interest_rate=rate,
            total_interest=total_interest,
            total_due=total_due,
            balance=total_due,
            status=LoanStatus.APPROVED,
            approved_at=now,
            due_date=due_date
        ))
        credit_treasury(db, group_id, cash_change=-loan.principal)
        record_transaction(
            db,
            group_id=group_id,
            member_id=loan.member_id,
            type=TransactionType.LOAN_DISBURSEMENT,
            amount=loan.principal,
            description=f"Loan disbursement ({installment_count} installments)",
            group_cash_change=-loan.principal,
            loan_id=loan.id,
            created_by=actor_id,
            created_at=now
        )

    write_audit_log(group_id, actor_id, "group_admin", "loan_approved", "loan", loan_id,
                    total_due=total_due, installments=installment_count)
    logger.info("Loan %s approved: total due %s over %d installments", loan_id, total_due, installment_count)
    db.refresh(loan)
    return loan


def reject_loan(
    db: Session,
    group_id: UUID,
    loan_id: UUID,
    actor_id: UUID = None,
    reason: str = None,
    now: Optional[datetime] = None
) -> Loan:
    now = now or utcnow()
    with entity_lock("loan", loan_id), transaction(db):
        loan = _get_loan_in_group(db, group_id, loan_id, for_update=True)
        if loan.status != LoanStatus.PENDING:
            raise ConflictError("Only pending loans can be rejected")
        LoanRepository(db).update(loan, LoanUpdate(
            status=LoanStatus.REJECTED,
            rejected_at=now,
            rejection_reason=reason
        ))

    write_audit_log(group_id, actor_id, "group_admin", "loan_rejected", "loan", loan_id, reason=reason)
    logger.info("Loan %s rejected", loan_id)
    db.refresh(loan)
    return loan


def repay_installment(
    db: Session,
    group_id: UUID,
    loan_id: UUID,
    installment_id: UUID,
    actor_id: UUID = None,
    now: Optional[datetime] = None
) -> Loan:
    """
    Settle one installment of an approved loan.

    Paying after the due date marks the installment late and charges the
    group's late penalty in the same unit of work; if the penalty cannot be
    recorded, the repayment is rolled back with it.
    """
    now = now or utcnow()
    with entity_lock("loan", loan_id), transaction(db):
        loans = LoanRepository(db)
        loan = _get_loan_in_group(db, group_id, loan_id, for_update=True)
        installment = loans.get_installment(loan_id, installment_id, for_update=True)
        if not installment:
            raise NotFoundError("Installment not found")
        if installment.is_settled:
            logger.warning("Refused second repayment of installment %s", installment_id)
            raise ConflictError("Installment already paid")
        if loan.status != LoanStatus.APPROVED:
            raise ConflictError("Only approved loans can be repaid")
        group = get_group(db, group_id)

        late = is_late(now, installment.due_date)
        status = InstallmentStatus.LATE if late else InstallmentStatus.PAID
        loans.update(installment, InstallmentUpdate(status=status, paid_at=now))

        if late:
            penalty_amount = round_money(loan.total_due * (group.penalty_rate or ZERO))
            if penalty_amount > 0:
                charge_penalty(
                    db,
                    group_id=group_id,
                    member_id=loan.member_id,
                    amount=penalty_amount,
                    reason=f"Late repayment of installment {installment.installment_number}",
                    loan_id=loan.id,
                    installment_id=installment.id,
                    created_by=actor_id,
                    now=now
                )

        settled = sum((i.amount for i in loan.installments if i.is_settled), ZERO)
        balance = max(round_money(loan.total_due - settled), ZERO)
        changes = LoanUpdate(balance=balance)
        closed = all(_counts_toward_closure(i) for i in loan.installments)
        if closed:
            changes = LoanUpdate(balance=ZERO, status=LoanStatus.CLOSED, closed_at=now)
        loans.update(loan, changes)

        credit_treasury(
            db,
            group_id,
            income_change=installment.interest_amount,
            cash_change=installment.amount
        )
        record_transaction(
            db,
            group_id=group_id,
            member_id=loan.member_id,
            type=TransactionType.LOAN_REPAYMENT,
            amount=installment.amount,
            description=f"Loan repayment, installment {installment.installment_number}",
            group_income_change=installment.interest_amount,
            group_cash_change=installment.amount,
            loan_id=loan.id,
            installment_id=installment.id,
            created_by=actor_id or loan.member_id,
            created_at=now
        )

    write_audit_log(group_id, actor_id, "member", "installment_paid", "loan", loan_id,
                    installment=installment_id, late=late)
    if closed:
        write_audit_log(group_id, actor_id, "member", "loan_completed", "loan", loan_id)
        logger.info("Loan %s fully repaid and closed", loan_id)
    db.refresh(loan)
    return loan


def get_loan(db: Session, group_id: UUID, loan_id: UUID) -> Loan:
    return _get_loan_in_group(db, group_id, loan_id)


def list_by_group(db: Session, group_id: UUID) -> List[Loan]:
    return LoanRepository(db).list_by_group(group_id)


def list_by_member(db: Session, member_id: UUID) -> List[Loan]:
    return LoanRepository(db).list_by_member(member_id)
