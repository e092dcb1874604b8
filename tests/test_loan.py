"""Loan lifecycle: eligibility, approval schedule, repayment, late penalties, closure."""

import uuid
from datetime import datetime
from decimal import Decimal

import pytest

from savings_group.core.config import settings
from savings_group.core.exceptions import AccessDeniedError, ConflictError, NotFoundError, ValidationError
from savings_group.models import InstallmentStatus, LedgerTransaction, LoanStatus, TransactionType
from savings_group.schemas.group import GroupSettingsUpdate
from savings_group.services import group as group_service
from savings_group.services import loan as loan_service
from savings_group.services import penalty as penalty_service

from conftest import NOW, add_active_member, pay_contributions

SAVED_MONTHS = ["2025-12", "2026-01", "2026-02"]


@pytest.fixture
def saver(db, group, member):
    """An active member with three paid contributions of 50 000."""
    pay_contributions(db, group, member, SAVED_MONTHS)
    return member


def _approved_loan(db, group, member, principal="150000", installments=6, now=NOW):
    loan = loan_service.request_loan(db, group.id, member.id, Decimal(principal), installments, now=now)
    return loan_service.approve_loan(db, group.id, loan.id, installments, now=now)


# ===================================================================
# Eligibility
# ===================================================================

class TestCheckEligibility:

    def test_saver_is_eligible_up_to_twice_their_savings(self, db, group, saver):
        result = loan_service.check_eligibility(db, group.id, saver.id, Decimal("300000"), now=NOW)

        assert result.is_eligible
        assert result.reasons == []
        assert result.max_loan_amount == Decimal("300000.00")
        assert result.contribution_months == 3
        assert result.required_months == 3

    def test_amount_over_ratio_is_refused(self, db, group, saver):
        result = loan_service.check_eligibility(db, group.id, saver.id, Decimal("300000.01"), now=NOW)

        assert not result.is_eligible
        assert any("exceeds maximum" in reason for reason in result.reasons)

    def test_new_member_lacks_contribution_history(self, db, group, member):
        result = loan_service.check_eligibility(db, group.id, member.id, Decimal("1000"), now=NOW)

        assert not result.is_eligible
        assert "Minimum 3 months of contributions required (you have 0)" in result.reasons

    def test_group_settings_override_defaults(self, db, group, member):
        group_service.update_settings(
            db, group.id,
            GroupSettingsUpdate(minimum_contribution_months=1, loan_to_savings_ratio=Decimal("3")),
            now=NOW
        )
        pay_contributions(db, group, member, ["2026-02"])

        result = loan_service.check_eligibility(db, group.id, member.id, Decimal("150000"), now=NOW)

        assert result.is_eligible
        assert result.max_loan_amount == Decimal("150000.00")

    def test_unpaid_penalty_blocks_borrowing(self, db, group, saver):
        penalty_service.create_penalty(db, group.id, saver.id, Decimal("500"), "Missed meeting", now=NOW)

        result = loan_service.check_eligibility(db, group.id, saver.id, Decimal("1000"), now=NOW)

        assert "You have 1 unpaid penalties" in result.reasons

    def test_open_loan_blocks_a_second_one(self, db, group, saver):
        _approved_loan(db, group, saver)

        result = loan_service.check_eligibility(db, group.id, saver.id, Decimal("1000"), now=NOW)

        assert not result.is_eligible
        assert any("already have an active loan" in reason for reason in result.reasons)

    def test_past_due_installment_blocks_borrowing(self, db, group, saver):
        _approved_loan(db, group, saver)

        result = loan_service.check_eligibility(db, group.id, saver.id, Decimal("1000"), now=datetime(2026, 4, 2))

        assert "You have overdue loan installments" in result.reasons

    def test_member_of_another_group_is_denied(self, db, group, saver):
        other_group = group_service.create_group(db, "Another Group", now=NOW)

        with pytest.raises(AccessDeniedError):
            loan_service.check_eligibility(db, other_group.id, saver.id, Decimal("1000"), now=NOW)


# ===================================================================
# Request / approve / reject
# ===================================================================

class TestRequestLoan:

    def test_pending_loan_carries_no_interest_yet(self, db, group, saver):
        loan = loan_service.request_loan(db, group.id, saver.id, Decimal("150000"), 6, reason="School fees", now=NOW)

        assert loan.status == LoanStatus.PENDING
        assert loan.total_interest == Decimal("0")
        assert loan.total_due == Decimal("150000")
        assert loan.balance == Decimal("150000")
        assert loan.installments == []

    @pytest.mark.parametrize("principal,count", [("0", 6), ("-10", 6), ("1000", 0)])
    def test_invalid_terms(self, db, group, saver, principal, count):
        with pytest.raises(ValidationError):
            loan_service.request_loan(db, group.id, saver.id, Decimal(principal), count, now=NOW)

    @pytest.mark.parametrize("principal", [None, "abc", "NaN"])
    def test_principal_that_is_not_a_number(self, db, group, saver, principal):
        with pytest.raises(ValidationError, match="Invalid amount"):
            loan_service.request_loan(db, group.id, saver.id, principal, 6, now=NOW)

        assert loan_service.list_by_member(db, saver.id) == []

    def test_ineligible_request_lists_reasons(self, db, group, member):
        with pytest.raises(ValidationError, match="Minimum 3 months"):
            loan_service.request_loan(db, group.id, member.id, Decimal("1000"), 2, now=NOW)

        assert loan_service.list_by_member(db, member.id) == []

    def test_unknown_member(self, db, group):
        with pytest.raises(NotFoundError):
            loan_service.request_loan(db, group.id, uuid.uuid4(), Decimal("1000"), 2, now=NOW)


class TestApproveLoan:

    def test_flat_interest_schedule(self, db, group, saver):
        loan = _approved_loan(db, group, saver)

        assert loan.status == LoanStatus.APPROVED
        assert loan.interest_rate == Decimal("0.05")
        assert loan.total_interest == Decimal("7500")
        assert loan.total_due == Decimal("157500")
        assert loan.balance == Decimal("157500")
        assert loan.approved_at == NOW
        assert len(loan.installments) == 6
        for number, installment in enumerate(loan.installments, start=1):
            assert installment.installment_number == number
            assert installment.amount == Decimal("26250")
            assert installment.principal_amount == Decimal("25000")
            assert installment.interest_amount == Decimal("1250")
            assert installment.status == InstallmentStatus.DUE
        assert loan.installments[0].due_date == datetime(2026, 4, 1, 9, 0)
        assert loan.due_date == datetime(2026, 9, 1, 9, 0)

    def test_installment_sum_is_within_rounding_of_total_due(self, db, group, saver):
        loan = _approved_loan(db, group, saver, principal="100000", installments=9)

        total = sum(i.amount for i in loan.installments)
        assert total == Decimal("105000.03")
        assert abs(total - loan.total_due) <= Decimal("0.01") * 9

    def test_disbursement_leaves_group_cash_not_member_balance(self, db, group, saver):
        loan = _approved_loan(db, group, saver)

        db.refresh(group)
        db.refresh(saver)
        assert group.cash == Decimal("0")
        assert saver.balance == Decimal("150000")
        entry = db.query(LedgerTransaction).filter(
            LedgerTransaction.loan_id == loan.id,
            LedgerTransaction.type == TransactionType.LOAN_DISBURSEMENT
        ).one()
        assert entry.group_cash_change == Decimal("-150000")

    def test_rate_change_after_approval_does_not_touch_the_loan(self, db, group, saver):
        loan = _approved_loan(db, group, saver)
        group_service.update_settings(db, group.id, GroupSettingsUpdate(loan_interest_rate=Decimal("0.20")), now=NOW)

        db.refresh(loan)
        assert loan.interest_rate == Decimal("0.05")

    def test_only_pending_loans_can_be_approved(self, db, group, saver):
        loan = _approved_loan(db, group, saver)

        with pytest.raises(ConflictError):
            loan_service.approve_loan(db, group.id, loan.id, 6, now=NOW)

    def test_rejected_loan_is_terminal(self, db, group, saver):
        loan = loan_service.request_loan(db, group.id, saver.id, Decimal("1000"), 2, now=NOW)
        rejected = loan_service.reject_loan(db, group.id, loan.id, reason="Insufficient guarantors", now=NOW)

        assert rejected.status == LoanStatus.REJECTED
        assert rejected.rejection_reason == "Insufficient guarantors"
        with pytest.raises(ConflictError):
            loan_service.approve_loan(db, group.id, loan.id, 2, now=NOW)
        with pytest.raises(ConflictError):
            loan_service.reject_loan(db, group.id, loan.id, now=NOW)

    def test_loan_from_another_group_is_denied(self, db, group, saver):
        loan = loan_service.request_loan(db, group.id, saver.id, Decimal("1000"), 2, now=NOW)
        other_group = group_service.create_group(db, "Another Group", now=NOW)

        with pytest.raises(AccessDeniedError):
            loan_service.approve_loan(db, other_group.id, loan.id, 2, now=NOW)


# ===================================================================
# Repayment
# ===================================================================

class TestRepayInstallment:

    def test_six_on_time_repayments_close_the_loan(self, db, group, saver):
        loan = _approved_loan(db, group, saver)
        installment_ids = [i.id for i in loan.installments]

        for installment_id in installment_ids:
            loan = loan_service.repay_installment(db, group.id, loan.id, installment_id, now=NOW)

        assert loan.status == LoanStatus.CLOSED
        assert loan.balance == Decimal("0")
        assert loan.closed_at == NOW
        assert all(i.status == InstallmentStatus.PAID for i in loan.installments)

        db.refresh(group)
        assert group.cash == Decimal("157500")
        assert group.total_income == Decimal("7500")

    def test_balance_drops_by_each_installment(self, db, group, saver):
        loan = _approved_loan(db, group, saver)

        loan = loan_service.repay_installment(db, group.id, loan.id, loan.installments[0].id, now=NOW)

        assert loan.status == LoanStatus.APPROVED
        assert loan.balance == Decimal("131250")
        assert loan.installments[0].paid_at == NOW

    def test_installment_cannot_be_repaid_twice(self, db, group, saver):
        loan = _approved_loan(db, group, saver)
        first = loan.installments[0].id
        loan_service.repay_installment(db, group.id, loan.id, first, now=NOW)

        with pytest.raises(ConflictError):
            loan_service.repay_installment(db, group.id, loan.id, first, now=NOW)

        db.refresh(group)
        assert group.cash == Decimal("26250")

    def test_unknown_installment(self, db, group, saver):
        loan = _approved_loan(db, group, saver)

        with pytest.raises(NotFoundError):
            loan_service.repay_installment(db, group.id, loan.id, uuid.uuid4(), now=NOW)

    def test_pending_loan_has_no_installments_to_repay(self, db, group, saver):
        pending = loan_service.request_loan(db, group.id, saver.id, Decimal("1000"), 2, now=NOW)

        with pytest.raises(NotFoundError):
            loan_service.repay_installment(db, group.id, pending.id, uuid.uuid4(), now=NOW)

    def test_late_repayment_charges_penalty_on_total_due(self, db, group, saver):
        group_service.update_settings(db, group.id, GroupSettingsUpdate(penalty_rate=Decimal("0.10")), now=NOW)
        loan = _approved_loan(db, group, saver)
        first = loan.installments[0]

        loan = loan_service.repay_installment(db, group.id, loan.id, first.id, now=datetime(2026, 4, 2))

        assert loan.installments[0].status == InstallmentStatus.LATE
        penalties = penalty_service.list_by_member(db, saver.id)
        assert len(penalties) == 1
        assert penalties[0].amount == Decimal("15750.00")
        assert penalties[0].installment_id == first.id
        assert penalties[0].loan_id == loan.id
        db.refresh(saver)
        assert saver.penalties_total == Decimal("15750.00")

    def test_repayment_on_the_due_instant_is_on_time(self, db, group, saver):
        group_service.update_settings(db, group.id, GroupSettingsUpdate(penalty_rate=Decimal("0.10")), now=NOW)
        loan = _approved_loan(db, group, saver)
        first = loan.installments[0]

        loan = loan_service.repay_installment(db, group.id, loan.id, first.id, now=first.due_date)

        assert loan.installments[0].status == InstallmentStatus.PAID
        assert penalty_service.list_by_member(db, saver.id) == []

    def test_failed_penalty_rolls_back_the_repayment(self, db, group, saver):
        group_service.update_settings(db, group.id, GroupSettingsUpdate(penalty_rate=Decimal("0.10")), now=NOW)
        loan = _approved_loan(db, group, saver)
        first = loan.installments[0]
        penalty_service.create_penalty(
            db, group.id, saver.id, Decimal("100"), "Manual charge", installment_id=first.id, now=NOW
        )

        with pytest.raises(ConflictError):
            loan_service.repay_installment(db, group.id, loan.id, first.id, now=datetime(2026, 4, 2))

        db.refresh(first)
        db.refresh(group)
        assert first.status == InstallmentStatus.DUE
        assert first.paid_at is None
        assert group.cash == Decimal("0")

    def test_late_installments_settle_the_loan_by_default(self, db, group, saver):
        loan = _approved_loan(db, group, saver, principal="10000", installments=2)
        ids = [i.id for i in loan.installments]

        loan_service.repay_installment(db, group.id, loan.id, ids[0], now=datetime(2026, 4, 5))
        loan = loan_service.repay_installment(db, group.id, loan.id, ids[1], now=NOW)

        assert loan.installments[0].status == InstallmentStatus.LATE
        assert loan.status == LoanStatus.CLOSED

    def test_late_installments_keep_the_loan_open_when_configured(self, db, group, saver, monkeypatch):
        monkeypatch.setattr(settings, "LATE_INSTALLMENT_SETTLES_LOAN", False)
        loan = _approved_loan(db, group, saver, principal="10000", installments=2)
        ids = [i.id for i in loan.installments]

        loan_service.repay_installment(db, group.id, loan.id, ids[0], now=datetime(2026, 4, 5))
        loan = loan_service.repay_installment(db, group.id, loan.id, ids[1], now=NOW)

        assert loan.status == LoanStatus.APPROVED
        assert loan.balance == Decimal("0")

    def test_repayment_ledger_splits_interest_into_income(self, db, group, saver):
        loan = _approved_loan(db, group, saver)
        first = loan.installments[0]

        loan_service.repay_installment(db, group.id, loan.id, first.id, now=NOW)

        entry = db.query(LedgerTransaction).filter(
            LedgerTransaction.installment_id == first.id,
            LedgerTransaction.type == TransactionType.LOAN_REPAYMENT
        ).one()
        assert entry.amount == Decimal("26250")
        assert entry.group_cash_change == Decimal("26250")
        assert entry.group_income_change == Decimal("1250")


class TestLoanProjections:

    def test_lists_by_group_and_member(self, db, group, saver):
        other = add_active_member(db, group, "Tamanda Phiri")
        pay_contributions(db, group, other, SAVED_MONTHS)
        loan_service.request_loan(db, group.id, saver.id, Decimal("1000"), 2, now=NOW)
        loan_service.request_loan(db, group.id, other.id, Decimal("2000"), 2, now=NOW)

        assert len(loan_service.list_by_group(db, group.id)) == 2
        assert [loan.principal for loan in loan_service.list_by_member(db, other.id)] == [Decimal("2000")]

    def test_get_loan_checks_the_group(self, db, group, saver):
        loan = loan_service.request_loan(db, group.id, saver.id, Decimal("1000"), 2, now=NOW)
        other_group = group_service.create_group(db, "Elsewhere", now=NOW)

        assert loan_service.get_loan(db, group.id, loan.id).id == loan.id
        with pytest.raises(AccessDeniedError):
            loan_service.get_loan(db, other_group.id, loan.id)
        with pytest.raises(NotFoundError):
            loan_service.get_loan(db, group.id, uuid.uuid4())
