from typing import List, Optional
from uuid import UUID

from savings_group.models.transaction import Loan, LoanInstallment
from savings_group.repositories.base import Repository


class LoanRepository(Repository[Loan]):
    model = Loan

    def list_by_group(self, group_id: UUID) -> List[Loan]:
        return self.db.query(Loan).filter(Loan.group_id == group_id).order_by(Loan.created_at).all()

    def list_by_member(self, member_id: UUID) -> List[Loan]:
        return self.db.query(Loan).filter(Loan.member_id == member_id).order_by(Loan.created_at).all()

    def add_installment(self, installment: LoanInstallment) -> LoanInstallment:
        self.db.add(installment)
        self.db.flush()
        return installment

    def get_installment(self, loan_id: UUID, installment_id: UUID, for_update: bool = False) -> Optional[LoanInstallment]:
        query = self.db.query(LoanInstallment).filter(
            LoanInstallment.id == installment_id,
            LoanInstallment.loan_id == loan_id
        )
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def list_installments_paid_between(self, group_id: UUID, start, end) -> List[LoanInstallment]:
        """Installments of the group's loans settled within [start, end)."""
        return self.db.query(LoanInstallment).join(Loan).filter(
            Loan.group_id == group_id,
            LoanInstallment.paid_at.is_not(None),
            LoanInstallment.paid_at >= start,
            LoanInstallment.paid_at < end
        ).all()
