from typing import List
from uuid import UUID

from savings_group.models.transaction import Penalty
from savings_group.repositories.base import Repository


class PenaltyRepository(Repository[Penalty]):
    model = Penalty

    def list_by_member(self, member_id: UUID) -> List[Penalty]:
        return self.db.query(Penalty).filter(Penalty.member_id == member_id).order_by(Penalty.created_at).all()

    def list_by_group(self, group_id: UUID) -> List[Penalty]:
        return self.db.query(Penalty).filter(Penalty.group_id == group_id).order_by(Penalty.created_at).all()

    def list_by_contribution(self, contribution_id: UUID) -> List[Penalty]:
        return self.db.query(Penalty).filter(Penalty.contribution_id == contribution_id).all()

    def list_by_installment(self, installment_id: UUID) -> List[Penalty]:
        return self.db.query(Penalty).filter(Penalty.installment_id == installment_id).all()

    def list_paid_created_between(self, group_id: UUID, start, end) -> List[Penalty]:
        return self.db.query(Penalty).filter(
            Penalty.group_id == group_id,
            Penalty.is_paid.is_(True),
            Penalty.created_at >= start,
            Penalty.created_at < end
        ).all()

    def list_by_member_and_reason(self, member_id: UUID, reason: str) -> List[Penalty]:
        return self.db.query(Penalty).filter(
            Penalty.member_id == member_id,
            Penalty.reason == reason
        ).all()
