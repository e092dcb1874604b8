from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, update

from savings_group.models.transaction import Contribution, ContributionStatus
from savings_group.repositories.base import Repository


class ContributionRepository(Repository[Contribution]):
    model = Contribution

    def list_by_member_and_month(self, member_id: UUID, month: str) -> List[Contribution]:
        return self.db.query(Contribution).filter(
            Contribution.member_id == member_id,
            Contribution.month == month
        ).all()

    def list_by_member(self, member_id: UUID) -> List[Contribution]:
        return self.db.query(Contribution).filter(
            Contribution.member_id == member_id
        ).order_by(Contribution.month).all()

    def list_by_group(self, group_id: UUID) -> List[Contribution]:
        return self.db.query(Contribution).filter(
            Contribution.group_id == group_id
        ).order_by(Contribution.month, Contribution.created_at).all()

    def list_unpaid_by_group(self, group_id: UUID, for_update: bool = False) -> List[Contribution]:
        query = self.db.query(Contribution).filter(
            Contribution.group_id == group_id,
            Contribution.status == ContributionStatus.UNPAID
        ).order_by(Contribution.due_date)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.all()

    def list_overdue(self, group_id: UUID) -> List[Contribution]:
        return self.db.query(Contribution).filter(
            Contribution.group_id == group_id,
            Contribution.status == ContributionStatus.OVERDUE
        ).order_by(Contribution.due_date).all()

    def latest_month(self, group_id: UUID) -> Optional[str]:
        """Most recent period generated for the group ("YYYY-MM" sorts chronologically)."""
        return self.db.query(func.max(Contribution.month)).filter(
            Contribution.group_id == group_id
        ).scalar()

    def flag_overdue(self, contribution: Contribution) -> bool:
        """Move an unpaid contribution to overdue unless it was paid meanwhile."""
        result = self.db.execute(
            update(Contribution)
            .where(Contribution.id == contribution.id, Contribution.status == ContributionStatus.UNPAID)
            .values(status=ContributionStatus.OVERDUE)
            .execution_options(synchronize_session=False)
        )
        self.db.refresh(contribution)
        return result.rowcount == 1
