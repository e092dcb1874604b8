from typing import List, Optional
from uuid import UUID

from savings_group.models.distribution import Distribution, DistributionStatus, MemberDistribution
from savings_group.repositories.base import Repository


class DistributionRepository(Repository[Distribution]):
    model = Distribution

    def get_by_group_and_year(self, group_id: UUID, year: int, for_update: bool = False) -> Optional[Distribution]:
        """The live (non-cancelled) distribution for a group and year, if any."""
        query = self.db.query(Distribution).filter(
            Distribution.group_id == group_id,
            Distribution.year == year,
            Distribution.status != DistributionStatus.CANCELLED
        )
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def list_by_group(self, group_id: UUID) -> List[Distribution]:
        return self.db.query(Distribution).filter(
            Distribution.group_id == group_id
        ).order_by(Distribution.year.desc(), Distribution.created_at.desc()).all()

    def create_member_distribution(self, member_distribution: MemberDistribution) -> MemberDistribution:
        self.db.add(member_distribution)
        self.db.flush()
        return member_distribution

    def list_member_distributions_by_distribution(self, distribution_id: UUID) -> List[MemberDistribution]:
        return self.db.query(MemberDistribution).filter(
            MemberDistribution.distribution_id == distribution_id
        ).all()

    def list_member_distributions_by_member(self, member_id: UUID) -> List[MemberDistribution]:
        return self.db.query(MemberDistribution).filter(
            MemberDistribution.member_id == member_id
        ).order_by(MemberDistribution.created_at.desc()).all()
