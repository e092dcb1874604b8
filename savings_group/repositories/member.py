from typing import List
from uuid import UUID

from savings_group.models.member import Member, MemberStatus
from savings_group.repositories.base import Repository


class MemberRepository(Repository[Member]):
    model = Member

    def list_by_group(self, group_id: UUID) -> List[Member]:
        return self.db.query(Member).filter(Member.group_id == group_id).order_by(Member.created_at).all()

    def list_active_by_group(self, group_id: UUID) -> List[Member]:
        return self.db.query(Member).filter(
            Member.group_id == group_id,
            Member.status == MemberStatus.ACTIVE
        ).order_by(Member.created_at).all()
