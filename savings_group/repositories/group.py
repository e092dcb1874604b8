from savings_group.models.group import Group
from savings_group.repositories.base import Repository


class GroupRepository(Repository[Group]):
    model = Group
