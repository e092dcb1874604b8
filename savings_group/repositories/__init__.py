from savings_group.repositories.group import GroupRepository
from savings_group.repositories.member import MemberRepository
from savings_group.repositories.contribution import ContributionRepository
from savings_group.repositories.loan import LoanRepository
from savings_group.repositories.penalty import PenaltyRepository
from savings_group.repositories.distribution import DistributionRepository
from savings_group.repositories.ledger import TransactionRepository

__all__ = [
    "GroupRepository",
    "MemberRepository",
    "ContributionRepository",
    "LoanRepository",
    "PenaltyRepository",
    "DistributionRepository",
    "TransactionRepository",
]
