from savings_group.db.base import Base

# Import all models so metadata.create_all sees every table
from savings_group.models.group import Group
from savings_group.models.member import Member, MemberStatus, ActorRole
from savings_group.models.transaction import (
    Contribution,
    ContributionStatus,
    Loan,
    LoanStatus,
    LoanInstallment,
    InstallmentStatus,
    Penalty,
    PenaltyStatus,
)
from savings_group.models.ledger import LedgerTransaction, TransactionType, LedgerImmutableError
from savings_group.models.distribution import Distribution, DistributionStatus, MemberDistribution

__all__ = [
    "Base",
    "Group",
    "Member",
    "MemberStatus",
    "ActorRole",
    "Contribution",
    "ContributionStatus",
    "Loan",
    "LoanStatus",
    "LoanInstallment",
    "InstallmentStatus",
    "Penalty",
    "PenaltyStatus",
    "LedgerTransaction",
    "TransactionType",
    "LedgerImmutableError",
    "Distribution",
    "DistributionStatus",
    "MemberDistribution",
]
