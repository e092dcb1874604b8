from sqlalchemy import Column, String, ForeignKey, DateTime, Numeric, Integer, Boolean, Enum as SQLEnum, Uuid
from sqlalchemy.orm import relationship
import uuid
import enum
from decimal import Decimal
from savings_group.db.base import Base
from savings_group.core.dates import utcnow


class MemberStatus(str, enum.Enum):
    """Member status enum."""
    PENDING = "pending"
    ACTIVE = "active"
    REJECTED = "rejected"


class ActorRole(str, enum.Enum):
    """Role of whoever invokes an operation; scopes what they may see or do."""
    PLATFORM_OWNER = "platform_owner"
    GROUP_ADMIN = "group_admin"
    MEMBER = "member"


class Member(Base):
    """Group member with savings balance and running penalty total."""
    __tablename__ = "member"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    group_id = Column(Uuid(as_uuid=True), ForeignKey("savings_group.id"), nullable=False, index=True)
    full_name = Column(String(200), nullable=False)
    status = Column(SQLEnum(MemberStatus, native_enum=False, values_callable=lambda obj: [e.value for e in obj]), default=MemberStatus.PENDING, nullable=False)
    balance = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))  # savings + distribution payouts
    penalties_total = Column(Numeric(15, 2), nullable=False, default=Decimal("0.00"))  # every penalty ever charged
    shares_owned = Column(Integer, nullable=False, default=0)
    seed_paid = Column(Boolean, nullable=False, default=False)
    seed_paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    activated_at = Column(DateTime, nullable=True)

    # Relationships
    group = relationship("Group", back_populates="members")
    contributions = relationship("Contribution", back_populates="member")
    loans = relationship("Loan", back_populates="member")
    penalties = relationship("Penalty", back_populates="member")
