import logging
from sqlalchemy.orm import Session
from savings_group.core.audit import write_audit_log
from savings_group.core.dates import utcnow
from savings_group.core.exceptions import NotFoundError, ConflictError, ValidationError
from savings_group.core.money import ZERO, round_money
from savings_group.db.base import transaction
from savings_group.models.group import Group
from savings_group.models.distribution import DistributionStatus
from savings_group.repositories.group import GroupRepository
from savings_group.repositories.distribution import DistributionRepository
from savings_group.schemas.group import GroupSettingsUpdate, TreasuryChange
from uuid import UUID
from decimal import Decimal
from datetime import datetime
from typing import Optional

logger = logging.getLogger(__name__)


def create_group(
    db: Session,
    name: str,
    settings: GroupSettingsUpdate = None,
    now: Optional[datetime] = None
) -> Group:
    """Create a group with zeroed treasury counters."""
    if not name or not name.strip():
        raise ValidationError("Group name is required")

    with transaction(db):
        group = Group(name=name.strip(), created_at=now or utcnow())
        if settings is not None:
            for field, value in settings.model_dump(exclude_unset=True).items():
                setattr(group, field, value)
        GroupRepository(db).create(group)

    db.refresh(group)
    logger.info("Created group %s (%s)", group.name, group.id)
    return group


def get_group(db: Session, group_id: UUID, for_update: bool = False) -> Group:
    group = GroupRepository(db).get_by_id(group_id, for_update=for_update)
    if not group:
        raise NotFoundError("Group not found")
    return group


def is_cycle_locked(db: Session, group_id: UUID, year: int) -> bool:
    """A year is locked once its distribution has been executed."""
    distribution = DistributionRepository(db).get_by_group_and_year(group_id, year)
    return distribution is not None and distribution.status == DistributionStatus.COMPLETED


def ensure_cycle_open(db: Session, group_id: UUID, now: Optional[datetime] = None) -> None:
    """Refuse new financial activity in a year whose distribution is completed."""
    year = (now or utcnow()).year
    if is_cycle_locked(db, group_id, year):
        raise ConflictError(f"Cycle {year} is closed. No new transactions are allowed.")


def update_settings(
    db: Session,
    group_id: UUID,
    changes: GroupSettingsUpdate,
    actor_id: UUID = None,
    now: Optional[datetime] = None
) -> Group:
    """Apply an admin settings change unless the current cycle is locked."""
    with transaction(db):
        group = get_group(db, group_id, for_update=True)
        ensure_cycle_open(db, group_id, now)
        GroupRepository(db).update(group, changes)

    changed = changes.model_dump(exclude_unset=True)
    write_audit_log(group_id, actor_id, "group_admin", "settings_updated", "group", group_id, **changed)
    logger.info("Updated settings for group %s: %s", group_id, sorted(changed))
    db.refresh(group)
    return group


def credit_treasury(
    db: Session,
    group_id: UUID,
    savings_change: Decimal = ZERO,
    income_change: Decimal = ZERO,
    cash_change: Decimal = ZERO
) -> Group:
    """
    Move the group's aggregate counters by the given deltas.

    Runs inside the caller's unit of work. The deltas are added in SQL, so
    concurrent credits from different members never overwrite each other.
    """
    group = GroupRepository(db).increment(group_id, TreasuryChange(
        total_savings=round_money(savings_change),
        total_income=round_money(income_change),
        cash=round_money(cash_change)
    ))
    if not group:
        raise NotFoundError("Group not found")
    return group
