import os
import tempfile

# Must be set before savings_group.core.config is imported
os.environ.setdefault("AUDIT_LOG_DIR", tempfile.mkdtemp(prefix="savings_group_audit_"))
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from savings_group.db.base import init_db
from savings_group.schemas.group import GroupSettingsUpdate
from savings_group.services import contribution as contribution_service
from savings_group.services import group as group_service
from savings_group.services import member as member_service

NOW = datetime(2026, 3, 1, 9, 0, 0)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def group(db):
    return group_service.create_group(
        db,
        "Tikondane Savings",
        GroupSettingsUpdate(
            contribution_amount=Decimal("50000"),
            loan_interest_rate=Decimal("0.05"),
            penalty_rate=Decimal("0"),
            contribution_penalty_rate=Decimal("0"),
        ),
        now=NOW,
    )


def add_active_member(db, group, name):
    member = member_service.register_member(db, group.id, name, now=NOW)
    return member_service.activate_member(db, member.id, now=NOW)


@pytest.fixture
def member(db, group):
    return add_active_member(db, group, "Chisomo Banda")


@pytest.fixture
def members(db, group):
    names = ["Chisomo Banda", "Tamanda Phiri", "Kondwani Mwale", "Thoko Nkhoma"]
    return [add_active_member(db, group, name) for name in names]


def pay_contributions(db, group, member, months, amount=Decimal("50000"), now=NOW):
    """Record already-paid contributions so a member qualifies for loans."""
    return [
        contribution_service.add_contribution(db, group.id, member.id, amount, month, now=now)
        for month in months
    ]
