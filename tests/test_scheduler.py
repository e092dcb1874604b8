import asyncio
from datetime import datetime
from decimal import Decimal

import pytest

from savings_group.models import ContributionStatus
from savings_group.schemas.group import GroupSettingsUpdate
from savings_group.services import contribution as contribution_service
from savings_group.services import group as group_service
from savings_group.services import penalty as penalty_service
from savings_group.services import scheduler

from conftest import add_active_member


def _group_with_old_obligation(db, name, auto_penalties):
    # Generated with a clock in the past so the real clock finds it overdue
    past = datetime(2024, 1, 1)
    group = group_service.create_group(
        db, name,
        GroupSettingsUpdate(contribution_penalty_rate=Decimal("0.1"), automatic_penalties_enabled=auto_penalties),
        now=past,
    )
    member = add_active_member(db, group, "Chisomo Banda")
    contribution_service.generate_monthly_obligations(
        db, group.id, "2024-01", Decimal("1000"), datetime(2024, 1, 20), now=past
    )
    return group, member


class TestOverdueSweep:

    def test_sweep_marks_every_group_and_respects_penalty_switch(self, db, session_factory):
        penalised_group, penalised = _group_with_old_obligation(db, "Penalised", True)
        lenient_group, lenient = _group_with_old_obligation(db, "Lenient", False)

        results = scheduler.run_overdue_sweep(session_factory=session_factory)

        assert results[str(penalised_group.id)].marked == 1
        assert results[str(penalised_group.id)].penalties_generated == 1
        assert results[str(lenient_group.id)].marked == 1
        assert results[str(lenient_group.id)].penalties_generated == 0
        assert [p.amount for p in penalty_service.list_by_member(db, penalised.id)] == [Decimal("100.00")]
        assert penalty_service.list_by_member(db, lenient.id) == []
        assert all(
            c.status == ContributionStatus.OVERDUE
            for c in contribution_service.list_by_group(db, lenient_group.id)
        )

    def test_status_when_not_running(self):
        assert scheduler.get_scheduler_status() == {"running": False, "interval_minutes": None, "jobs": []}

    def test_start_reschedule_stop(self):
        async def lifecycle():
            scheduler.start_scheduler()
            try:
                started = scheduler.get_scheduler_status()
                scheduler.reschedule_jobs(5)
                rescheduled = scheduler.get_scheduler_status()
            finally:
                scheduler.stop_scheduler()
            return started, rescheduled

        started, rescheduled = asyncio.run(lifecycle())

        assert started["running"] is True
        assert [job["id"] for job in started["jobs"]] == [scheduler.JOB_ID]
        assert rescheduled["interval_minutes"] == 5
        assert scheduler.get_scheduler_status()["running"] is False

    def test_reschedule_requires_a_running_scheduler(self):
        with pytest.raises(RuntimeError):
            scheduler.reschedule_jobs(5)
