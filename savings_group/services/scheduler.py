"""Background scheduler that flags overdue contributions for every group."""

import logging
from typing import Dict

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from savings_group.core.config import settings
from savings_group.db.base import SessionLocal
from savings_group.repositories.group import GroupRepository
from savings_group.schemas.contribution import OverdueResult
from savings_group.services.contribution import mark_overdue

logger = logging.getLogger(__name__)

scheduler: AsyncIOScheduler | None = None

JOB_ID = "mark_overdue_contributions"


def run_overdue_sweep(session_factory=SessionLocal) -> Dict[str, OverdueResult]:
    """Run mark_overdue for each group; one failing group does not stop the rest.

    Groups opted out of automatic penalties are still marked overdue, just
    without a penalty being charged.
    """
    results: Dict[str, OverdueResult] = {}
    db = session_factory()
    try:
        groups = GroupRepository(db).list_all()
        for group in groups:
            group_id = group.id
            try:
                results[str(group_id)] = mark_overdue(
                    db,
                    group_id,
                    auto_penalize=bool(group.automatic_penalties_enabled)
                )
            except Exception:
                db.rollback()
                logger.exception("Overdue sweep failed for group %s", group_id)
    finally:
        db.close()

    total_marked = sum(r.marked for r in results.values())
    if total_marked:
        logger.info("Scheduler marked %d contribution(s) overdue across %d group(s)", total_marked, len(results))
    return results


def start_scheduler() -> None:
    """Create and start the background scheduler."""
    global scheduler
    interval = settings.SCHEDULER_INTERVAL_MINUTES

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        run_overdue_sweep,
        trigger=IntervalTrigger(minutes=interval),
        id=JOB_ID,
        name="Mark overdue contributions",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Background scheduler started with interval=%d minutes", interval)


def stop_scheduler() -> None:
    """Shut down the background scheduler gracefully."""
    global scheduler
    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped")
    scheduler = None


def reschedule_jobs(new_interval: int) -> None:
    if not scheduler or not scheduler.running:
        raise RuntimeError("Scheduler is not running")
    if new_interval < 1:
        raise ValueError("Interval must be at least one minute")

    scheduler.reschedule_job(JOB_ID, trigger=IntervalTrigger(minutes=new_interval))
    logger.info("Scheduler jobs rescheduled to interval=%d minutes", new_interval)


def get_scheduler_status() -> dict:
    if not scheduler or not scheduler.running:
        return {"running": False, "interval_minutes": None, "jobs": []}

    jobs = scheduler.get_jobs()
    current_interval = settings.SCHEDULER_INTERVAL_MINUTES
    if jobs and hasattr(jobs[0].trigger, "interval"):
        current_interval = int(jobs[0].trigger.interval.total_seconds() / 60)

    return {
        "running": True,
        "interval_minutes": current_interval,
        "jobs": [
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in jobs
        ],
    }
