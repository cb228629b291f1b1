"""
Tests for the periodic maintenance jobs.
"""

from datetime import timedelta

from edb.coaching.models import CoachingSession
from edb.db.session import AsyncSessionLocal
from edb.scheduler import JOBS, Scheduler, run_scheduled_jobs
from edb.subscriptions.models import Subscription
from edb.utils.dates import utcnow


class TestScheduledJobs:
    """One pass of every maintenance job."""

    async def test_run_scheduled_jobs(self, apprenant):
        now = utcnow()
        async with AsyncSessionLocal() as db:
            db.add_all([
                Subscription(user_id=apprenant.id, type="MONTHLY", price=5000, status="ACTIVE",
                             start_date=now - timedelta(days=31), end_date=now - timedelta(hours=1),
                             auto_renew=True),
                Subscription(user_id=apprenant.id, type="MONTHLY", price=5000, status="ACTIVE",
                             start_date=now - timedelta(days=31), end_date=now - timedelta(hours=1)),
                Subscription(user_id=apprenant.id, type="MONTHLY", price=5000, status="ACTIVE",
                             start_date=now - timedelta(days=25), end_date=now + timedelta(days=5)),
                CoachingSession(user_id=apprenant.id, start_date=now - timedelta(days=90),
                                end_date=now - timedelta(days=1), is_free=True, status="ACTIVE"),
                CoachingSession(user_id=apprenant.id, start_date=now - timedelta(days=60),
                                end_date=now + timedelta(days=14), is_free=True, status="ACTIVE"),
            ])
            await db.commit()

        results = await run_scheduled_jobs()

        assert set(results) == {name for name, _ in JOBS}
        assert results == {
            "auto_renew_subscriptions": 1,
            "expire_subscriptions": 1,
            "subscription_expiry_warnings": 1,
            "expire_coaching_sessions": 1,
            "coaching_expiry_reminders": 1,
        }

    async def test_jobs_on_empty_database(self):
        results = await run_scheduled_jobs()
        assert all(value == 0 for value in results.values())


class TestScheduler:
    """Start and stop of the background loop."""

    async def test_start_and_stop(self):
        scheduler = Scheduler(interval_seconds=3600)

        await scheduler.start()
        assert scheduler.running
        assert scheduler.task is not None

        await scheduler.stop()
        assert not scheduler.running
        assert scheduler.task is None
