"""
Tests for the interval scheduler of the performance job.
"""

from jobs import scheduler as scheduler_module
from jobs.scheduler import JOB_ID, build_scheduler, run_scheduled_cycle


class TestBuildScheduler:

    def test_single_flight_job(self):
        scheduler = build_scheduler(lookback_days=45, run_now=False)

        job = scheduler.get_job(JOB_ID)

        assert job is not None
        assert job.max_instances == 1
        assert job.coalesce is True
        assert job.kwargs == {"lookback_days": 45}

    def test_interval_from_settings(self, monkeypatch):
        monkeypatch.setattr(scheduler_module.settings, "performance_schedule_minutes", 15)

        job = build_scheduler(run_now=False).get_job(JOB_ID)

        assert job.trigger.interval.total_seconds() == 15 * 60


class TestRunScheduledCycle:

    def test_cycle_exception_is_logged_not_raised(self, monkeypatch):
        def boom(lookback_days=None):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(scheduler_module, "run_cycle", boom)

        run_scheduled_cycle()

    def test_passes_lookback(self, monkeypatch):
        calls = []

        def fake_run_cycle(lookback_days=None):
            calls.append(lookback_days)
            return {"errors": 0}

        monkeypatch.setattr(scheduler_module, "run_cycle", fake_run_cycle)

        run_scheduled_cycle(lookback_days=30)

        assert calls == [30]
