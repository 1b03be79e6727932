# Overview: Background job scheduler; cadence rules, job registry and the default maintenance jobs.

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable

from flask import Flask, current_app

from .constants import HEALTH_SCORED_CATEGORIES
from .extensions import db
from .time_utils import utcnow


def _floor_minute(dt: datetime) -> datetime:
    return dt.replace(second=0, microsecond=0)


@dataclass(frozen=True)
class Hourly:
    minute: int = 0

    def next_after(self, dt: datetime) -> datetime:
        candidate = _floor_minute(dt).replace(minute=self.minute)
        if candidate <= dt:
            candidate += timedelta(hours=1)
        return candidate

    def describe(self) -> str:
        return f"hourly at :{self.minute:02d}"


@dataclass(frozen=True)
class DailyAt:
    hour: int
    minute: int = 0

    def next_after(self, dt: datetime) -> datetime:
        candidate = _floor_minute(dt).replace(hour=self.hour, minute=self.minute)
        if candidate <= dt:
            candidate += timedelta(days=1)
        return candidate

    def describe(self) -> str:
        return f"daily at {self.hour:02d}:{self.minute:02d}"


@dataclass(frozen=True)
class WeeklyAt:
    weekday: int  # Monday=0 ... Sunday=6
    hour: int = 0
    minute: int = 0

    def next_after(self, dt: datetime) -> datetime:
        days_ahead = (self.weekday - dt.weekday()) % 7
        candidate = _floor_minute(dt).replace(hour=self.hour, minute=self.minute) + timedelta(days=days_ahead)
        if candidate <= dt:
            candidate += timedelta(days=7)
        return candidate

    def describe(self) -> str:
        return f"weekly on day {self.weekday} at {self.hour:02d}:{self.minute:02d}"


@dataclass
class Job:
    name: str
    cadence: object
    func: Callable[[], object]
    next_run: datetime | None = None
    last_run: datetime | None = None
    last_error: str | None = None
    runs: int = field(default=0)


class Scheduler:
    """
    Owns (cadence, task) pairs and runs them on one background thread.

    Jobs run in sequence inside an application context. A failing job is
    logged and rolled back; it does not stop the others or the loop.
    """

    def __init__(self, app: Flask, *, poll_interval: float = 30.0, clock: Callable[[], datetime] = utcnow):
        self.app = app
        self.poll_interval = poll_interval
        self.clock = clock
        self.jobs: dict[str, Job] = {}
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def add_job(self, name: str, cadence, func: Callable[[], object]) -> Job:
        if name in self.jobs:
            raise ValueError(f"job already registered: {name}")
        job = Job(name=name, cadence=cadence, func=func, next_run=cadence.next_after(self.clock()))
        self.jobs[name] = job
        return job

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_job(self, name: str) -> bool:
        """Run one job now. Returns False when it raised."""
        job = self.jobs.get(name)
        if job is None:
            raise KeyError(name)

        with self.app.app_context():
            logger = current_app.logger
            started = time.monotonic()
            logger.info("Scheduler job %s started", name)
            try:
                result = job.func()
            except Exception as exc:
                db.session.rollback()
                job.last_error = str(exc)
                logger.exception("Scheduler job %s failed after %.2fs", name, time.monotonic() - started)
                return False
            finally:
                job.last_run = self.clock()
                job.runs += 1

            job.last_error = None
            logger.info("Scheduler job %s finished in %.2fs (result=%s)", name, time.monotonic() - started, result)
            return True

    def run_pending(self, now: datetime | None = None) -> list[str]:
        """Run every job whose scheduled time has arrived. Returns the names run."""
        now = now or self.clock()
        ran = []
        for job in list(self.jobs.values()):
            if job.next_run is not None and now >= job.next_run:
                self.run_job(job.name)
                job.next_run = job.cadence.next_after(now)
                ran.append(job.name)
        return ran

    def _loop(self) -> None:
        while not self._stop.wait(self.poll_interval):
            self.run_pending()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="smartshop-scheduler", daemon=True)
        self._thread.start()
        self.app.logger.info("Scheduler started with jobs: %s", ", ".join(
            f"{j.name} ({j.cadence.describe()})" for j in self.jobs.values()
        ))

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self.app.logger.info("Scheduler stopped")

    def status(self) -> list[dict]:
        return [
            {
                "name": j.name,
                "cadence": j.cadence.describe(),
                "next_run": j.next_run,
                "last_run": j.last_run,
                "last_error": j.last_error,
                "runs": j.runs,
            }
            for j in self.jobs.values()
        ]


def inventory_alert_sweep() -> int:
    from .services.inventory_service import check_all_alerts
    return check_all_alerts()


def demand_prediction() -> int:
    from .services.analytics_service import refresh_demand_predictions
    return refresh_demand_predictions()


def analytics_cleanup() -> int:
    from .services.maintenance_service import cleanup_analytics
    return cleanup_analytics(retention_days=int(current_app.config.get("ANALYTICS_RETENTION_DAYS", 90)))


def health_score_refresh() -> int:
    from .services.catalog_service import refresh_health_scores
    return refresh_health_scores(HEALTH_SCORED_CATEGORIES)


def build_default_scheduler(app: Flask, **kwargs) -> Scheduler:
    scheduler = Scheduler(app, **kwargs)
    scheduler.add_job("inventory-alerts", Hourly(minute=0), inventory_alert_sweep)
    scheduler.add_job("demand-prediction", DailyAt(hour=2), demand_prediction)
    scheduler.add_job("analytics-cleanup", WeeklyAt(weekday=6), analytics_cleanup)
    scheduler.add_job("health-scores", DailyAt(hour=3), health_score_refresh)
    return scheduler
