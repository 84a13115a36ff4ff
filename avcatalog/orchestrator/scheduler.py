"""Job scheduling for avcatalog."""

from typing import TYPE_CHECKING, Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

if TYPE_CHECKING:
    from .coordinator import JobCoordinator


class JobScheduler:
    """Manages scheduled crawl, maintenance and publishing jobs.

    Default schedule:
    - DUGA / SOKMIL crawl: Every 6 hours
    - b10f CSV import: Every 24 hours
    - Raw data reprocessing: Every 12 hours
    - Sale expiry: Every 60 minutes
    - Backfill: Daily at 3 AM
    - Reconcile: Daily at 4 AM
    - Sitemaps: Daily at 5 AM
    - News: Daily at 6 AM
    """

    def __init__(self, coordinator: "JobCoordinator", config: Any):
        """Initialize job scheduler.

        Args:
            coordinator: Job coordinator instance
            config: Configuration dictionary, or an object whose get() takes
                dotted keys such as "schedule.duga_hours"
        """
        self.coordinator = coordinator
        self.config = config

        self.max_instances = int(self._schedule("max_instances_per_job", 1))
        misfire_grace = int(self._schedule("misfire_grace_time_seconds", 300))
        self.scheduler = AsyncIOScheduler(
            job_defaults={
                "coalesce": True,
                "max_instances": self.max_instances,
                "misfire_grace_time": misfire_grace,
            }
        )

    def _schedule(self, key: str, default: Any) -> Any:
        """Read schedule.<key> from either config shape."""
        value = self.config.get(f"schedule.{key}")
        if value is not None:
            return value
        section = self.config.get("schedule", {})
        if isinstance(section, dict) and section.get(key) is not None:
            return section[key]
        return default

    def configure_jobs(self):
        """Set up all scheduled jobs based on configuration."""
        for name, label, default_hours in (
            ("duga", "DUGA", 6),
            ("sokmil", "SOKMIL", 6),
            ("b10f", "b10f CSV", 24),
        ):
            hours = self._schedule(f"{name}_hours", default_hours)
            self.scheduler.add_job(
                self.coordinator.run_crawler,
                IntervalTrigger(hours=hours),
                args=[name],
                id=f"crawl_{name}",
                name=f"{label} Crawl",
                replace_existing=True,
                max_instances=self.max_instances,
            )
            logger.info(f"Scheduled {label} crawl every {hours} hours")

        reprocess_hours = self._schedule("reprocess_hours", 12)
        self.scheduler.add_job(
            self.coordinator.reprocess_raw_data,
            IntervalTrigger(hours=reprocess_hours),
            id="reprocess_raw",
            name="Raw Data Reprocessing",
            replace_existing=True,
            max_instances=self.max_instances,
        )
        logger.info(f"Scheduled raw data reprocessing every {reprocess_hours} hours")

        expire_minutes = self._schedule("expire_sales_minutes", 60)
        self.scheduler.add_job(
            self.coordinator.expire_sales,
            IntervalTrigger(minutes=expire_minutes),
            id="expire_sales",
            name="Sale Expiry",
            replace_existing=True,
            max_instances=self.max_instances,
        )
        logger.info(f"Scheduled sale expiry every {expire_minutes} minutes")

        for job_id, func, label, default_hour in (
            ("backfill", self.coordinator.run_backfill, "Backfill", 3),
            ("reconcile", self.coordinator.run_reconcile, "Duplicate Reconcile", 4),
            ("sitemap", self.coordinator.publish_sitemaps, "Sitemap Publishing", 5),
            ("news", self.coordinator.generate_news, "News Generation", 6),
        ):
            hour = self._schedule(f"{job_id}_hour", default_hour)
            self.scheduler.add_job(
                func,
                CronTrigger(hour=hour, minute=0),
                id=job_id,
                name=label,
                replace_existing=True,
                max_instances=self.max_instances,
            )
            logger.info(f"Scheduled daily {label.lower()} at {hour}:00")

    def start(self):
        """Start the scheduler."""
        logger.info("Starting job scheduler")
        self.scheduler.start()

    def stop(self):
        """Stop the scheduler."""
        logger.info("Stopping job scheduler")
        self.scheduler.shutdown()

    def get_jobs(self):
        """Get list of scheduled jobs."""
        return self.scheduler.get_jobs()
