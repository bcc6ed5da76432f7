"""Scheduling module for periodic analysis runs with APScheduler.

This module runs the analysis pipeline for every configured neighborhood on a
cron schedule.

Example usage:
    from deal_finder.scheduler import Scheduler

    scheduler = Scheduler()
    scheduler.start()  # Starts background scheduler

    # Or run a one-time batch
    scheduler.run_now()
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import yaml
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from deal_finder.config import settings
from deal_finder.pipeline import AnalysisPipeline, RunStats

logger = logging.getLogger(__name__)


class SchedulerConfig:
    """Configuration for the scheduler loaded from config.yaml."""

    def __init__(self, config_path: Path = Path("config.yaml")):
        """Load scheduler configuration from YAML file.

        Args:
            config_path: Path to config.yaml file
        """
        self.config_path = config_path
        self._config = self._load_config()

    def _load_config(self) -> dict:
        if not self.config_path.exists():
            logger.warning(f"Config file {self.config_path} not found, using defaults")
            return {}

        with open(self.config_path) as f:
            return yaml.safe_load(f) or {}

    @property
    def neighborhoods(self) -> List[str]:
        return self._config.get("analysis", {}).get("neighborhoods", settings.neighborhood_list)

    @property
    def property_kinds(self) -> List[str]:
        return self._config.get("analysis", {}).get(
            "property_kinds", settings.property_kind_list
        )

    @property
    def schedule_enabled(self) -> bool:
        return (
            self._config.get("scheduling", {}).get("enabled", False)
            or settings.schedule_enabled
        )

    @property
    def cron_expression(self) -> str:
        return self._config.get("scheduling", {}).get("cron", settings.schedule_cron)

    @property
    def timezone(self) -> str:
        return self._config.get("scheduling", {}).get("timezone", settings.schedule_timezone)


class Scheduler:
    """Scheduler for periodic listing analysis.

    Example:
        >>> scheduler = Scheduler()
        >>> scheduler.start()  # Runs in background
        >>> scheduler.shutdown()
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        pipeline: Optional[AnalysisPipeline] = None,
    ):
        """Initialize scheduler.

        Args:
            config_path: Path to config.yaml file (uses default if None)
            pipeline: Optional pipeline instance (built from settings if None)
        """
        self.config = SchedulerConfig(config_path or Path("config.yaml"))
        self._pipeline = pipeline
        self.scheduler = BackgroundScheduler(timezone=self.config.timezone)
        self._job_id = "deal_finder_analysis_job"

    @property
    def pipeline(self) -> AnalysisPipeline:
        if self._pipeline is None:
            self._pipeline = AnalysisPipeline.from_settings(settings)
        return self._pipeline

    def run_analysis_job(self) -> RunStats:
        """Run the pipeline for all configured neighborhoods and kinds."""
        start_time = datetime.now()
        logger.info(
            f"Starting scheduled analysis job at {start_time.isoformat()} "
            f"({len(self.config.neighborhoods)} neighborhoods, "
            f"{len(self.config.property_kinds)} property kinds)"
        )

        stats = self.pipeline.run_batch(self.config.neighborhoods, self.config.property_kinds)

        duration = (datetime.now() - start_time).total_seconds()
        logger.info(
            f"Scheduled analysis job completed in {duration:.1f}s: "
            f"{stats.successful}/{len(stats.results)} successful, "
            f"{stats.published} published, {stats.retracted} retracted"
        )
        return stats

    def add_job(self) -> None:
        """Add the analysis job to the scheduler with cron trigger."""
        cron_parts = self.config.cron_expression.split()
        if len(cron_parts) != 5:
            raise ValueError(
                f"Invalid cron expression: {self.config.cron_expression}. "
                "Expected format: 'minute hour day month day_of_week'"
            )

        minute, hour, day, month, day_of_week = cron_parts
        trigger = CronTrigger(
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=day_of_week,
            timezone=self.config.timezone,
        )

        self.scheduler.add_job(
            func=self.run_analysis_job,
            trigger=trigger,
            id=self._job_id,
            name="Deal Finder Analysis",
            replace_existing=True,
            max_instances=1,  # Don't run overlapping jobs
        )

        logger.info(
            f"Scheduled analysis job with cron: {self.config.cron_expression} "
            f"(timezone: {self.config.timezone})"
        )

    def start(self) -> None:
        """Start the scheduler if scheduling is enabled."""
        if not self.config.schedule_enabled:
            logger.warning("Scheduling is disabled in configuration")
            return

        self.add_job()
        self.scheduler.start()
        logger.info("Scheduler started successfully")

        job = self.scheduler.get_job(self._job_id)
        if job and job.next_run_time:
            logger.info(f"Next scheduled run: {job.next_run_time.isoformat()}")

    def shutdown(self, wait: bool = True) -> None:
        logger.info("Shutting down scheduler...")
        self.scheduler.shutdown(wait=wait)
        logger.info("Scheduler shutdown complete")

    def get_next_run_time(self) -> Optional[datetime]:
        job = self.scheduler.get_job(self._job_id)
        return job.next_run_time if job else None

    def run_now(self) -> RunStats:
        """Run the analysis job immediately (outside of schedule)."""
        logger.info("Running analysis job immediately (manual trigger)")
        return self.run_analysis_job()


def setup_logging():
    """Configure console and optional file logging from settings."""
    log_level = getattr(logging, settings.log_level.upper())
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(log_format))

    handlers = [console_handler]
    if settings.log_file:
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(settings.log_file)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(log_format))
        handlers.append(file_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)


def run_scheduler():
    """Run the scheduler in foreground (blocking) until interrupted."""
    setup_logging()

    logger.info("Starting Deal Finder scheduler")
    logger.info(f"Configuration: {Path('config.yaml').absolute()}")

    scheduler = Scheduler()

    if not scheduler.config.schedule_enabled:
        logger.error("Scheduling is disabled. Set 'scheduling.enabled: true' in config.yaml "
                     "or DEAL_FINDER_SCHEDULE_ENABLED=true")
        return

    scheduler.start()

    try:
        logger.info("Scheduler is running. Press Ctrl+C to stop.")
        import time
        while True:
            time.sleep(1)
    except (KeyboardInterrupt, SystemExit):
        logger.info("Received shutdown signal")
        scheduler.shutdown()


if __name__ == "__main__":
    run_scheduler()
