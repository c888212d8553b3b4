"""Scheduler service for periodic market data collection."""

from collections.abc import Callable
from typing import Any

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import Session

from src.database.store import MarketDataStore, StoreError
from src.services.collection_pipeline import CollectionPipeline, CollectionResult
from src.utils.config import config
from src.utils.logger import StructuredLogger

structured_logger = StructuredLogger("CollectorScheduler")

JOB_ID = "market_data_collection"


class CollectorScheduler:
    """Runs the collection pipeline on a crontab schedule in a background thread."""

    def __init__(
        self,
        pipeline: CollectionPipeline,
        session_factory: Callable[[], Session],
        schedule: str | None = None,
        timezone: str | None = None,
    ):
        """
        Initialize scheduler service.

        Args:
            pipeline: Pipeline to run on each tick
            session_factory: Creates a database session per run
            schedule: Five-field crontab expression (defaults to COLLECTOR_SCHEDULE)
            timezone: Timezone the crontab is evaluated in
        """
        self.pipeline = pipeline
        self.session_factory = session_factory
        self.schedule = schedule or config.collector.schedule
        self.timezone = timezone or config.collector.timezone
        self.scheduler = BackgroundScheduler(timezone=self.timezone)
        self.is_running = False

    def start(self) -> None:
        """
        Register the collection job and start the scheduler.

        Raises:
            ValueError: If the crontab expression is invalid
        """
        trigger = CronTrigger.from_crontab(self.schedule, timezone=self.timezone)
        self.scheduler.add_job(
            self.execute_collection,
            trigger,
            id=JOB_ID,
            name="Market Data Collection",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        if not self.is_running:
            self.scheduler.start()
            self.is_running = True
            structured_logger.info(
                "Scheduler started",
                context={"schedule": self.schedule, "timezone": self.timezone},
            )

    def execute_collection(self) -> CollectionResult | None:
        """
        Run one collection cycle.

        Failures are logged and recorded by the pipeline, never raised into
        the scheduler thread.

        Returns:
            The result, or None if the run failed
        """
        session = self.session_factory()
        try:
            return self.pipeline.run(MarketDataStore(session), trigger="scheduler")
        except StoreError:
            # Already logged and recorded as collection_error
            return None
        except Exception as e:
            structured_logger.error(
                f"Unexpected error during scheduled collection: {e}",
                context={"job_id": JOB_ID},
                exception=e,
            )
            return None
        finally:
            session.close()

    def get_status(self) -> dict[str, Any]:
        """Scheduler state for the debug endpoint."""
        job = self.scheduler.get_job(JOB_ID) if self.is_running else None
        next_run = getattr(job, "next_run_time", None) if job else None
        return {
            "running": self.is_running,
            "schedule": self.schedule,
            "timezone": self.timezone,
            "next_run_time": next_run.isoformat() if next_run else None,
        }

    def stop(self) -> None:
        """Stop the scheduler."""
        if self.is_running:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            structured_logger.info("Scheduler stopped")
