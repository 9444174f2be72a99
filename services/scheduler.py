"""
Campaign Scheduler

Finds campaigns that are due, runs each one through generation, humanization
and publishing, and keeps the queue tidy with periodic maintenance sweeps.

Every job runs on its own daemon thread. The store is the only coordination
point: a campaign cycle is claimed with a conditional update, so a manual
trigger and a periodic tick never process the same cycle twice.
"""

import calendar
import random
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from config import settings
from data.models import (
    Campaign,
    CampaignEvent,
    ContentQueueItem,
    PublishResult,
    Severity,
    User,
)
from data.protocols import CampaignStore
from services.humanizer import humanize
from services.protocols import ContentGeneratorProtocol, PublisherProtocol
from services.quota import quota_denial_reason
from utils.exceptions import (
    ConfigurationError,
    CredentialError,
    GenerationError,
    PublishError,
)
from utils.helpers import utcnow
from utils.logger import get_logger

logger = get_logger(__name__)

OUTCOME_PUBLISHED = "published"
OUTCOME_FAILED = "failed"
OUTCOME_SKIPPED = "skipped"


# =============================================================================
# Job timing
# =============================================================================

def next_daily_run(now: datetime, hour: int) -> datetime:
    """The next occurrence of hour:00 strictly after now."""
    candidate = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def next_weekly_run(now: datetime, weekday: int, hour: int) -> datetime:
    """The next occurrence of weekday (Monday=0) at hour:00 strictly after now."""
    candidate = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    candidate += timedelta(days=(weekday - now.weekday()) % 7)
    if candidate <= now:
        candidate += timedelta(days=7)
    return candidate


def next_monthly_run(now: datetime, day: int, hour: int) -> datetime:
    """The next occurrence of the given day of the month at hour:00 strictly after now."""
    year, month = now.year, now.month
    while True:
        last_day = calendar.monthrange(year, month)[1]
        candidate = datetime(year, month, min(day, last_day), hour)
        if candidate > now:
            return candidate
        month += 1
        if month > 12:
            year, month = year + 1, 1


class ScheduledJob:
    """A named job that runs on a daemon thread until stopped."""

    def __init__(self, name: str, func: Callable[[], Any],
                 next_delay: Callable[[datetime], float], clock: Callable[[], datetime] = utcnow):
        """
        Args:
            name: Job name reported by get_status()
            func: The work to run
            next_delay: Seconds to wait before the next run, given the current time
            clock: Source of the current UTC time
        """
        self.name = name
        self.func = func
        self.next_delay = next_delay
        self.clock = clock
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name=f"scheduler-{self.name}")
        self._thread.start()

    def _run(self) -> None:
        while not self._stop_event.wait(max(self.next_delay(self.clock()), 0)):
            try:
                logger.debug(f"Running scheduled job '{self.name}'")
                self.func()
            except Exception as e:
                logger.error(f"Scheduled job '{self.name}' failed: {e}")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        self._thread = None

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


class CampaignScheduler:
    """Schedules and runs campaign publishing and maintenance."""

    def __init__(self, store: CampaignStore, generator: ContentGeneratorProtocol,
                 publisher: PublisherProtocol, clock: Callable[[], datetime] = utcnow,
                 rng: Optional[random.Random] = None):
        """
        Args:
            store: Campaign store
            generator: Text and image generation client
            publisher: Publish-target client
            clock: Source of the current UTC time (naive datetimes)
            rng: Random source for the humanizer
        """
        self.store = store
        self.generator = generator
        self.publisher = publisher
        self.clock = clock
        self.rng = rng or random.Random()
        self.jobs: Dict[str, ScheduledJob] = {}
        self.is_running = False
        self._lifecycle_lock = threading.Lock()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _build_jobs(self) -> Dict[str, ScheduledJob]:
        return {
            "campaign_checks": ScheduledJob(
                "campaign_checks", self.check_and_process_campaigns,
                lambda now: settings.CAMPAIGN_CHECK_INTERVAL_SECONDS, self.clock),
            "daily_maintenance": ScheduledJob(
                "daily_maintenance", self.run_daily_maintenance,
                lambda now: (next_daily_run(now, settings.DAILY_MAINTENANCE_HOUR) - now).total_seconds(),
                self.clock),
            "weekly_cleanup": ScheduledJob(
                "weekly_cleanup", self.run_weekly_cleanup,
                lambda now: (next_weekly_run(now, settings.WEEKLY_CLEANUP_WEEKDAY,
                                             settings.WEEKLY_CLEANUP_HOUR) - now).total_seconds(),
                self.clock),
            "monthly_reset": ScheduledJob(
                "monthly_reset", self.run_monthly_reset,
                lambda now: (next_monthly_run(now, settings.MONTHLY_RESET_DAY,
                                              settings.MONTHLY_RESET_HOUR) - now).total_seconds(),
                self.clock),
        }

    def start(self) -> None:
        """Register and start all jobs. Calling start() on a running scheduler does nothing."""
        with self._lifecycle_lock:
            if self.is_running:
                logger.info("Campaign scheduler is already running")
                return

            logger.info("Starting campaign scheduler...")
            self.jobs = self._build_jobs()
            for job in self.jobs.values():
                job.start()
            self.is_running = True
            logger.info(f"Campaign scheduler started with {len(self.jobs)} jobs")

    def stop(self) -> None:
        """Signal every job to stop and wait for the threads. Safe to call twice."""
        with self._lifecycle_lock:
            if not self.is_running:
                return

            logger.info("Stopping campaign scheduler...")
            for job in self.jobs.values():
                job.stop(settings.JOB_STOP_TIMEOUT_SECONDS)
            self.jobs = {}
            self.is_running = False
            logger.info("Campaign scheduler stopped")

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_running": self.is_running,
            "active_jobs": list(self.jobs.keys()),
            "job_count": len(self.jobs),
        }

    # =========================================================================
    # Campaign processing
    # =========================================================================

    def trigger_campaign_processing(self) -> Dict[str, Any]:
        """
        Run one due-campaign pass synchronously. Never raises.

        Returns:
            Dict: success flag, message and processed/published/failed/skipped counts
        """
        logger.info("Manually triggering campaign processing...")
        try:
            counts = self.check_and_process_campaigns()
            message = (f"Processed {counts['processed']} campaigns: {counts['published']} published, "
                       f"{counts['failed']} failed, {counts['skipped']} skipped")
            return {"success": True, "message": message, **counts}
        except Exception as e:
            logger.error(f"Manual campaign processing failed: {e}")
            return {"success": False, "message": f"Campaign processing failed: {e}",
                    "processed": 0, "published": 0, "failed": 0, "skipped": 0}

    def check_and_process_campaigns(self) -> Dict[str, int]:
        """
        Process the current batch of due campaigns, oldest due first.

        Returns:
            Dict[str, int]: processed/published/failed/skipped counts
        """
        counts = {"processed": 0, OUTCOME_PUBLISHED: 0, OUTCOME_FAILED: 0, OUTCOME_SKIPPED: 0}

        campaigns = self.store.get_due_campaigns(self.clock(), settings.CAMPAIGN_BATCH_SIZE)
        if not campaigns:
            logger.debug("No campaigns ready for processing")
            return counts

        logger.info(f"Found {len(campaigns)} campaigns ready for processing")
        for campaign in campaigns:
            outcome = self.process_campaign(campaign)
            counts["processed"] += 1
            counts[outcome] += 1

        logger.info(f"Campaign pass complete: {counts}")
        return counts

    def process_campaign(self, campaign: Campaign) -> str:
        """
        Process a single due campaign. Never raises.

        Returns:
            str: "published", "failed" or "skipped"
        """
        now = self.clock()
        try:
            return self._process_campaign(campaign, now)
        except Exception as e:
            logger.error(f"Error processing campaign {campaign.id}: {e}")
            self._log_event(campaign, "campaign_error", f"Error processing campaign: {e}", Severity.ERROR)
            self.store.reschedule_campaign(campaign.id, campaign.next_run_after(now), now)
            return OUTCOME_FAILED

    def _process_campaign(self, campaign: Campaign, now: datetime) -> str:
        logger.info(f"Processing campaign {campaign.id}: {campaign.topic}")
        next_run = campaign.next_run_after(now)

        user = self.store.get_user(campaign.user_id)
        if user is None:
            logger.error(f"Campaign {campaign.id} skipped: owner {campaign.user_id} could not be loaded")
            self.store.reschedule_campaign(campaign.id, next_run, now)
            self._log_event(campaign, "owner_lookup_failed",
                            f"Campaign owner {campaign.user_id} could not be loaded", Severity.ERROR,
                            {"next_publish_at": next_run.isoformat()})
            return OUTCOME_SKIPPED

        denial = quota_denial_reason(user)
        if denial:
            logger.info(f"Campaign {campaign.id} skipped: {denial}")
            self.store.reschedule_campaign(campaign.id, next_run, now)
            self._log_event(campaign, "quota_exceeded", f"Post limit reached: {denial}", Severity.INFO,
                            {"next_publish_at": next_run.isoformat()})
            return OUTCOME_SKIPPED

        item = self.store.claim_campaign(campaign, now, next_run)
        if item is None:
            logger.info(f"Campaign {campaign.id} was not claimed, skipping")
            return OUTCOME_SKIPPED

        try:
            self._generate_and_publish(campaign, user, item)
            return OUTCOME_PUBLISHED
        except Exception as e:
            self._fail_item(campaign, item, e)
            return OUTCOME_FAILED

    def _get_site(self, campaign: Campaign):
        site = self.store.get_site(campaign.wordpress_site_id) if campaign.wordpress_site_id else None
        if site is None or not site.is_active:
            raise ConfigurationError(
                f"Publish target site {campaign.wordpress_site_id} is missing or inactive")
        return site

    def _humanize(self, campaign: Campaign, body: str) -> str:
        try:
            return humanize(body, campaign.imperfection_list, self.rng)
        except Exception as e:
            logger.warning(f"Humanizer failed for campaign {campaign.id}, keeping original text: {e}")
            return body

    def _generate_and_publish(self, campaign: Campaign, user: User, item: ContentQueueItem) -> PublishResult:
        site = self._get_site(campaign)

        options = {"title": item.title} if item.title else {}
        content = self.generator.generate_content(campaign, options)
        content.body = self._humanize(campaign, content.body)
        self.store.update_queue_content(item.id, content.title, content.body,
                                        content.keywords, content.content_type)

        content.image_url = self.generator.generate_image(content.image_prompt)
        if content.image_url:
            self.store.update_queue_image(item.id, content.image_url)

        result = self.publisher.publish(site, content)

        if not self.store.complete_queue_item(item.id, result, user.id, item.title_queue_id, self.clock()):
            logger.warning(f"Post {result.post_id} was published but queue item {item.id} could not be completed")
            self._log_event(campaign, "completion_not_recorded",
                            f"Post {result.post_id} published but queue item {item.id} was not completed",
                            Severity.WARN, {"queue_item_id": item.id, "post_id": result.post_id})

        for warning in result.warnings:
            self._log_event(campaign, "publish_warning", warning, Severity.WARN, {"queue_item_id": item.id})

        logger.info(f"Campaign {campaign.id} published post {result.post_id}: {result.post_url}")
        self._log_event(campaign, "content_published", f'Published "{content.title}"', Severity.INFO, {
            "queue_item_id": item.id,
            "post_id": result.post_id,
            "post_url": result.post_url,
            "content_type": content.content_type,
            "featured_media_id": result.featured_media_id,
        })
        return result

    def _fail_item(self, campaign: Campaign, item: ContentQueueItem, error: Exception) -> None:
        if isinstance(error, ConfigurationError):
            event_type = "configuration_error"
        elif isinstance(error, GenerationError):
            event_type = "generation_failed"
        elif isinstance(error, (PublishError, CredentialError)):
            event_type = "publish_failed"
        else:
            event_type = "campaign_error"

        message = str(error) or type(error).__name__
        logger.error(f"Campaign {campaign.id} failed ({event_type}): {message}")
        self.store.fail_queue_item(item.id, message, self.clock())
        self._log_event(campaign, event_type, message, Severity.ERROR, {
            "queue_item_id": item.id,
            "error_type": type(error).__name__,
            "retryable": getattr(error, "retryable", False),
        })

    def _log_event(self, campaign: Campaign, event_type: str, message: str,
                   severity: Severity, metadata: Optional[Dict[str, Any]] = None) -> None:
        self.store.log_event(CampaignEvent(
            event_type=event_type,
            message=message,
            severity=severity,
            campaign_id=campaign.id,
            user_id=campaign.user_id,
            metadata=metadata or {},
            created_at=self.clock(),
        ))

    # =========================================================================
    # Maintenance
    # =========================================================================

    def recover_stuck_items(self) -> int:
        """Fail in-progress items that were started too long ago."""
        now = self.clock()
        cutoff = now - timedelta(hours=settings.STUCK_ITEM_TIMEOUT_HOURS)
        count = self.store.fail_stuck_items(cutoff, now, settings.STUCK_ITEM_ERROR_MESSAGE)
        if count:
            logger.warning(f"Reset {count} stuck queue entries")
        return count

    def cleanup_failed_items(self) -> int:
        cutoff = self.clock() - timedelta(days=settings.FAILED_ITEM_RETENTION_DAYS)
        count = self.store.delete_failed_before(cutoff)
        if count:
            logger.info(f"Cleaned up {count} old failed queue entries")
        return count

    def check_site_health(self) -> int:
        """
        Test the connection of every active site.

        Failures are logged as warn events; sites are not changed.

        Returns:
            int: Number of sites that failed the test
        """
        unhealthy = 0
        for site in self.store.list_active_sites():
            result = self.publisher.test_connection(site)
            if result.ok:
                continue
            unhealthy += 1
            self.store.log_event(CampaignEvent(
                event_type="site_health_check_failed",
                message=f"Connection test failed for {site.site_name}: {result.reason}",
                severity=Severity.WARN,
                user_id=site.user_id,
                metadata={"site_id": site.id, "site_url": site.site_url},
                created_at=self.clock(),
            ))
        if unhealthy:
            logger.warning(f"{unhealthy} publish target sites failed the health check")
        return unhealthy

    def run_daily_maintenance(self) -> Dict[str, int]:
        """Stuck-item recovery, failed-item retention and site health."""
        logger.info("Running daily maintenance tasks...")
        results = {
            "stuck_items_failed": self.recover_stuck_items(),
            "failed_items_deleted": self.cleanup_failed_items(),
            "unhealthy_sites": self.check_site_health(),
        }
        logger.info(f"Daily maintenance completed: {results}")
        return results

    def run_weekly_cleanup(self) -> Dict[str, int]:
        """Completed-item and low-severity log retention."""
        logger.info("Running weekly cleanup tasks...")
        now = self.clock()

        completed = self.store.delete_completed_before(
            now - timedelta(days=settings.COMPLETED_ITEM_RETENTION_DAYS))
        if completed:
            logger.info(f"Archived {completed} old completed queue entries")

        logs = self.store.delete_logs_before(
            now - timedelta(days=settings.LOG_RETENTION_DAYS), settings.LOG_CLEANUP_SEVERITIES)
        if logs:
            logger.info(f"Cleaned up {logs} old log entries")

        results = {"completed_items_deleted": completed, "logs_deleted": logs}
        logger.info(f"Weekly cleanup completed: {results}")
        return results

    def run_monthly_reset(self) -> int:
        """Zero the monthly post counters for tiers with a monthly allowance."""
        count = self.store.reset_period_counters(settings.MONTHLY_RESET_TIERS)
        logger.info(f"Reset monthly post counters for {count} users")
        return count

    def get_queue_stats(self) -> Dict[str, int]:
        since = self.clock() - timedelta(days=settings.QUEUE_STATS_WINDOW_DAYS)
        return self.store.get_queue_stats(since)
