"""
AutoPublisher Application

This is the main entry point for the AutoPublisher campaign service.
By default it starts the campaign scheduler and runs until interrupted;
the one-shot modes run a single processing pass, maintenance sweep,
cleanup sweep or queue report and exit.
"""

import sys
import time
import argparse
import logging
from datetime import timedelta
from typing import Optional

import pandas as pd

from config import settings
from config.validators import validate_settings, get_config_summary
from utils.logger import get_logger, setup_file_logging
from data.database import db
from data.protocols import CampaignStore
from services.ai_service import ContentGenerator
from services.protocols import ContentGeneratorProtocol, PublisherProtocol
from services.scheduler import CampaignScheduler
from services.wordpress_service import WordPressPublisher

# Set up logging
logger = get_logger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURES = 1
EXIT_ERROR = 2


class AutoPublisher:
    """
    Main application class for AutoPublisher.

    Wires the store, the content generator and the WordPress publisher into
    a campaign scheduler and exposes the command line modes.
    """

    def __init__(self, store: Optional[CampaignStore] = None,
                 generator: Optional[ContentGeneratorProtocol] = None,
                 publisher: Optional[PublisherProtocol] = None):
        """Initialize the application. Raises ConfigurationError on invalid settings."""
        validate_settings()

        self.store = store or db
        self.generator = generator or ContentGenerator()
        self.publisher = publisher or WordPressPublisher()
        self.scheduler = CampaignScheduler(self.store, self.generator, self.publisher)

    def run_once(self) -> bool:
        """
        Process the currently due campaigns once.

        Returns:
            bool: True if the pass ran and no campaign failed
        """
        result = self.scheduler.trigger_campaign_processing()
        logger.info(result["message"])
        return result["success"] and result["failed"] == 0

    def run_maintenance(self) -> bool:
        results = self.scheduler.run_daily_maintenance()
        return results["unhealthy_sites"] == 0

    def run_cleanup(self) -> bool:
        self.scheduler.run_weekly_cleanup()
        return True

    def report(self) -> bool:
        """Log queue statistics and a per-campaign activity breakdown."""
        stats = self.scheduler.get_queue_stats()
        logger.info(f"Queue statistics (last {settings.QUEUE_STATS_WINDOW_DAYS} days): {stats}")

        if not hasattr(self.store, "get_recent_activity"):
            return True

        since = self.scheduler.clock() - timedelta(days=settings.QUEUE_STATS_WINDOW_DAYS)
        activity = self.store.get_recent_activity(since)
        if activity is None:
            logger.error("Could not load recent activity")
            return False
        if activity.empty:
            logger.info("No queue activity in the reporting window")
            return True

        breakdown = pd.crosstab(activity["topic"], activity["status"])
        logger.info(f"Activity by campaign:\n{breakdown.to_string()}")

        failures = activity[activity["status"] == "failed"]
        if not failures.empty:
            reasons = failures["error_message"].fillna("Unknown error").value_counts()
            logger.info(f"Failure reasons:\n{reasons.to_string()}")
        return True

    def run_forever(self, poll_seconds: float = 1.0) -> bool:
        """Run the scheduler until interrupted."""
        self.scheduler.start()
        logger.info(f"Scheduler status: {self.scheduler.get_status()}")
        try:
            while self.scheduler.is_running:
                time.sleep(poll_seconds)
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down")
        finally:
            self.scheduler.stop()
        return True


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='AutoPublisher campaign scheduler')
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument('--run-once', action='store_true', help='Process due campaigns once and exit')
    mode.add_argument('--maintenance', action='store_true',
                      help='Run the daily maintenance sweep (stuck items, failed items, site health) and exit')
    mode.add_argument('--cleanup', action='store_true',
                      help='Run the weekly cleanup sweep (completed items, old logs) and exit')
    mode.add_argument('--report', action='store_true', help='Log queue statistics and exit')
    parser.add_argument('--log-file', type=str, default='autopublisher.log', help='Log file path')
    parser.add_argument('--log-level', type=str, choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        default='INFO', help='Logging level')
    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point for the application."""
    # Parse command line arguments
    args = parse_arguments(argv)

    # Set up logging
    log_level = getattr(logging, args.log_level)
    setup_file_logging(args.log_file, log_level)

    logger.info("Starting AutoPublisher")

    try:
        app = AutoPublisher()
        logger.info(f"Configuration: {get_config_summary()}")

        if args.run_once:
            success = app.run_once()
        elif args.maintenance:
            success = app.run_maintenance()
        elif args.cleanup:
            success = app.run_cleanup()
        elif args.report:
            success = app.report()
        else:
            success = app.run_forever()

        # Report status
        if success:
            logger.info("AutoPublisher completed successfully")
            exit_code = EXIT_SUCCESS
        else:
            logger.warning("AutoPublisher completed with warnings or errors")
            exit_code = EXIT_FAILURES

    except Exception as e:
        logger.error(f"Unhandled exception in AutoPublisher: {e}", exc_info=True)
        exit_code = EXIT_ERROR
    finally:
        db.close()

    logger.info(f"AutoPublisher finished with exit code {exit_code}")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
