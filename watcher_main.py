"""
Main entry point for the timetable watcher.

This script starts the watcher service that polls WebUntis and notifies
about lesson changes.

Usage:
    python watcher_main.py           # Run as daemon
    python watcher_main.py --test    # Poll at a short fixed interval
    python watcher_main.py --once    # Run a single poll cycle and exit
"""

import asyncio
import sys
from datetime import timedelta
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from utilities.logger import get_logger, setup_logging
from utilities.config import config
from untis.client import UntisClient
from watcher.alerting import AlertManager
from watcher.models import AlertConfig, ChangeSeverity, PollConfig
from watcher.scheduler_service import WatcherService


def build_poll_config() -> PollConfig:
    return PollConfig(
        resource_id=config.untis_resource_id,
        timezone=config.timezone,
        rollover_hour=config.rollover_hour,
        max_consecutive_failures=config.max_consecutive_failures,
        active_poll_interval=config.active_poll_interval,
        idle_poll_interval=config.idle_poll_interval,
        active_start_hour=config.active_start_hour,
        active_end_hour=config.active_end_hour,
        test_poll_interval=config.test_poll_interval
    )


def build_alert_config() -> AlertConfig:
    return AlertConfig(
        enabled=True,
        webhook_url=config.discord_webhook_url,
        min_severity=ChangeSeverity(config.min_severity_for_notify),
        notifications_per_second=config.notifications_per_second
    )


async def main() -> int:
    """Main function to start the watcher service."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file,
        debug=config.debug
    )

    logger = get_logger(__name__)
    logger.info("Starting timetable watcher")

    missing = config.missing_credentials()
    if missing:
        logger.error("Missing required settings", missing=missing)
        return 1

    # Check command line arguments
    test_mode = False
    run_once = False
    if len(sys.argv) > 1:
        if sys.argv[1] == '--test':
            test_mode = True
            logger.info("Running in TEST MODE", interval_seconds=config.test_poll_interval)
        elif sys.argv[1] == '--once':
            run_once = True
            logger.info("Running in RUN ONCE MODE - Single poll cycle")
        else:
            print(f"Unknown argument: {sys.argv[1]}")
            print("Usage: python watcher_main.py [--test|--once]")
            return 1
    else:
        logger.info("Running in DAEMON MODE")

    poll_config = build_poll_config()
    alert_manager = AlertManager(build_alert_config())
    client = UntisClient(
        school=config.untis_school,
        username=config.untis_username,
        password=config.untis_password,
        request_timeout=config.request_timeout,
        retry_attempts=config.retry_attempts,
        retry_delay=config.retry_delay,
        session_max_age=timedelta(seconds=config.session_max_age_seconds)
    )

    logger.info(
        "Watcher service configured",
        school=config.untis_school,
        resource_id=poll_config.resource_id,
        timezone=poll_config.timezone,
        rollover_hour=poll_config.rollover_hour,
        webhook_enabled=config.discord_webhook_url is not None
    )

    service = WatcherService(poll_config, client, alert_manager)
    try:
        return await service.start(test_mode=test_mode, run_once=run_once)
    finally:
        await client.close()
        await alert_manager.close()


def run() -> None:
    try:
        exit_code = asyncio.run(main())
    except KeyboardInterrupt:
        print("Received keyboard interrupt, shutting down...")
        exit_code = 0
    sys.exit(exit_code)


if __name__ == "__main__":
    run()
