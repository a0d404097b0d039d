"""
Main entry point for the activation poller with scheduling support.
"""

import asyncio
import logging
import os
import signal
import sys
from typing import List

from dotenv import load_dotenv

# Add project root to PYTHONPATH so imports work when running this script directly
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core.config import ConfigurationError, load_pipelines_config
from core.pipeline_orchestrator import Pipeline, build_pipelines, schedule_pipelines
from core.plugin_loader import list_available, refresh_registry
from core.infra.scheduler import Scheduler

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"


def setup_logging() -> None:
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, None)
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # APScheduler logs every job execution at INFO
    logging.getLogger("apscheduler").setLevel(max(level, logging.WARNING))


async def shutdown(pipelines: List[Pipeline], scheduler: Scheduler) -> None:
    """Cancel future ticks, abandon in-flight calls, release resources."""
    await scheduler.stop()
    for pipeline in pipelines:
        pipeline.poller.stop()
    for pipeline in pipelines:
        await pipeline.close()


async def main() -> int:
    """Validate every pipeline, schedule them and poll until signalled."""
    load_dotenv()
    setup_logging()
    logger = logging.getLogger(__name__)

    logger.info("Starting activation poller...")

    # Discover sinks
    refresh_registry()
    for name in sorted(list_available()):
        logger.debug(f"  - sink available: {name}")

    # Load pipeline configuration
    config_file = os.getenv("PIPELINES_CONFIG", "pipelines.yml")
    pipelines_cfg = load_pipelines_config(config_file)
    if not pipelines_cfg:
        logger.error(f"No pipelines configured in {config_file}. Exiting.")
        return 1

    scheduler = Scheduler(timezone=os.getenv("SCHEDULER_TIMEZONE", "UTC"))

    # Nothing is polled unless every pipeline is valid
    try:
        pipelines = build_pipelines(pipelines_cfg)
        schedule_pipelines(pipelines, scheduler)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    logger.info(f"Loaded {len(pipelines)} pipeline(s)")
    for pipeline in pipelines:
        logger.info(f"  - {pipeline.name}: {pipeline.config.host} ({pipeline.config.trigger!r})")

    # Setup graceful shutdown
    stop_event = asyncio.Event()

    def signal_handler():
        logger.info("Received shutdown signal")
        stop_event.set()

    # Register signal handlers
    for sig in (signal.SIGTERM, signal.SIGINT):
        asyncio.get_running_loop().add_signal_handler(sig, signal_handler)

    try:
        await scheduler.start()
        await stop_event.wait()
    finally:
        logger.info("Shutting down...")
        await shutdown(pipelines, scheduler)
        logger.info("Shutdown complete")

    return 0


def run_poller_system():
    """Entry point that can be called from other scripts."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run_poller_system()
