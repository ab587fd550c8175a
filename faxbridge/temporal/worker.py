"""Temporal worker for inbound fax processing.

This worker:
- Connects to the configured Temporal server
- Registers the fax workflow and its activity
- Polls the configured task queue
"""

import asyncio

from temporalio.client import Client
from temporalio.worker import Worker

from faxbridge.config import settings
from faxbridge.container import build_components
from faxbridge.database.base import async_session_maker
from faxbridge.temporal.activities import FaxActivities
from faxbridge.temporal.workflows import ProcessFaxWorkflow
from faxbridge.utils.logging import get_logger

logger = get_logger(__name__)

MAX_CONCURRENT_ACTIVITIES = 5
MAX_CONCURRENT_WORKFLOW_TASKS = 10


async def main():
    """Start the Temporal worker."""
    logger.info(f"Connecting to Temporal server at {settings.temporal_target}")

    client = await Client.connect(
        target_host=settings.temporal_target,
        namespace=settings.temporal.namespace,
    )

    logger.info("Successfully connected to Temporal server")

    components = build_components(settings)
    activities = FaxActivities(components, async_session_maker)

    worker = Worker(
        client,
        task_queue=settings.temporal_task_queue,
        workflows=[ProcessFaxWorkflow],
        activities=[activities.process_fax_job],
        max_concurrent_activities=MAX_CONCURRENT_ACTIVITIES,
        max_concurrent_workflow_tasks=MAX_CONCURRENT_WORKFLOW_TASKS,
    )

    logger.info("=" * 60)
    logger.info("Temporal Worker Started Successfully")
    logger.info("=" * 60)
    logger.info(f"Connected to: {settings.temporal_target}")
    logger.info(f"Task Queue: {settings.temporal_task_queue}")
    logger.info(f"Delivery mode: {settings.delivery_mode}")
    logger.info(f"Max Concurrent Activities: {MAX_CONCURRENT_ACTIVITIES}")
    logger.info("=" * 60)

    try:
        await worker.run()
    finally:
        components.close()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Worker stopped by user")
    except Exception as e:
        logger.error(f"Worker failed: {e}", exc_info=True)
        raise
