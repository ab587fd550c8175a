"""Temporal activity running the fax pipeline."""

from typing import Any, Callable, Dict

from sqlalchemy.ext.asyncio import AsyncSession
from temporalio import activity

from faxbridge.config import settings
from faxbridge.container import Components, build_pipeline
from faxbridge.models.job import PipelineJob
from faxbridge.utils.logging import get_logger

LOGGER = get_logger(__name__)


class FaxActivities:
    """Activities sharing the worker's long-lived components.

    The worker builds the components once, registers the bound
    ``process_fax_job`` and closes the components when it stops.
    """

    def __init__(self, components: Components, session_maker: Callable[[], AsyncSession]):
        self.components = components
        self.session_maker = session_maker

    @activity.defn(name="process_fax_job")
    async def process_fax_job(self, job: Dict[str, Any]) -> Dict[str, Any]:
        """Process one inbound fax and return the serialized ``PipelineResult``."""
        pipeline_job = PipelineJob.model_validate(job)
        LOGGER.info(
            f"Processing fax job: {pipeline_job.fax_id}",
            extra={"fax_id": pipeline_job.fax_id, "from_number": pipeline_job.from_number},
        )

        async with self.session_maker() as session:
            pipeline = build_pipeline(session, settings, self.components)
            result = await pipeline.process(pipeline_job)

        if not result.success:
            LOGGER.warning(
                f"Fax job {pipeline_job.fax_id} failed at {result.failed_stage}: {result.error}",
                extra={"fax_id": pipeline_job.fax_id},
            )
        return result.model_dump(mode="json", exclude={"document"})
