"""Fax processing workflow.

The workflow only schedules the processing activity by name so that no
non-deterministic module is imported into the workflow sandbox.
"""

from datetime import timedelta
from typing import Any, Dict

from temporalio import workflow
from temporalio.common import RetryPolicy


@workflow.defn
class ProcessFaxWorkflow:
    """Runs the pipeline for one inbound fax."""

    @workflow.run
    async def run(self, job: Dict[str, Any]) -> Dict[str, Any]:
        """Process one inbound fax job.

        Args:
            job: Serialized ``PipelineJob``

        Returns:
            Serialized ``PipelineResult``
        """
        workflow.logger.info(f"Starting fax processing for {job.get('fax_id')}")

        # Stage retries live in the pipeline; a second activity attempt
        # could transmit the response twice.
        result = await workflow.execute_activity(
            "process_fax_job",
            job,
            start_to_close_timeout=timedelta(minutes=15),
            retry_policy=RetryPolicy(maximum_attempts=1),
        )

        workflow.logger.info(
            f"Fax {job.get('fax_id')} finished with success={result.get('success')}"
        )
        return result
