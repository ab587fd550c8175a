"""Unit tests for the fax processing activity and its worker."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from faxbridge.models.job import PipelineResult
from faxbridge.temporal import activities, worker
from faxbridge.temporal.activities import FaxActivities
from faxbridge.temporal.workflows import ProcessFaxWorkflow

JOB = {"fax_id": "tx-42", "from_number": "+819012345678", "media_url": "https://media.example.com/tx-42"}


@pytest.fixture
def session_maker():
    session = MagicMock()
    maker = MagicMock()
    maker.return_value.__aenter__ = AsyncMock(return_value=session)
    maker.return_value.__aexit__ = AsyncMock(return_value=False)
    return maker, session


class TestProcessFaxJob:
    @pytest.mark.asyncio
    async def test_runs_pipeline_in_a_session(self, session_maker):
        maker, session = session_maker
        components = MagicMock()
        pipeline = MagicMock()
        pipeline.process = AsyncMock(
            return_value=PipelineResult(success=True, job_id="tx-42", reference_id="FX-2025-000042", delivery_id="d-1")
        )

        with patch.object(activities, "build_pipeline", return_value=pipeline) as build:
            result = await FaxActivities(components, maker).process_fax_job(JOB)

        assert build.call_args.args[0] is session
        assert build.call_args.args[2] is components
        job = pipeline.process.await_args.args[0]
        assert job.fax_id == "tx-42"
        assert result["success"] is True
        assert result["reference_id"] == "FX-2025-000042"
        assert "document" not in result
        maker.return_value.__aexit__.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_job_is_returned_not_raised(self, session_maker):
        maker, _ = session_maker
        pipeline = MagicMock()
        pipeline.process = AsyncMock(
            return_value=PipelineResult(success=False, job_id="tx-42", failed_stage="interpret", error="down")
        )

        with patch.object(activities, "build_pipeline", return_value=pipeline):
            result = await FaxActivities(MagicMock(), maker).process_fax_job(JOB)

        assert result["success"] is False
        assert result["failed_stage"] == "interpret"

    @pytest.mark.asyncio
    async def test_instances_do_not_share_components(self, session_maker):
        maker, _ = session_maker
        first, second = MagicMock(), MagicMock()
        pipeline = MagicMock()
        pipeline.process = AsyncMock(return_value=PipelineResult(success=True, job_id="tx-42"))

        with patch.object(activities, "build_pipeline", return_value=pipeline) as build:
            await FaxActivities(first, maker).process_fax_job(JOB)
            await FaxActivities(second, maker).process_fax_job(JOB)

        assert [call.args[2] for call in build.call_args_list] == [first, second]


class TestWorkerMain:
    @pytest.mark.asyncio
    async def test_components_are_built_once_and_closed_on_exit(self):
        components = MagicMock()
        instance = MagicMock()
        instance.run = AsyncMock(side_effect=RuntimeError("shutdown"))

        with patch.object(worker.Client, "connect", AsyncMock()), patch.object(
            worker, "build_components", return_value=components
        ) as build, patch.object(worker, "Worker", return_value=instance) as worker_cls:
            with pytest.raises(RuntimeError):
                await worker.main()

        build.assert_called_once_with(worker.settings)
        registered = worker_cls.call_args.kwargs["activities"]
        assert len(registered) == 1
        assert registered[0].__self__.components is components
        components.close.assert_called_once()


class TestProcessFaxWorkflow:
    @pytest.mark.asyncio
    async def test_activity_runs_once_without_retries(self):
        execute = AsyncMock(return_value={"success": True})

        with patch("faxbridge.temporal.workflows.workflow.execute_activity", execute), patch(
            "faxbridge.temporal.workflows.workflow.logger"
        ):
            result = await ProcessFaxWorkflow().run(JOB)

        assert result == {"success": True}
        assert execute.await_args.args == ("process_fax_job", JOB)
        assert execute.await_args.kwargs["retry_policy"].maximum_attempts == 1
