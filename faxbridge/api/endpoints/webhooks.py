"""Fax provider webhooks."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from temporalio.client import Client as TemporalClient
from temporalio.exceptions import WorkflowAlreadyStartedError

from faxbridge.api.dependencies import get_audit_service, get_workflow_client
from faxbridge.config import settings
from faxbridge.models.job import PipelineJob
from faxbridge.schemas.webhooks import FaxStatusRequest, FaxStatusResponse, InboundFaxRequest, InboundFaxResponse
from faxbridge.services.audit_service import AuditService
from faxbridge.temporal.workflows import ProcessFaxWorkflow
from faxbridge.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


def workflow_id_for(fax_id: str) -> str:
    return f"fax-{fax_id}"


@router.post(
    "/fax/inbound",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=InboundFaxResponse,
    summary="Accept an inbound fax",
    description="Queues one received fax page for processing. Repeated deliveries of the same fax are accepted once.",
    operation_id="accept_inbound_fax",
)
async def accept_inbound_fax(
    request: InboundFaxRequest,
    client: Annotated[TemporalClient, Depends(get_workflow_client)],
) -> InboundFaxResponse:
    job = PipelineJob(**request.model_dump(exclude_none=True))
    workflow_id = workflow_id_for(job.fax_id)

    try:
        await client.start_workflow(
            ProcessFaxWorkflow.run,
            job.model_dump(mode="json"),
            id=workflow_id,
            task_queue=settings.temporal_task_queue,
        )
    except WorkflowAlreadyStartedError:
        LOGGER.info("Inbound fax already queued", extra={"fax_id": job.fax_id, "workflow_id": workflow_id})
        return InboundFaxResponse(accepted=True, fax_id=job.fax_id, workflow_id=workflow_id, duplicate=True)
    except Exception as e:
        LOGGER.error(
            f"Failed to queue inbound fax: {str(e)}",
            exc_info=True,
            extra={"fax_id": job.fax_id},
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Fax processing is temporarily unavailable",
        )

    LOGGER.info(
        "Inbound fax queued",
        extra={"fax_id": job.fax_id, "from_number": job.from_number, "workflow_id": workflow_id},
    )
    return InboundFaxResponse(accepted=True, fax_id=job.fax_id, workflow_id=workflow_id)


@router.post(
    "/fax/status",
    response_model=FaxStatusResponse,
    summary="Record an outbound delivery status",
    description="Terminal delivery status callback. The status is logged and audited; nothing is resent.",
    operation_id="record_fax_status",
)
async def record_fax_status(
    request: FaxStatusRequest,
    audit: Annotated[AuditService, Depends(get_audit_service)],
) -> FaxStatusResponse:
    details = request.model_dump(exclude_none=True)
    log = LOGGER.warning if request.status.lower() == "failed" else LOGGER.info
    log(f"Outbound fax {request.status}", extra=details)

    recorded = await audit.record(
        "fax_delivery",
        request.reference_id or request.delivery_id,
        f"status_{request.status.lower()}",
        details,
    )
    return FaxStatusResponse(recorded=recorded)
