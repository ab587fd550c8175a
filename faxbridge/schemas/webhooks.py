"""Request and response payloads of the HTTP surface."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class HealthCheckResponse(BaseModel):
    """Health check response model.

    Attributes:
        status: Service status
        version: Application version
        service: Service name
        delivery_mode: ``live`` or ``mock``
    """

    status: str = Field(
        default="healthy",
        description="Service health status",
        examples=["healthy", "degraded"],
    )
    version: str = Field(..., description="Application version", examples=["0.1.0"])
    service: str = Field(..., description="Service name", examples=["Faxbridge"])
    delivery_mode: str = Field(..., description="Outbound delivery mode", examples=["mock"])


class InboundFaxRequest(BaseModel):
    """One received fax page, as reported by the fax provider."""

    fax_id: str = Field(..., min_length=1, description="Provider id of the inbound fax")
    from_number: str = Field(..., pattern=r"^\+[1-9]\d{1,14}$", description="Sender number in E.164")
    media_url: str = Field(..., min_length=1, description="Where the received page can be downloaded")
    received_at: Optional[datetime] = Field(default=None, description="When the provider received the fax")
    user_id: Optional[UUID] = Field(default=None, description="Known user id, when the caller already resolved it")


class InboundFaxResponse(BaseModel):
    accepted: bool = Field(..., description="Whether the job is queued")
    fax_id: str
    workflow_id: str = Field(..., description="Id of the processing workflow")
    duplicate: bool = Field(default=False, description="True when a workflow for this fax already existed")


class FaxStatusRequest(BaseModel):
    """Terminal delivery status reported for an outbound fax."""

    delivery_id: str = Field(..., min_length=1, description="Transmitter id returned at submission")
    status: str = Field(..., min_length=1, examples=["delivered", "failed"])
    reference_id: Optional[str] = Field(default=None, description="Reference code of the delivered document")
    to_number: Optional[str] = None
    failure_reason: Optional[str] = None
    page_count: Optional[int] = Field(default=None, ge=0)


class FaxStatusResponse(BaseModel):
    received: bool = True
    recorded: bool = Field(..., description="Whether the status was appended to the audit log")
