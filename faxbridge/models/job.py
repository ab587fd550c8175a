"""Pipeline job, result and audit event models."""

from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from faxbridge.models.collaborators import InterpretationResult
from faxbridge.models.document import Document


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PipelineJob(BaseModel):
    """One inbound fax page, consumed exactly once by the pipeline."""

    fax_id: str = Field(..., min_length=1)
    from_number: str = Field(..., pattern=r"^\+[1-9]\d{1,14}$", description="E.164")
    media_url: str
    received_at: datetime = Field(default_factory=_utcnow)
    user_id: Optional[UUID] = None


class PipelineResult(BaseModel):
    success: bool
    job_id: str
    reference_id: Optional[str] = None
    delivery_id: Optional[str] = None
    failed_stage: Optional[str] = None
    error: Optional[str] = None
    interpretation: Optional[InterpretationResult] = None
    document: Optional[Document] = None


DeliveryStatus = Literal["attempting", "queued", "retry", "failed_client", "failed_final"]


class DeliveryEvent(BaseModel):
    """Immutable record of one delivery attempt outcome."""

    model_config = ConfigDict(frozen=True)

    reference_id: str
    to_number: str
    status: DeliveryStatus
    attempt: int = Field(..., ge=1)
    job_id: Optional[str] = None
    media_url: Optional[str] = None
    delivery_id: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)


class AuditEvent(BaseModel):
    """Append-only audit log entry."""

    model_config = ConfigDict(frozen=True)

    entity_type: str
    entity_id: str
    operation: str
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)
