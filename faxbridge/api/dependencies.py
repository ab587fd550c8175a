"""FastAPI dependency factories."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession
from temporalio.client import Client as TemporalClient

from faxbridge.config import settings
from faxbridge.container import build_audit_service
from faxbridge.database.base import get_async_session
from faxbridge.services.audit_service import AuditService
from faxbridge.temporal.client import get_temporal_client


async def get_audit_service(
    db_session: Annotated[AsyncSession, Depends(get_async_session)]
) -> AuditService:
    """Get an audit service bound to the request's database session.

    Args:
        db_session: Database session from dependency injection

    Returns:
        AuditService: Audit sink for the request
    """
    return build_audit_service(db_session, settings)


async def get_workflow_client() -> TemporalClient:
    """Get the shared Temporal client."""
    return await get_temporal_client()
