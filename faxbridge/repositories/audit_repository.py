"""Append-only audit log repository."""

from sqlalchemy.ext.asyncio import AsyncSession

from faxbridge.database.models import AuditEventRecord
from faxbridge.models.job import AuditEvent
from faxbridge.repositories.base_repository import BaseRepository


class AuditRepository(BaseRepository[AuditEventRecord]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, AuditEventRecord)

    async def append(self, event: AuditEvent) -> None:
        await self._create_row(
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            operation=event.operation,
            details=event.model_dump(mode="json")["details"],
            created_at=event.created_at,
        )
