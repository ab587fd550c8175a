"""Repository for conversation contexts."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from faxbridge.core.exceptions import ReferenceIdConflictError
from faxbridge.database.models import ConversationContextRecord
from faxbridge.models.collaborators import ConversationContext
from faxbridge.repositories.base_repository import BaseRepository
from faxbridge.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _to_context(row: ConversationContextRecord) -> ConversationContext:
    return ConversationContext(
        id=row.id,
        reference_id=row.reference_id,
        user_id=row.user_id,
        context_data=dict(row.context_data or {}),
        created_at=row.created_at,
    )


class ConversationContextRepository(BaseRepository[ConversationContextRecord]):
    """Lookups by id, by reference code and by recency; upsert by reference code."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, ConversationContextRecord)

    async def get_by_id(self, context_id: UUID) -> Optional[ConversationContext]:
        row = await self._get_row(context_id)
        return _to_context(row) if row else None

    async def get_by_reference_id(self, reference_id: str) -> Optional[ConversationContext]:
        stmt = select(ConversationContextRecord).where(ConversationContextRecord.reference_id == reference_id)
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return _to_context(row) if row else None

    async def find_recent_by_user(self, user_id: UUID, since: datetime) -> List[ConversationContext]:
        """Contexts of ``user_id`` created at or after ``since``, newest first."""
        stmt = (
            select(ConversationContextRecord)
            .where(
                ConversationContextRecord.user_id == user_id,
                ConversationContextRecord.created_at >= since,
            )
            .order_by(ConversationContextRecord.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return [_to_context(row) for row in result.scalars().all()]

    async def save(self, reference_id: str, user_id: UUID, context_data: Dict[str, Any]) -> ConversationContext:
        """Insert the context for ``reference_id`` or replace its data if the same user holds it.

        Raises:
            ReferenceIdConflictError: If another user's context holds ``reference_id``
        """
        stmt = (
            insert(ConversationContextRecord)
            .values(reference_id=reference_id, user_id=user_id, context_data=context_data)
            .on_conflict_do_update(
                index_elements=[ConversationContextRecord.reference_id],
                set_={"context_data": context_data},
                where=ConversationContextRecord.user_id == user_id,
            )
            .returning(ConversationContextRecord)
        )
        try:
            result = await self.session.execute(stmt)
            row = result.scalar_one_or_none()
            if row is None:
                await self.session.rollback()
                LOGGER.warning(
                    "Reference id already held by another user",
                    extra={"reference_id": reference_id, "user_id": str(user_id)},
                )
                raise ReferenceIdConflictError(reference_id)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            LOGGER.error(
                f"Failed to save conversation context: {str(e)}",
                exc_info=True,
                extra={"reference_id": reference_id},
            )
            raise

        LOGGER.info("Saved conversation context", extra={"reference_id": reference_id, "context_id": str(row.id)})
        return _to_context(row)
