"""Repository for fax user data access operations."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from faxbridge.database.models import FaxUser
from faxbridge.models.collaborators import UserRecord
from faxbridge.repositories.base_repository import BaseRepository
from faxbridge.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _to_record(user: FaxUser) -> UserRecord:
    return UserRecord(
        id=user.id,
        phone_number=user.phone_number,
        name=user.name,
        email_address=user.email_address,
        preferences=dict(user.preferences or {}),
    )


class UserRepository(BaseRepository[FaxUser]):
    """Repository for FaxUser entity operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, FaxUser)

    async def get_by_id(self, user_id: UUID) -> Optional[UserRecord]:
        user = await self._get_row(user_id)
        return _to_record(user) if user else None

    async def get_by_phone(self, phone_number: str) -> Optional[UserRecord]:
        stmt = select(FaxUser).where(FaxUser.phone_number == phone_number)
        result = await self.session.execute(stmt)
        user = result.scalar_one_or_none()
        return _to_record(user) if user else None

    async def find_or_create_by_phone(self, phone_number: str) -> UserRecord:
        """Get the user for a phone number, creating one on first contact.

        Concurrent first faxes from the same number resolve to the same row
        through the unique constraint on ``phone_number``.

        Args:
            phone_number: Sender number in E.164 format

        Returns:
            The existing or newly created user
        """
        existing = await self.get_by_phone(phone_number)
        if existing:
            return existing

        try:
            stmt = (
                insert(FaxUser)
                .values(phone_number=phone_number, preferences={})
                .on_conflict_do_nothing(index_elements=[FaxUser.phone_number])
            )
            await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            LOGGER.error(f"Failed to create user: {str(e)}", exc_info=True, extra={"phone_number": phone_number})
            raise

        user = await self.get_by_phone(phone_number)
        LOGGER.info("Created fax user", extra={"user_id": str(user.id)})
        return user

    async def update_preferences(self, user_id: UUID, preferences: Dict[str, Any]) -> Optional[UserRecord]:
        """Merge ``preferences`` into the stored preferences.

        Returns:
            The updated user or None if not found
        """
        user = await self._get_row(user_id)
        if not user:
            return None

        try:
            user.preferences = {**(user.preferences or {}), **preferences}
            user.updated_at = datetime.now(timezone.utc)
            await self.session.flush()
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            LOGGER.error(f"Failed to update preferences: {str(e)}", exc_info=True, extra={"user_id": str(user_id)})
            raise

        LOGGER.info("Updated user preferences", extra={"user_id": str(user_id), "keys": sorted(preferences)})
        return _to_record(user)
