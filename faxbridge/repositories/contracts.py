"""Narrow persistence contracts the pipeline depends on."""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol
from uuid import UUID

from faxbridge.models.collaborators import ConversationContext, UserRecord
from faxbridge.models.job import AuditEvent


class UserStore(Protocol):
    async def find_or_create_by_phone(self, phone_number: str) -> UserRecord:
        ...

    async def get_by_id(self, user_id: UUID) -> Optional[UserRecord]:
        ...

    async def update_preferences(self, user_id: UUID, preferences: Dict[str, Any]) -> Optional[UserRecord]:
        ...


class ContextStore(Protocol):
    async def get_by_id(self, context_id: UUID) -> Optional[ConversationContext]:
        ...

    async def get_by_reference_id(self, reference_id: str) -> Optional[ConversationContext]:
        ...

    async def find_recent_by_user(self, user_id: UUID, since: datetime) -> List[ConversationContext]:
        ...

    async def save(self, reference_id: str, user_id: UUID, context_data: Dict[str, Any]) -> ConversationContext:
        """Upsert by reference id; raises ReferenceIdConflictError if another user holds it."""


class AuditStore(Protocol):
    async def append(self, event: AuditEvent) -> None:
        ...
