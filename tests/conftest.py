"""Pytest configuration and shared fixtures."""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

import pytest
from fastapi.testclient import TestClient

from faxbridge.core.exceptions import ReferenceIdConflictError
from faxbridge.main import app
from faxbridge.models.collaborators import ConversationContext, UserRecord
from faxbridge.models.document import Margins, RenderGeometry
from faxbridge.models.job import AuditEvent
from faxbridge.services.audit_service import AuditService


class InMemoryUserStore:
    def __init__(self):
        self.users: Dict[UUID, UserRecord] = {}

    async def find_or_create_by_phone(self, phone_number: str) -> UserRecord:
        for user in self.users.values():
            if user.phone_number == phone_number:
                return user
        user = UserRecord(id=uuid.uuid4(), phone_number=phone_number)
        self.users[user.id] = user
        return user

    async def get_by_id(self, user_id: UUID) -> Optional[UserRecord]:
        return self.users.get(user_id)

    async def update_preferences(self, user_id: UUID, preferences: Dict[str, Any]) -> Optional[UserRecord]:
        user = self.users.get(user_id)
        if user is None:
            return None
        updated = user.model_copy(update={"preferences": {**user.preferences, **preferences}})
        self.users[user_id] = updated
        return updated

    def add(self, phone_number: str, **fields) -> UserRecord:
        user = UserRecord(id=uuid.uuid4(), phone_number=phone_number, **fields)
        self.users[user.id] = user
        return user


class InMemoryContextStore:
    def __init__(self):
        self.contexts: Dict[str, ConversationContext] = {}

    async def get_by_id(self, context_id: UUID) -> Optional[ConversationContext]:
        for context in self.contexts.values():
            if context.id == context_id:
                return context
        return None

    async def get_by_reference_id(self, reference_id: str) -> Optional[ConversationContext]:
        return self.contexts.get(reference_id)

    async def find_recent_by_user(self, user_id: UUID, since: datetime) -> List[ConversationContext]:
        matches = [c for c in self.contexts.values() if c.user_id == user_id and c.created_at >= since]
        return sorted(matches, key=lambda c: c.created_at, reverse=True)

    async def save(self, reference_id: str, user_id: UUID, context_data: Dict[str, Any]) -> ConversationContext:
        existing = self.contexts.get(reference_id)
        if existing is not None and existing.user_id != user_id:
            raise ReferenceIdConflictError(reference_id)
        context = ConversationContext(
            id=existing.id if existing else uuid.uuid4(),
            reference_id=reference_id,
            user_id=user_id,
            context_data=context_data,
            created_at=existing.created_at if existing else datetime.now(timezone.utc),
        )
        self.contexts[reference_id] = context
        return context

    def add(self, reference_id: str, user_id: UUID, created_at: datetime, **context_data) -> ConversationContext:
        context = ConversationContext(
            id=uuid.uuid4(),
            reference_id=reference_id,
            user_id=user_id,
            context_data=context_data,
            created_at=created_at,
        )
        self.contexts[reference_id] = context
        return context


class InMemoryAuditStore:
    def __init__(self):
        self.events: List[AuditEvent] = []

    async def append(self, event: AuditEvent) -> None:
        self.events.append(event)

    def operations(self, entity_type: Optional[str] = None) -> List[str]:
        return [e.operation for e in self.events if entity_type is None or e.entity_type == entity_type]


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest.fixture
def user_store() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture
def context_store() -> InMemoryContextStore:
    return InMemoryContextStore()


@pytest.fixture
def audit_store() -> InMemoryAuditStore:
    return InMemoryAuditStore()


@pytest.fixture
def audit_service(audit_store) -> AuditService:
    return AuditService(audit_store, timeout_seconds=1.0)


@pytest.fixture
def geometry() -> RenderGeometry:
    """Default fine-resolution fax page."""
    return RenderGeometry()


@pytest.fixture
def small_geometry() -> RenderGeometry:
    """A small page that keeps rendering tests fast."""
    return RenderGeometry(
        width=600,
        height=800,
        dpi=72,
        margins=Margins(top=20, bottom=20, left=20, right=20),
        default_font_size=20,
        footer_reserve=60,
    )


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2025, 6, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def sample_png() -> bytes:
    """A small grayscale PNG."""
    from io import BytesIO

    from PIL import Image

    buffer = BytesIO()
    Image.new("L", (200, 100), 128).save(buffer, format="PNG")
    return buffer.getvalue()
