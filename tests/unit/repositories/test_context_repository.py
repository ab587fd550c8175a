"""Unit tests for the conversation context repository."""

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from faxbridge.core.exceptions import ReferenceIdConflictError
from faxbridge.repositories.context_repository import ConversationContextRepository

REF = "FX-2025-123456"


def _session(row):
    result = MagicMock()
    result.scalar_one_or_none.return_value = row
    session = AsyncMock()
    session.execute.return_value = result
    return session


class TestSave:
    @pytest.mark.asyncio
    async def test_upsert_only_replaces_the_same_users_context(self):
        user_id = uuid.uuid4()
        row = SimpleNamespace(
            id=uuid.uuid4(),
            reference_id=REF,
            user_id=user_id,
            context_data={"kind": "confirmation"},
            created_at=datetime(2025, 6, 10, tzinfo=timezone.utc),
        )
        session = _session(row)

        context = await ConversationContextRepository(session).save(REF, user_id, {"kind": "confirmation"})

        assert context.user_id == user_id
        session.commit.assert_awaited_once()
        stmt = session.execute.await_args.args[0]
        sql = str(stmt.compile(dialect=postgresql.dialect()))
        assert "ON CONFLICT (reference_id) DO UPDATE" in sql
        assert "WHERE conversation_contexts.user_id" in sql

    @pytest.mark.asyncio
    async def test_reference_id_held_by_another_user_is_refused(self):
        session = _session(None)

        with pytest.raises(ReferenceIdConflictError) as exc_info:
            await ConversationContextRepository(session).save(REF, uuid.uuid4(), {"kind": "confirmation"})

        assert exc_info.value.reference_id == REF
        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()
