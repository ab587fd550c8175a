"""Links an inbound fax to the conversation it answers.

Recovery is tried in order of reliability: a context the interpreter already
matched, the printed reference code, then recency within a trailing window.
Recovery never fails the job; on any error the interpretation is returned
unchanged.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional
from uuid import UUID

from faxbridge.models.collaborators import (
    ContextRecoveryResult,
    ConversationContext,
    InterpretationResult,
    RecentConversation,
)
from faxbridge.repositories.contracts import ContextStore
from faxbridge.services.audit_service import AuditService
from faxbridge.utils.logging import get_logger
from faxbridge.utils.reference_ids import extract_reference_id

LOGGER = get_logger(__name__)

REFERENCE_ID_CONFIDENCE = 0.95
TEMPORAL_PROXIMITY_CONFIDENCE = 0.7
LOW_CONFIDENCE_THRESHOLD = 0.7
REPLY_INTENT = "reply"
MAX_LISTED_CONVERSATIONS = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def summarize_context(context: ConversationContext, now: datetime) -> RecentConversation:
    data = context.context_data or {}
    topic = data.get("topic") or data.get("kind") or "Previous request"
    created_at = context.created_at if context.created_at.tzinfo else context.created_at.replace(tzinfo=timezone.utc)
    return RecentConversation(
        context_id=context.id,
        reference_id=context.reference_id,
        topic=str(topic),
        days_ago=max(0, (now - created_at).days),
    )


def build_disambiguation_question(conversations: List[RecentConversation]) -> str:
    """Question listing the candidate conversations, asking for the reference code."""
    lines = ["We received your fax but could not tell which request it answers. Recent conversations:", ""]
    for conversation in conversations:
        if conversation.days_ago == 0:
            when = "today"
        elif conversation.days_ago == 1:
            when = "yesterday"
        else:
            when = f"{conversation.days_ago} days ago"
        lines.append(f"- {conversation.topic} ({when}) Ref: {conversation.reference_id}")
    lines.append("")
    lines.append("Please write the reference code (Ref: FX-...) of the request you are answering and fax it back.")
    return "\n".join(lines)


class ContextRecoveryService:
    """Attaches a ``ConversationContext`` to an interpretation when one can be found.

    Args:
        contexts: Conversation context store
        audit: Optional audit sink for recovery outcomes
        window_days: Trailing window for recency matching
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        contexts: ContextStore,
        audit: Optional[AuditService] = None,
        window_days: int = 7,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.contexts = contexts
        self.audit = audit
        self.window = timedelta(days=window_days)
        self._clock = clock

    async def recover(
        self,
        interpretation: InterpretationResult,
        user_id: UUID,
        job_id: Optional[str] = None,
    ) -> InterpretationResult:
        """Return a copy of ``interpretation`` with context recovery applied."""
        try:
            result = await self._recover(interpretation, user_id)
        except Exception as e:
            LOGGER.warning(
                f"Context recovery failed, continuing without context: {str(e)}",
                exc_info=True,
                extra={"user_id": str(user_id), "job_id": job_id},
            )
            return interpretation

        if self.audit is not None and (result.context is not None or result.requires_clarification):
            await self._audit(result, user_id, job_id)
        return result

    async def _recover(self, interpretation: InterpretationResult, user_id: UUID) -> InterpretationResult:
        existing = interpretation.context_recovery
        if existing is not None and existing.matched_context_id is not None:
            context = await self.contexts.get_by_id(existing.matched_context_id)
            if context is not None and context.user_id == user_id:
                return interpretation.model_copy(update={"context": context})

        reference_id = interpretation.reference_id or extract_reference_id(interpretation.extracted_text)
        if reference_id:
            context = await self.contexts.get_by_reference_id(reference_id)
            if context is not None and context.user_id == user_id:
                return interpretation.model_copy(
                    update={
                        "reference_id": reference_id,
                        "context": context,
                        "context_recovery": ContextRecoveryResult(
                            method="reference_id",
                            confidence=REFERENCE_ID_CONFIDENCE,
                            matched_context_id=context.id,
                        ),
                    }
                )

        if interpretation.intent != REPLY_INTENT and interpretation.confidence >= LOW_CONFIDENCE_THRESHOLD:
            return interpretation

        now = self._clock()
        candidates = await self.contexts.find_recent_by_user(user_id, now - self.window)

        if len(candidates) == 1:
            context = candidates[0]
            return interpretation.model_copy(
                update={
                    "context": context,
                    "context_recovery": ContextRecoveryResult(
                        method="temporal_proximity",
                        confidence=TEMPORAL_PROXIMITY_CONFIDENCE,
                        matched_context_id=context.id,
                    ),
                }
            )

        if len(candidates) >= 2:
            conversations = [summarize_context(context, now) for context in candidates[:MAX_LISTED_CONVERSATIONS]]
            return interpretation.model_copy(
                update={
                    "context": None,
                    "requires_clarification": True,
                    "clarification_question": build_disambiguation_question(conversations),
                    "recent_conversations": conversations,
                    "context_recovery": ContextRecoveryResult(
                        method="none",
                        confidence=0.0,
                        ambiguous_matches=[context.id for context in candidates],
                    ),
                }
            )

        return interpretation

    async def _audit(self, result: InterpretationResult, user_id: UUID, job_id: Optional[str]) -> None:
        recovery = result.context_recovery or ContextRecoveryResult()
        operation = "context_ambiguous" if result.requires_clarification else "context_recovered"
        await self.audit.record(
            entity_type="context_recovery",
            entity_id=str(user_id),
            operation=operation,
            details={
                "method": recovery.method,
                "confidence": recovery.confidence,
                "matched_context_id": str(recovery.matched_context_id) if recovery.matched_context_id else None,
                "ambiguous_matches": len(recovery.ambiguous_matches),
                "job_id": job_id,
            },
        )
