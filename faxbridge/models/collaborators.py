"""Boundary models and contracts for the external collaborators.

The interpretation model and the action agent live outside this package;
the pipeline only depends on the shapes defined here.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Protocol
from uuid import UUID

from pydantic import BaseModel, Field

RecoveryMethod = Literal["reference_id", "temporal_proximity", "interpreter", "none"]


class ConversationContext(BaseModel):
    """Conversation state persisted for one outbound document."""

    id: UUID
    reference_id: str
    user_id: UUID
    context_data: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class RecentConversation(BaseModel):
    """Summary of a candidate context offered to the user for disambiguation."""

    context_id: UUID
    reference_id: str
    topic: str
    days_ago: int


class ContextRecoveryResult(BaseModel):
    method: RecoveryMethod = "none"
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    matched_context_id: Optional[UUID] = None
    ambiguous_matches: List[UUID] = Field(default_factory=list)


class InterpretationResult(BaseModel):
    """Structured intent produced by the interpretation collaborator."""

    intent: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    extracted_text: str = ""
    parameters: Dict[str, Any] = Field(default_factory=dict)
    reference_id: Optional[str] = None
    requires_clarification: bool = False
    clarification_question: Optional[str] = None
    context_recovery: Optional[ContextRecoveryResult] = None
    context: Optional[ConversationContext] = None
    recent_conversations: List[RecentConversation] = Field(default_factory=list)


class AgentStep(BaseModel):
    tool_name: str
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Any = None
    success: bool = True
    error: Optional[str] = None


class DocumentSpec(BaseModel):
    """What the agent wants printed; ``data`` is interpreted per ``kind``."""

    kind: str
    reference_id: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class AgentResponse(BaseModel):
    success: bool
    steps: List[AgentStep] = Field(default_factory=list)
    final_result: Any = None
    response_type: str = "completion"
    document_spec: DocumentSpec
    user_message: str = ""


class UserRecord(BaseModel):
    """The slice of a user account the core reads."""

    id: UUID
    phone_number: str
    name: Optional[str] = None
    email_address: Optional[str] = None
    preferences: Dict[str, Any] = Field(default_factory=dict)


class Interpreter(Protocol):
    async def interpret(self, image_bytes: bytes, user_id: UUID) -> InterpretationResult:
        ...


class ActionAgent(Protocol):
    async def execute(
        self,
        interpretation: InterpretationResult,
        user_id: UUID,
        job_id: str,
        user_name: Optional[str] = None,
    ) -> AgentResponse:
        ...
