"""Domain models: content blocks, documents, jobs and collaborator contracts."""

from faxbridge.models.content import (
    BarcodeBlock,
    BlankSpaceBlock,
    ContentBlock,
    FooterBlock,
    HeaderBlock,
    ImageBlock,
    Option,
    OptionListBlock,
    TextBlock,
    parse_block,
)
from faxbridge.models.document import Document, DocumentDraft, Margins, Page, RenderGeometry
from faxbridge.models.collaborators import (
    AgentResponse,
    AgentStep,
    ContextRecoveryResult,
    ConversationContext,
    DocumentSpec,
    InterpretationResult,
    RecentConversation,
    UserRecord,
)
from faxbridge.models.job import AuditEvent, DeliveryEvent, PipelineJob, PipelineResult

__all__ = [
    "AgentResponse",
    "AgentStep",
    "AuditEvent",
    "BarcodeBlock",
    "BlankSpaceBlock",
    "ContentBlock",
    "ContextRecoveryResult",
    "ConversationContext",
    "DeliveryEvent",
    "Document",
    "DocumentDraft",
    "DocumentSpec",
    "FooterBlock",
    "HeaderBlock",
    "ImageBlock",
    "InterpretationResult",
    "Margins",
    "Option",
    "OptionListBlock",
    "Page",
    "PipelineJob",
    "PipelineResult",
    "RecentConversation",
    "RenderGeometry",
    "TextBlock",
    "UserRecord",
    "parse_block",
]
