from faxbridge.repositories.audit_repository import AuditRepository
from faxbridge.repositories.context_repository import ConversationContextRepository
from faxbridge.repositories.contracts import AuditStore, ContextStore, UserStore
from faxbridge.repositories.user_repository import UserRepository

__all__ = [
    "AuditRepository",
    "ConversationContextRepository",
    "UserRepository",
    "AuditStore",
    "ContextStore",
    "UserStore",
]
