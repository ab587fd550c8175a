"""Best-effort audit logging.

Audit writes never fail the operation being audited: errors and timeouts
are logged and reported as ``False``.
"""

import asyncio
from typing import Any, Dict, Optional

from faxbridge.models.job import AuditEvent, DeliveryEvent
from faxbridge.repositories.contracts import AuditStore
from faxbridge.utils.logging import get_logger

LOGGER = get_logger(__name__)


class AuditService:
    def __init__(self, store: AuditStore, timeout_seconds: float = 5.0):
        self.store = store
        self.timeout_seconds = timeout_seconds

    async def record(
        self,
        entity_type: str,
        entity_id: str,
        operation: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> bool:
        event = AuditEvent(entity_type=entity_type, entity_id=entity_id, operation=operation, details=details or {})
        return await self.record_event(event)

    async def record_event(self, event: AuditEvent) -> bool:
        """Append an event; returns whether it was stored."""
        try:
            await asyncio.wait_for(self.store.append(event), timeout=self.timeout_seconds)
            return True
        except asyncio.TimeoutError:
            LOGGER.error(
                "Audit append timed out",
                extra={"operation": event.operation, "entity_id": event.entity_id, "timeout": self.timeout_seconds},
            )
        except Exception as e:
            LOGGER.error(
                f"Audit append failed: {str(e)}",
                exc_info=True,
                extra={"operation": event.operation, "entity_id": event.entity_id},
            )
        return False

    async def record_delivery(self, event: DeliveryEvent) -> bool:
        details = event.model_dump(mode="json", exclude={"reference_id", "created_at"}, exclude_none=True)
        return await self.record_event(
            AuditEvent(
                entity_type="fax_delivery",
                entity_id=event.reference_id,
                operation=f"delivery_{event.status}",
                details=details,
                created_at=event.created_at,
            )
        )
