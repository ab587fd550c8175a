"""Wiring of services for the worker and the API.

Process-wide components (storage, transmission client, renderer and the
collaborator clients) are built once. Repositories are bound to a database
session, so the pipeline itself is built per job.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from faxbridge.config.settings import Settings
from faxbridge.models.collaborators import ActionAgent, Interpreter
from faxbridge.models.document import RenderGeometry
from faxbridge.pipeline.error_handler import PipelineErrorHandler
from faxbridge.pipeline.fax_pipeline import FaxPipeline
from faxbridge.rendering.images import ImageResolver
from faxbridge.rendering.renderer import DocumentRenderer
from faxbridge.repositories.audit_repository import AuditRepository
from faxbridge.repositories.context_repository import ConversationContextRepository
from faxbridge.repositories.user_repository import UserRepository
from faxbridge.services.audit_service import AuditService
from faxbridge.services.collaborators import RemoteAgent, RemoteInterpreter
from faxbridge.services.context_recovery import ContextRecoveryService
from faxbridge.services.delivery.delivery_service import DeliveryService
from faxbridge.services.delivery.transmission import (
    MockTransmissionClient,
    TelnyxTransmissionClient,
    TransmissionClient,
)
from faxbridge.services.document_builder import DocumentBuilder
from faxbridge.services.storage_service import LocalStorage, StorageBackend, SupabaseStorage
from faxbridge.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class Components:
    storage: StorageBackend
    transmitter: TransmissionClient
    renderer: DocumentRenderer
    builder: DocumentBuilder
    interpreter: Interpreter
    agent: ActionAgent

    def close(self) -> None:
        self.renderer.close()


def build_storage(settings: Settings) -> StorageBackend:
    if settings.storage.supabase_url:
        return SupabaseStorage(
            url=settings.storage.supabase_url,
            service_role_key=settings.storage.service_role_key,
            bucket=settings.storage.bucket,
        )
    LOGGER.info("No object storage configured, using local directory", extra={"root": settings.storage.local_dir})
    return LocalStorage(settings.storage.local_dir)


def build_transmitter(settings: Settings) -> TransmissionClient:
    if settings.is_mock_delivery:
        LOGGER.info("Delivery mode is mock, faxes will not be transmitted")
        return MockTransmissionClient()
    return TelnyxTransmissionClient(
        api_url=settings.delivery.api_url,
        api_key=settings.delivery.api_key,
        connection_id=settings.delivery.connection_id,
        timeout=settings.delivery.request_timeout,
    )


def build_components(settings: Settings) -> Components:
    """Build the process-wide components from settings."""
    return Components(
        storage=build_storage(settings),
        transmitter=build_transmitter(settings),
        renderer=DocumentRenderer(
            geometry=RenderGeometry.from_settings(settings.render),
            image_resolver=ImageResolver(settings.image),
            max_workers=settings.render.max_workers,
        ),
        builder=DocumentBuilder(support_contact=settings.pipeline.support_contact),
        interpreter=RemoteInterpreter(
            api_key=settings.collaborators.interpreter_api_key,
            base_url=settings.collaborators.interpreter_url,
            timeout=settings.collaborators.timeout,
        ),
        agent=RemoteAgent(
            api_key=settings.collaborators.agent_api_key,
            base_url=settings.collaborators.agent_url,
            timeout=settings.collaborators.timeout,
        ),
    )


def build_audit_service(session: AsyncSession, settings: Settings) -> AuditService:
    return AuditService(AuditRepository(session), timeout_seconds=settings.pipeline.audit_timeout_seconds)


def build_pipeline(
    session: AsyncSession,
    settings: Settings,
    components: Optional[Components] = None,
) -> FaxPipeline:
    """Build a pipeline whose repositories share ``session``."""
    components = components or build_components(settings)
    audit = build_audit_service(session, settings)
    contexts = ConversationContextRepository(session)

    return FaxPipeline(
        storage=components.storage,
        users=UserRepository(session),
        contexts=contexts,
        interpreter=components.interpreter,
        agent=components.agent,
        context_recovery=ContextRecoveryService(
            contexts, audit=audit, window_days=settings.pipeline.context_window_days
        ),
        builder=components.builder,
        renderer=components.renderer,
        delivery=DeliveryService(
            storage=components.storage,
            transmitter=components.transmitter,
            audit=audit,
            from_number=settings.delivery.from_number,
            webhook_url=settings.delivery.webhook_url,
            max_retries=settings.delivery.max_retries,
            base_delay_seconds=settings.delivery.base_delay_seconds,
            presigned_ttl_seconds=settings.storage.presigned_ttl_seconds,
        ),
        audit=audit,
        error_handler=PipelineErrorHandler.from_settings(settings.pipeline, audit),
        network_timeout=settings.pipeline.network_timeout_seconds,
    )
