"""Inbound fax processing pipeline.

One job is one inbound page. Stages run strictly in order:

    download_image -> resolve_user -> interpret -> recover_context ->
    invoke_agent -> build_document -> render_and_paginate ->
    upload_and_deliver -> post_actions

Each stage is attempted through ``_run_stage``, which consults the
``PipelineErrorHandler`` on failure. A terminal failure ends the job with
``success=False``; no fallback fax is sent.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx

from faxbridge.core.exceptions import InputFetchError, PipelineError, PostActionError, RenderError, StorageError
from faxbridge.models.collaborators import ActionAgent, AgentResponse, InterpretationResult, Interpreter, UserRecord
from faxbridge.models.document import DocumentDraft
from faxbridge.models.job import PipelineJob, PipelineResult
from faxbridge.pipeline.error_handler import ErrorAction, PipelineErrorHandler, Stage
from faxbridge.rendering.renderer import DocumentRenderer, RenderedDocument
from faxbridge.repositories.contracts import ContextStore, UserStore
from faxbridge.services.audit_service import AuditService
from faxbridge.services.context_recovery import ContextRecoveryService
from faxbridge.services.delivery.delivery_service import DeliveryReceipt, DeliveryService
from faxbridge.services.document_builder import WELCOME_OPTIONS, DocumentBuilder
from faxbridge.services.storage_service import StorageBackend
from faxbridge.utils.logging import get_logger
from faxbridge.utils.reference_ids import generate_reference_id

LOGGER = get_logger(__name__)

INBOUND_CONTENT_TYPES = {
    "application/pdf": "pdf",
    "image/tiff": "tiff",
    "image/png": "png",
    "image/jpeg": "jpg",
}

MAX_REFERENCE_ID_ATTEMPTS = 5

_SIGNATURES = {
    b"%PDF": "pdf",
    b"II*\x00": "tiff",
    b"MM\x00*": "tiff",
    b"\x89PNG": "png",
    b"\xff\xd8\xff": "jpg",
}


def sniff_media_type(data: bytes) -> Optional[str]:
    """File extension for known fax media signatures, or None."""
    for signature, extension in _SIGNATURES.items():
        if data.startswith(signature):
            return extension
    return None


class StageFailure(Exception):
    """Raised inside the pipeline when a stage ends the job."""

    def __init__(self, stage: Stage, error: PipelineError):
        super().__init__(str(error))
        self.stage = stage
        self.error = error


class FaxPipeline:
    """Runs one inbound fax from media download to response delivery.

    Args:
        storage: Object storage for inbound media
        users: User store
        contexts: Conversation context store
        interpreter: Interpretation collaborator
        agent: Action agent collaborator
        context_recovery: Links the fax to an earlier conversation
        builder: Builds document drafts from agent responses
        renderer: Paginates and renders drafts to PDF
        delivery: Uploads and transmits PDFs
        audit: Audit sink
        error_handler: Retry and failure policy
        network_timeout: Upper bound for each network-bound stage attempt
        http_client_factory: Builds the client used to fetch inbound media
        sleep: Awaitable sleep used between retries
    """

    def __init__(
        self,
        storage: StorageBackend,
        users: UserStore,
        contexts: ContextStore,
        interpreter: Interpreter,
        agent: ActionAgent,
        context_recovery: ContextRecoveryService,
        builder: DocumentBuilder,
        renderer: DocumentRenderer,
        delivery: DeliveryService,
        audit: AuditService,
        error_handler: PipelineErrorHandler,
        network_timeout: float = 120.0,
        http_client_factory: Callable[..., httpx.AsyncClient] = httpx.AsyncClient,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.storage = storage
        self.users = users
        self.contexts = contexts
        self.interpreter = interpreter
        self.agent = agent
        self.context_recovery = context_recovery
        self.builder = builder
        self.renderer = renderer
        self.delivery = delivery
        self.audit = audit
        self.error_handler = error_handler
        self.network_timeout = network_timeout
        self._http_client_factory = http_client_factory
        self._sleep = sleep

    async def process(self, job: PipelineJob) -> PipelineResult:
        """Process one inbound fax job.

        Returns:
            The outcome; failures are reported, never raised
        """
        LOGGER.info(
            "Processing inbound fax",
            extra={"fax_id": job.fax_id, "from_number": job.from_number, "media_url": job.media_url},
        )
        interpretation: Optional[InterpretationResult] = None
        reference_id: Optional[str] = None

        try:
            image = await self._run_stage(Stage.DOWNLOAD_IMAGE, job, lambda: self._download_image(job), network=True)
            user = await self._run_stage(Stage.RESOLVE_USER, job, lambda: self._resolve_user(job))
            interpretation = await self._run_stage(
                Stage.INTERPRET, job, lambda: self.interpreter.interpret(image, user.id), network=True
            )

            recovered = await self._run_stage(
                Stage.RECOVER_CONTEXT,
                job,
                lambda: self.context_recovery.recover(interpretation, user.id, job.fax_id),
            )
            if recovered is not None:
                interpretation = recovered

            response: AgentResponse = await self._run_stage(
                Stage.INVOKE_AGENT,
                job,
                lambda: self.agent.execute(interpretation, user.id, job.fax_id, user.name),
                network=True,
            )
            if not response.success:
                LOGGER.warning(
                    "Agent reported an unsuccessful run, delivering its document anyway",
                    extra={"fax_id": job.fax_id, "document_kind": response.document_spec.kind},
                )

            draft: DocumentDraft = await self._run_stage(
                Stage.BUILD_DOCUMENT, job, lambda: self._build_document(response, interpretation, user)
            )
            reference_id = draft.reference_id

            rendered: RenderedDocument = await self._run_stage(
                Stage.RENDER_AND_PAGINATE, job, lambda: self.renderer.render_draft(draft)
            )
            receipt: DeliveryReceipt = await self._run_stage(
                Stage.UPLOAD_AND_DELIVER,
                job,
                lambda: self._deliver_response(job, user, interpretation, draft, rendered),
                network=True,
            )

            await self._run_stage(Stage.POST_ACTIONS, job, lambda: self._post_actions(job, user, interpretation))

        except StageFailure as failure:
            return PipelineResult(
                success=False,
                job_id=job.fax_id,
                reference_id=reference_id,
                failed_stage=failure.stage.value,
                error=str(failure.error),
                interpretation=interpretation,
            )

        await self.audit.record(
            "fax_job",
            job.fax_id,
            "processing_completed",
            {"reference_id": reference_id, "delivery_id": receipt.delivery_id, "page_count": rendered.page_count},
        )
        LOGGER.info(
            "Fax processed",
            extra={"fax_id": job.fax_id, "reference_id": reference_id, "delivery_id": receipt.delivery_id},
        )
        return PipelineResult(
            success=True,
            job_id=job.fax_id,
            reference_id=reference_id,
            delivery_id=receipt.delivery_id,
            interpretation=interpretation,
            document=rendered.document,
        )

    async def _run_stage(
        self,
        stage: Stage,
        job: PipelineJob,
        operation: Callable[[], Awaitable[Any]],
        network: bool = False,
    ) -> Any:
        """Run one stage with the error handler's retry policy.

        Returns:
            The stage result, or None if the stage was skipped

        Raises:
            StageFailure: If the failure is terminal
        """
        attempt = 1
        while True:
            try:
                if network:
                    return await asyncio.wait_for(operation(), timeout=self.network_timeout)
                return await operation()
            except Exception as e:
                decision = await self.error_handler.handle(stage, e, attempt, job)

            if decision.action == ErrorAction.RETRY:
                await self._sleep(decision.delay)
                attempt += 1
                continue
            if decision.action == ErrorAction.SKIP:
                return None
            raise StageFailure(stage, decision.error)

    async def _download_image(self, job: PipelineJob) -> bytes:
        """Fetch the inbound media once; later attempts reuse the stored copy."""
        for extension in dict.fromkeys(INBOUND_CONTENT_TYPES.values()):
            key = f"inbound/{job.fax_id}.{extension}"
            stored = await self.storage.get(key)
            if stored:
                LOGGER.info("Reusing stored inbound media", extra={"fax_id": job.fax_id, "key": key})
                return stored

        try:
            async with self._http_client_factory(timeout=self.network_timeout, follow_redirects=True) as client:
                response = await client.get(job.media_url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise InputFetchError(f"Inbound media download failed: {str(e)}", original_error=e)

        data = response.content
        if not data:
            raise InputFetchError("Inbound media is empty")

        content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        extension = sniff_media_type(data) or INBOUND_CONTENT_TYPES.get(content_type)
        if extension is None:
            raise InputFetchError(f"Inbound media is not a supported fax format ({content_type or 'unknown'})")

        try:
            await self.storage.put(f"inbound/{job.fax_id}.{extension}", data, content_type or "application/octet-stream")
        except StorageError as e:
            raise InputFetchError(f"Could not store inbound media: {str(e)}", original_error=e)

        LOGGER.info("Downloaded inbound media", extra={"fax_id": job.fax_id, "size_bytes": len(data)})
        return data

    async def _resolve_user(self, job: PipelineJob) -> UserRecord:
        if job.user_id is not None:
            user = await self.users.get_by_id(job.user_id)
            if user is not None:
                return user
        return await self.users.find_or_create_by_phone(job.from_number)

    async def _build_document(
        self, response: AgentResponse, interpretation: InterpretationResult, user: UserRecord
    ) -> DocumentDraft:
        draft = self.builder.build(response, interpretation)
        if await self._reference_id_available(draft.reference_id, user):
            return draft

        LOGGER.warning(
            "Reference id held by another user, issuing a new one",
            extra={"reference_id": draft.reference_id, "user_id": str(user.id)},
        )
        spec = response.document_spec.model_copy(update={"reference_id": await self._fresh_reference_id(user)})
        return self.builder.build(response.model_copy(update={"document_spec": spec}), interpretation)

    async def _reference_id_available(self, reference_id: str, user: UserRecord) -> bool:
        existing = await self.contexts.get_by_reference_id(reference_id)
        return existing is None or existing.user_id == user.id

    async def _fresh_reference_id(self, user: UserRecord) -> str:
        """A newly generated reference id that no other user's conversation holds."""
        for _ in range(MAX_REFERENCE_ID_ATTEMPTS):
            reference_id = generate_reference_id()
            if await self._reference_id_available(reference_id, user):
                return reference_id
        raise RenderError(f"No unused reference id after {MAX_REFERENCE_ID_ATTEMPTS} attempts")

    async def _deliver_response(
        self,
        job: PipelineJob,
        user: UserRecord,
        interpretation: InterpretationResult,
        draft: DocumentDraft,
        rendered: RenderedDocument,
    ) -> DeliveryReceipt:
        receipt = await self.delivery.deliver(rendered.pdf_bytes, job.from_number, draft.reference_id, job.fax_id)

        context_data: Dict[str, Any] = {
            **draft.context_data,
            "job_id": job.fax_id,
            "delivery_id": receipt.delivery_id,
            "intent": interpretation.intent,
        }
        if interpretation.context is not None:
            context_data["in_reply_to"] = interpretation.context.reference_id
        await self._save_context(draft.reference_id, user, context_data)
        return receipt

    async def _save_context(self, reference_id: str, user: UserRecord, context_data: Dict[str, Any]) -> None:
        # The fax is already out; a failed save must not trigger a resend.
        try:
            await self.contexts.save(reference_id, user.id, context_data)
        except Exception as e:
            LOGGER.error(
                f"Failed to save conversation context: {str(e)}",
                exc_info=True,
                extra={"reference_id": reference_id, "user_id": str(user.id)},
            )
            await self.audit.record("conversation_context", reference_id, "context_save_failed", {"error": str(e)})

    async def _post_actions(self, job: PipelineJob, user: UserRecord, interpretation: InterpretationResult) -> None:
        """Welcome new users and answer help requests made on a welcome document."""
        if not user.preferences.get("welcome_sent"):
            await self._send_welcome(job, user)

        topics = self._requested_help_topics(interpretation)
        for topic in topics:
            await self._send_document(job, user, "help", lambda reference_id: self.builder.help(topic, reference_id))
        if topics:
            await self.audit.record("user", str(user.id), "help_fax_sent", {"topics": topics, "fax_id": job.fax_id})

    async def _send_welcome(self, job: PipelineJob, user: UserRecord) -> None:
        draft, receipt = await self._send_document(
            job, user, "welcome", lambda reference_id: self.builder.welcome(user, reference_id)
        )
        await self.users.update_preferences(
            user.id,
            {
                "welcome_sent": True,
                "welcome_sent_at": datetime.now(timezone.utc).isoformat(),
                "welcome_reference_id": draft.reference_id,
            },
        )
        await self.audit.record(
            "user",
            str(user.id),
            "welcome_fax_sent",
            {"reference_id": draft.reference_id, "delivery_id": receipt.delivery_id},
        )

    async def _send_document(
        self, job: PipelineJob, user: UserRecord, kind: str, build: Callable[[str], DocumentDraft]
    ) -> Tuple[DocumentDraft, DeliveryReceipt]:
        try:
            draft = build(await self._fresh_reference_id(user))
            rendered = await self.renderer.render_draft(draft)
            receipt = await asyncio.wait_for(
                self.delivery.deliver(rendered.pdf_bytes, job.from_number, draft.reference_id, job.fax_id),
                timeout=self.network_timeout,
            )
        except asyncio.TimeoutError as e:
            raise PostActionError(f"Sending {kind} document timed out", original_error=e)
        except PipelineError as e:
            raise PostActionError(f"Sending {kind} document failed: {str(e)}", original_error=e)
        await self._save_context(draft.reference_id, user, {**draft.context_data, "job_id": job.fax_id})
        return draft, receipt

    def _requested_help_topics(self, interpretation: InterpretationResult) -> List[str]:
        context = interpretation.context
        if interpretation.intent != "reply" or context is None or not context.context_data.get("is_welcome"):
            return []
        selected = interpretation.parameters.get("selected_options") or []
        topics = []
        for option in selected:
            entry = WELCOME_OPTIONS.get(str(option).strip().upper())
            if entry and entry[0] not in topics:
                topics.append(entry[0])
        return topics
