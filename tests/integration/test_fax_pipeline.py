"""Integration tests for the inbound fax pipeline.

Stores are in memory, storage is a temporary directory and delivery uses
the mock transmitter; rendering is real.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from faxbridge.core.exceptions import AgentError, DeliveryClientError, InterpretationError
from faxbridge.models.collaborators import AgentResponse, DocumentSpec, InterpretationResult
from faxbridge.models.job import PipelineJob
from faxbridge.pipeline.error_handler import PipelineErrorHandler, Stage
from faxbridge.pipeline.fax_pipeline import MAX_REFERENCE_ID_ATTEMPTS, FaxPipeline, sniff_media_type
from faxbridge.rendering.renderer import DocumentRenderer
from faxbridge.services.context_recovery import ContextRecoveryService
from faxbridge.services.delivery.delivery_service import DeliveryService
from faxbridge.services.delivery.transmission import MOCK_ID_PREFIX, MockTransmissionClient
from faxbridge.services.document_builder import DocumentBuilder
from faxbridge.services.storage_service import LocalStorage

PHONE = "+819012345678"
INBOUND_PDF = b"%PDF-1.4\n% inbound fax page\n"


def _job(fax_id: str = "fax-1") -> PipelineJob:
    return PipelineJob(fax_id=fax_id, from_number=PHONE, media_url=f"https://media.example.com/{fax_id}")


def _confirmation(message: str = "Your email was sent.") -> AgentResponse:
    return AgentResponse(
        success=True,
        document_spec=DocumentSpec(kind="confirmation", data={"message": message}),
        user_message=message,
    )


class PipelineHarness:
    """Builds a pipeline from fakes and exposes them for assertions."""

    def __init__(self, tmp_path, user_store, context_store, audit_service, audit_store, small_geometry):
        self.users = user_store
        self.contexts = context_store
        self.audit_store = audit_store
        self.storage = LocalStorage(str(tmp_path))
        self.transmitter = MockTransmissionClient()
        self.interpreter = AsyncMock()
        self.interpreter.interpret.return_value = InterpretationResult(
            intent="send_email", confidence=0.92, extracted_text="Send email to son@example.com: Hello"
        )
        self.agent = AsyncMock()
        self.agent.execute.return_value = _confirmation()
        self.sleep = AsyncMock()
        self.downloads = []
        self.media_response = httpx.Response(200, content=INBOUND_PDF, headers={"content-type": "application/pdf"})
        self.renderer = DocumentRenderer(small_geometry, max_workers=2)

        transport = httpx.MockTransport(self._serve_media)
        self.pipeline = FaxPipeline(
            storage=self.storage,
            users=user_store,
            contexts=context_store,
            interpreter=self.interpreter,
            agent=self.agent,
            context_recovery=ContextRecoveryService(context_store, audit=audit_service),
            builder=DocumentBuilder(support_contact="Support: 0120-000-000"),
            renderer=self.renderer,
            delivery=DeliveryService(
                storage=self.storage,
                transmitter=self.transmitter,
                audit=audit_service,
                from_number="+81312345678",
                sleep=self.sleep,
            ),
            audit=audit_service,
            error_handler=PipelineErrorHandler(
                audit_service,
                max_attempts={Stage.DOWNLOAD_IMAGE: 2, Stage.INTERPRET: 3, Stage.INVOKE_AGENT: 2},
                base_delay_seconds=2.0,
            ),
            network_timeout=10.0,
            http_client_factory=lambda **kwargs: httpx.AsyncClient(transport=transport, **kwargs),
            sleep=self.sleep,
        )

    def _serve_media(self, request: httpx.Request) -> httpx.Response:
        self.downloads.append(str(request.url))
        return self.media_response

    def returning_user(self):
        return self.users.add(PHONE, preferences={"welcome_sent": True})


@pytest.fixture
def harness(tmp_path, user_store, context_store, audit_service, audit_store, small_geometry):
    harness = PipelineHarness(tmp_path, user_store, context_store, audit_service, audit_store, small_geometry)
    yield harness
    harness.renderer.close()


class TestSuccessfulProcessing:
    @pytest.mark.asyncio
    async def test_first_fax_gets_response_and_welcome(self, harness):
        result = await harness.pipeline.process(_job())

        assert result.success is True
        assert result.delivery_id.startswith(MOCK_ID_PREFIX)
        assert result.document.reference_id == result.reference_id
        assert len(harness.transmitter.sent) == 2
        assert harness.transmitter.sent[0].reference_id == result.reference_id
        assert harness.transmitter.sent[0].to == PHONE

        user = next(iter(harness.users.users.values()))
        assert user.preferences["welcome_sent"] is True
        welcome_ref = user.preferences["welcome_reference_id"]
        assert harness.contexts.contexts[welcome_ref].context_data["is_welcome"] is True

        saved = harness.contexts.contexts[result.reference_id]
        assert saved.user_id == user.id
        assert saved.context_data["job_id"] == "fax-1"
        assert saved.context_data["delivery_id"] == result.delivery_id
        assert "processing_completed" in harness.audit_store.operations("fax_job")
        assert "welcome_fax_sent" in harness.audit_store.operations("user")

    @pytest.mark.asyncio
    async def test_returning_user_gets_only_the_response(self, harness):
        user = harness.returning_user()

        result = await harness.pipeline.process(_job())

        assert result.success is True
        assert len(harness.transmitter.sent) == 1
        harness.agent.execute.assert_awaited_once()
        assert harness.agent.execute.await_args.args[1] == user.id

    @pytest.mark.asyncio
    async def test_inbound_media_is_stored_and_reused(self, harness, tmp_path):
        harness.returning_user()

        await harness.pipeline.process(_job())
        await harness.pipeline.process(_job())

        assert (tmp_path / "inbound" / "fax-1.pdf").read_bytes() == INBOUND_PDF
        assert len(harness.downloads) == 1
        assert harness.interpreter.interpret.await_args.args[0] == INBOUND_PDF

    @pytest.mark.asyncio
    async def test_transient_interpreter_failures_are_retried(self, harness):
        harness.returning_user()
        harness.interpreter.interpret.side_effect = [
            InterpretationError("503"),
            InterpretationError("503"),
            InterpretationResult(intent="question", confidence=0.9),
        ]

        result = await harness.pipeline.process(_job())

        assert result.success is True
        assert [call.args[0] for call in harness.sleep.await_args_list] == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_reply_is_linked_to_previous_context(self, harness):
        user = harness.returning_user()
        previous = harness.contexts.add(
            "FX-2025-000555", user.id, datetime.now(timezone.utc) - timedelta(days=1), topic="Shopping"
        )
        harness.interpreter.interpret.return_value = InterpretationResult(
            intent="reply", confidence=0.9, extracted_text="A  Ref: FX-2025-000555"
        )

        result = await harness.pipeline.process(_job())

        assert result.interpretation.context == previous
        sent_interpretation = harness.agent.execute.await_args.args[0]
        assert sent_interpretation.context_recovery.method == "reference_id"
        assert harness.contexts.contexts[result.reference_id].context_data["in_reply_to"] == "FX-2025-000555"


class TestHelpRequests:
    @pytest.mark.asyncio
    async def test_selected_welcome_topics_get_help_faxes(self, harness):
        user = harness.returning_user()
        harness.contexts.add(
            "FX-2025-000900", user.id, datetime.now(timezone.utc) - timedelta(hours=2), kind="welcome", is_welcome=True
        )
        harness.interpreter.interpret.return_value = InterpretationResult(
            intent="reply",
            confidence=0.9,
            reference_id="FX-2025-000900",
            parameters={"selected_options": ["A", "c", "A"]},
        )

        result = await harness.pipeline.process(_job())

        assert result.success is True
        assert len(harness.transmitter.sent) == 3
        help_event = [e for e in harness.audit_store.events if e.operation == "help_fax_sent"][0]
        assert help_event.details["topics"] == ["email", "payment"]


class TestFailures:
    @pytest.mark.asyncio
    async def test_agent_failure_is_terminal_after_retries(self, harness):
        harness.returning_user()
        harness.agent.execute.side_effect = AgentError("agent unavailable")

        result = await harness.pipeline.process(_job())

        assert result.success is False
        assert result.failed_stage == "invoke_agent"
        assert "agent unavailable" in result.error
        assert harness.agent.execute.await_count == 2
        assert harness.transmitter.sent == []
        assert harness.audit_store.operations("fax_job")[-1] == "processing_failed"

    @pytest.mark.asyncio
    async def test_media_download_failure(self, harness):
        harness.media_response = httpx.Response(404)

        result = await harness.pipeline.process(_job())

        assert result.success is False
        assert result.failed_stage == "download_image"
        assert len(harness.downloads) == 2
        harness.interpreter.interpret.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unsupported_media_is_rejected(self, harness):
        harness.media_response = httpx.Response(200, content=b"<html></html>", headers={"content-type": "text/html"})

        result = await harness.pipeline.process(_job())

        assert result.failed_stage == "download_image"

    @pytest.mark.asyncio
    async def test_invalid_document_data_is_not_retried(self, harness):
        harness.returning_user()
        harness.agent.execute.return_value = AgentResponse(
            success=True, document_spec=DocumentSpec(kind="product_selection", data={"products": []})
        )

        result = await harness.pipeline.process(_job())

        assert result.success is False
        assert result.failed_stage == "build_document"
        harness.sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejected_delivery_fails_the_job(self, harness):
        harness.returning_user()
        harness.transmitter.send = AsyncMock(side_effect=DeliveryClientError("invalid number", status_code=422))

        result = await harness.pipeline.process(_job())

        assert result.success is False
        assert result.failed_stage == "upload_and_deliver"
        assert harness.contexts.contexts == {}

    @pytest.mark.asyncio
    async def test_context_save_failure_does_not_fail_delivered_job(self, harness):
        harness.returning_user()
        harness.contexts.save = AsyncMock(side_effect=RuntimeError("database unavailable"))

        result = await harness.pipeline.process(_job())

        assert result.success is True
        assert len(harness.transmitter.sent) == 1
        assert "context_save_failed" in harness.audit_store.operations("conversation_context")

    @pytest.mark.asyncio
    async def test_welcome_failure_is_skipped(self, harness):
        calls = []
        original_send = harness.transmitter.send

        async def send_once(request):
            calls.append(request)
            if len(calls) > 1:
                raise DeliveryClientError("line busy", status_code=400)
            return await original_send(request)

        harness.transmitter.send = send_once

        result = await harness.pipeline.process(_job())

        assert result.success is True
        assert "stage_skipped" in harness.audit_store.operations("fax_job")
        user = next(iter(harness.users.users.values()))
        assert "welcome_sent" not in user.preferences



class TestReferenceIdCollisions:
    @pytest.mark.asyncio
    async def test_agent_reference_id_held_by_another_user_is_replaced(self, harness):
        harness.returning_user()
        other = harness.users.add("+819099999999")
        held = harness.contexts.add("FX-2025-111111", other.id, datetime.now(timezone.utc), kind="confirmation")
        harness.agent.execute.return_value = AgentResponse(
            success=True,
            document_spec=DocumentSpec(
                kind="confirmation", data={"message": "Done."}, reference_id="FX-2025-111111"
            ),
        )

        result = await harness.pipeline.process(_job())

        assert result.success is True
        assert result.reference_id != "FX-2025-111111"
        assert harness.transmitter.sent[0].reference_id == result.reference_id
        assert harness.contexts.contexts["FX-2025-111111"] == held
        assert harness.contexts.contexts[result.reference_id].user_id != other.id

    @pytest.mark.asyncio
    async def test_welcome_is_skipped_when_no_unused_reference_id_is_found(self, harness):
        other = harness.users.add("+819099999999")
        held = harness.contexts.add("FX-2025-222222", other.id, datetime.now(timezone.utc), is_welcome=True)

        with patch(
            "faxbridge.pipeline.fax_pipeline.generate_reference_id", return_value="FX-2025-222222"
        ) as generate:
            result = await harness.pipeline.process(_job())

        assert result.success is True
        assert generate.call_count == MAX_REFERENCE_ID_ATTEMPTS
        assert len(harness.transmitter.sent) == 1
        assert "stage_skipped" in harness.audit_store.operations("fax_job")
        assert harness.contexts.contexts["FX-2025-222222"] == held

    @pytest.mark.asyncio
    async def test_conflicting_save_is_audited_without_touching_the_other_context(self, harness):
        harness.returning_user()
        other = harness.users.add("+819099999999")
        held = harness.contexts.add("FX-2025-333333", other.id, datetime.now(timezone.utc), kind="confirmation")
        harness.contexts.get_by_reference_id = AsyncMock(return_value=None)
        harness.agent.execute.return_value = AgentResponse(
            success=True,
            document_spec=DocumentSpec(
                kind="confirmation", data={"message": "Done."}, reference_id="FX-2025-333333"
            ),
        )

        result = await harness.pipeline.process(_job())

        assert result.success is True
        assert "context_save_failed" in harness.audit_store.operations("conversation_context")
        assert harness.contexts.contexts["FX-2025-333333"] == held

class TestSniffMediaType:
    @pytest.mark.parametrize(
        "data, expected",
        [
            (b"%PDF-1.7", "pdf"),
            (b"II*\x00rest", "tiff"),
            (b"MM\x00*rest", "tiff"),
            (b"\x89PNG\r\n", "png"),
            (b"\xff\xd8\xff\xe0", "jpg"),
            (b"<html>", None),
        ],
    )
    def test_signatures(self, data, expected):
        assert sniff_media_type(data) == expected
