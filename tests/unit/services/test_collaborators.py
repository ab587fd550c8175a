"""Unit tests for the HTTP collaborator adapters."""

import uuid
from unittest.mock import AsyncMock, patch

import pytest

from faxbridge.core.exceptions import AgentError, APIClientError, InterpretationError
from faxbridge.models.collaborators import InterpretationResult
from faxbridge.services.collaborators import RemoteAgent, RemoteInterpreter


class TestRemoteInterpreter:
    @pytest.mark.asyncio
    async def test_interpret_sends_base64_image(self):
        interpreter = RemoteInterpreter(api_key="k", base_url="http://interpreter.test/interpret")

        with patch.object(interpreter, "call_api", AsyncMock(return_value={"intent": "question", "confidence": 0.8})) as call:
            result = await interpreter.interpret(b"\x89PNG", uuid.uuid4())

        assert result.intent == "question"
        assert call.await_args.kwargs["payload"]["image_base64"] == "iVBORw=="

    @pytest.mark.asyncio
    async def test_api_errors_become_interpretation_errors(self):
        interpreter = RemoteInterpreter(api_key="k", base_url="http://interpreter.test/interpret")

        with patch.object(interpreter, "call_api", AsyncMock(side_effect=APIClientError("503"))):
            with pytest.raises(InterpretationError):
                await interpreter.interpret(b"x", uuid.uuid4())

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        interpreter = RemoteInterpreter(api_key="k", base_url="http://interpreter.test/interpret")

        with patch.object(interpreter, "call_api", AsyncMock(return_value={"intent": "question"})):
            with pytest.raises(InterpretationError):
                await interpreter.interpret(b"x", uuid.uuid4())


class TestRemoteAgent:
    @pytest.mark.asyncio
    async def test_execute_parses_response(self):
        agent = RemoteAgent(api_key="k", base_url="http://agent.test/execute")
        data = {
            "success": True,
            "document_spec": {"kind": "confirmation", "data": {"message": "Sent"}},
            "user_message": "Sent",
        }

        with patch.object(agent, "call_api", AsyncMock(return_value=data)):
            response = await agent.execute(
                InterpretationResult(intent="send_email", confidence=0.9), uuid.uuid4(), "fax-1"
            )

        assert response.document_spec.kind == "confirmation"

    @pytest.mark.asyncio
    async def test_agent_errors(self):
        agent = RemoteAgent(api_key="k", base_url="http://agent.test/execute")

        with patch.object(agent, "call_api", AsyncMock(side_effect=APIClientError("timeout"))):
            with pytest.raises(AgentError):
                await agent.execute(InterpretationResult(intent="x", confidence=0.5), uuid.uuid4(), "fax-1")
