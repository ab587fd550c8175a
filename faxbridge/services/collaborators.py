"""HTTP adapters for the interpretation and action agent services."""

import base64
from typing import Optional
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from faxbridge.core.base_api_client import BaseAPIClient
from faxbridge.core.exceptions import AgentError, APIClientError, InterpretationError
from faxbridge.models.collaborators import AgentResponse, InterpretationResult
from faxbridge.utils.logging import get_logger

LOGGER = get_logger(__name__)


class RemoteInterpreter(BaseAPIClient):
    """Sends the inbound page image to the interpretation service.

    Retries are owned by the pipeline, so the client makes a single attempt
    by default.
    """

    def __init__(self, api_key: str, base_url: str, timeout: int = 60, max_retries: int = 1):
        super().__init__(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=max_retries)

    async def interpret(self, image_bytes: bytes, user_id: UUID) -> InterpretationResult:
        payload = {
            "user_id": str(user_id),
            "image_base64": base64.b64encode(image_bytes).decode("ascii"),
        }
        try:
            data = await self.call_api(payload=payload)
            return InterpretationResult.model_validate(data)
        except APIClientError as e:
            raise InterpretationError(f"Interpretation request failed: {str(e)}", original_error=e)
        except PydanticValidationError as e:
            raise InterpretationError(f"Interpretation response is malformed: {str(e)}", original_error=e)


class RemoteAgent(BaseAPIClient):
    """Forwards an interpretation to the action agent and parses its response."""

    def __init__(self, api_key: str, base_url: str, timeout: int = 60, max_retries: int = 1):
        super().__init__(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=max_retries)

    async def execute(
        self,
        interpretation: InterpretationResult,
        user_id: UUID,
        job_id: str,
        user_name: Optional[str] = None,
    ) -> AgentResponse:
        payload = {
            "interpretation": interpretation.model_dump(mode="json"),
            "user_id": str(user_id),
            "job_id": job_id,
            "user_name": user_name,
        }
        try:
            data = await self.call_api(payload=payload)
            response = AgentResponse.model_validate(data)
        except APIClientError as e:
            raise AgentError(f"Agent request failed: {str(e)}", original_error=e)
        except PydanticValidationError as e:
            raise AgentError(f"Agent response is malformed: {str(e)}", original_error=e)

        LOGGER.info(
            "Agent completed",
            extra={
                "job_id": job_id,
                "success": response.success,
                "steps": len(response.steps),
                "document_kind": response.document_spec.kind,
            },
        )
        return response
