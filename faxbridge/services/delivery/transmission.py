"""Fax transmission clients.

Clients make exactly one attempt per ``send`` call and classify failures:
``DeliveryClientError`` for rejected requests, ``DeliveryTransientError``
for anything worth retrying. The retry loop lives in ``DeliveryService``.
"""

import uuid
from typing import Optional, Protocol

import httpx
from pydantic import BaseModel

from faxbridge.core.exceptions import DeliveryClientError, DeliveryTransientError
from faxbridge.utils.logging import get_logger

LOGGER = get_logger(__name__)

MOCK_ID_PREFIX = "mock_fax_"


class TransmissionRequest(BaseModel):
    to: str
    from_number: str
    media_url: str
    webhook_url: Optional[str] = None
    reference_id: Optional[str] = None


class TransmissionResult(BaseModel):
    external_id: str
    status: str = "queued"


class TransmissionClient(Protocol):
    async def send(self, request: TransmissionRequest) -> TransmissionResult:
        ...


def classify_status(status_code: int, body: str) -> Exception:
    """Map a non-success HTTP status to the delivery error taxonomy."""
    if 400 <= status_code < 500 and status_code != 429:
        return DeliveryClientError(f"Transmission rejected ({status_code}): {body}", status_code=status_code)
    return DeliveryTransientError(f"Transmission failed ({status_code}): {body}", status_code=status_code)


class TelnyxTransmissionClient:
    """Sends faxes through the Telnyx programmable fax API."""

    def __init__(self, api_url: str, api_key: str, connection_id: str, timeout: float = 30.0):
        self.api_url = api_url.rstrip("/")
        self.connection_id = connection_id
        self.timeout = timeout
        self.headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    async def send(self, request: TransmissionRequest) -> TransmissionResult:
        payload = {
            "connection_id": self.connection_id,
            "media_url": request.media_url,
            "to": request.to,
            "from": request.from_number,
        }
        if request.webhook_url:
            payload["webhook_url"] = request.webhook_url

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(f"{self.api_url}/faxes", headers=self.headers, json=payload)
        except httpx.TimeoutException as e:
            raise DeliveryTransientError(f"Transmission timed out: {str(e)}", original_error=e)
        except httpx.HTTPError as e:
            raise DeliveryTransientError(f"Transmission transport error: {str(e)}", original_error=e)

        if response.status_code >= 300:
            raise classify_status(response.status_code, response.text[:500])

        data = response.json().get("data", {})
        external_id = data.get("id")
        if not external_id:
            raise DeliveryTransientError("Transmission response did not contain a fax id")

        return TransmissionResult(external_id=external_id, status=data.get("status", "queued"))


class MockTransmissionClient:
    """Accepts every request locally with a deterministic id."""

    def __init__(self):
        self.sent: list[TransmissionRequest] = []

    async def send(self, request: TransmissionRequest) -> TransmissionResult:
        self.sent.append(request)
        seed = f"{request.reference_id or request.media_url}:{request.to}"
        external_id = f"{MOCK_ID_PREFIX}{uuid.uuid5(uuid.NAMESPACE_URL, seed)}"
        LOGGER.info("Mock fax accepted", extra={"to": request.to, "external_id": external_id})
        return TransmissionResult(external_id=external_id, status="queued")
