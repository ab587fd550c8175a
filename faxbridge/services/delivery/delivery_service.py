"""Upload a rendered document and transmit it as a fax."""

import asyncio
from typing import Awaitable, Callable, Optional

from pydantic import BaseModel

from faxbridge.core.exceptions import DeliveryClientError, DeliveryTransientError, StorageError
from faxbridge.models.job import DeliveryEvent, DeliveryStatus
from faxbridge.services.audit_service import AuditService
from faxbridge.services.delivery.transmission import TransmissionClient, TransmissionRequest
from faxbridge.services.storage_service import StorageBackend
from faxbridge.utils.logging import get_logger

LOGGER = get_logger(__name__)

STAGE = "upload_and_deliver"


class DeliveryReceipt(BaseModel):
    delivery_id: str
    media_url: str
    attempts: int
    status: str


class DeliveryService:
    """Stores the PDF, signs a URL for it and sends it with bounded retries.

    Every attempt is recorded as a ``DeliveryEvent`` through the audit
    service. Mock and live delivery differ only in the storage backend and
    transmission client they are built with.

    Args:
        storage: Where outbound documents are stored
        transmitter: Client that submits the fax
        audit: Audit sink for delivery events
        from_number: Sending fax number
        webhook_url: Status callback URL passed to the transmitter
        max_retries: Total transmission attempts
        base_delay_seconds: Backoff base; attempt ``n`` waits ``base * 2**(n-1)``
        presigned_ttl_seconds: Lifetime of the media URL
        sleep: Awaitable sleep, replaced in tests
    """

    def __init__(
        self,
        storage: StorageBackend,
        transmitter: TransmissionClient,
        audit: AuditService,
        from_number: str,
        webhook_url: Optional[str] = None,
        max_retries: int = 3,
        base_delay_seconds: float = 1.0,
        presigned_ttl_seconds: int = 24 * 60 * 60,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.storage = storage
        self.transmitter = transmitter
        self.audit = audit
        self.from_number = from_number
        self.webhook_url = webhook_url or None
        self.max_retries = max(1, max_retries)
        self.base_delay_seconds = base_delay_seconds
        self.presigned_ttl_seconds = presigned_ttl_seconds
        self._sleep = sleep

    def backoff_delay(self, attempt: int) -> float:
        return self.base_delay_seconds * (2 ** (attempt - 1))

    async def upload(self, pdf_bytes: bytes, reference_id: str) -> str:
        """Store the PDF at ``outbound/<reference_id>.pdf`` and return a signed URL for it."""
        key = f"outbound/{reference_id}.pdf"
        try:
            locator = await self.storage.put(key, pdf_bytes, "application/pdf")
            return await self.storage.presigned_url(locator, self.presigned_ttl_seconds)
        except StorageError as e:
            raise DeliveryTransientError(f"Document upload failed: {str(e)}", original_error=e, stage=STAGE)

    async def deliver(
        self,
        pdf_bytes: bytes,
        destination: str,
        reference_id: str,
        job_id: Optional[str] = None,
    ) -> DeliveryReceipt:
        """Upload and transmit one document.

        Args:
            pdf_bytes: Assembled PDF
            destination: Recipient fax number (E.164)
            reference_id: Reference code of the document
            job_id: Inbound job this document answers

        Returns:
            Receipt with the transmitter's delivery id

        Raises:
            DeliveryClientError: The transmitter rejected the request; not retried
            DeliveryTransientError: Every upload or transmission attempt failed transiently
        """
        media_url: Optional[str] = None
        last_error: Optional[DeliveryTransientError] = None

        for attempt in range(1, self.max_retries + 1):
            await self._record(reference_id, destination, "attempting", attempt, job_id, media_url=media_url)
            try:
                # A stored document is reused; only the transmission is repeated.
                if media_url is None:
                    media_url = await self.upload(pdf_bytes, reference_id)
                request = TransmissionRequest(
                    to=destination,
                    from_number=self.from_number,
                    media_url=media_url,
                    webhook_url=self.webhook_url,
                    reference_id=reference_id,
                )
                result = await self.transmitter.send(request)
            except DeliveryClientError as e:
                await self._record(
                    reference_id, destination, "failed_client", attempt, job_id, media_url=media_url, error=str(e)
                )
                LOGGER.error(
                    f"Fax rejected by transmitter: {str(e)}",
                    extra={"reference_id": reference_id, "job_id": job_id, "attempt": attempt},
                )
                e.stage = STAGE
                raise
            except DeliveryTransientError as e:
                last_error = e
            except Exception as e:
                last_error = DeliveryTransientError(f"Transmission error: {str(e)}", original_error=e)
            else:
                await self._record(
                    reference_id,
                    destination,
                    "queued",
                    attempt,
                    job_id,
                    media_url=media_url,
                    delivery_id=result.external_id,
                )
                LOGGER.info(
                    "Fax queued for delivery",
                    extra={
                        "reference_id": reference_id,
                        "job_id": job_id,
                        "delivery_id": result.external_id,
                        "attempt": attempt,
                    },
                )
                return DeliveryReceipt(
                    delivery_id=result.external_id,
                    media_url=media_url,
                    attempts=attempt,
                    status=result.status,
                )

            LOGGER.warning(
                f"Fax delivery failed (Attempt {attempt}/{self.max_retries}): {last_error}",
                extra={"reference_id": reference_id, "job_id": job_id, "uploaded": media_url is not None},
            )
            if attempt < self.max_retries:
                await self._record(
                    reference_id, destination, "retry", attempt, job_id, media_url=media_url, error=str(last_error)
                )
                await self._sleep(self.backoff_delay(attempt))

        await self._record(
            reference_id,
            destination,
            "failed_final",
            self.max_retries,
            job_id,
            media_url=media_url,
            error=str(last_error),
        )
        raise DeliveryTransientError(
            f"Fax delivery failed after {self.max_retries} attempts: {last_error}",
            original_error=last_error,
            stage=STAGE,
        )

    async def _record(
        self,
        reference_id: str,
        destination: str,
        status: DeliveryStatus,
        attempt: int,
        job_id: Optional[str],
        media_url: Optional[str] = None,
        error: Optional[str] = None,
        delivery_id: Optional[str] = None,
    ) -> None:
        event = DeliveryEvent(
            reference_id=reference_id,
            to_number=destination,
            status=status,
            attempt=attempt,
            job_id=job_id,
            media_url=media_url,
            delivery_id=delivery_id,
            error=error,
        )
        await self.audit.record_delivery(event)
