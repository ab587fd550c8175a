from faxbridge.services.delivery.delivery_service import DeliveryReceipt, DeliveryService
from faxbridge.services.delivery.transmission import (
    MOCK_ID_PREFIX,
    MockTransmissionClient,
    TelnyxTransmissionClient,
    TransmissionClient,
    TransmissionRequest,
    TransmissionResult,
)

__all__ = [
    "DeliveryReceipt",
    "DeliveryService",
    "MOCK_ID_PREFIX",
    "MockTransmissionClient",
    "TelnyxTransmissionClient",
    "TransmissionClient",
    "TransmissionRequest",
    "TransmissionResult",
]
