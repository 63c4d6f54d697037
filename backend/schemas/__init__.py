# schemas/__init__.py
from schemas.payments import (
    CanonicalStatus,
    TtclidSource,
    SchemaVariant,
    Customer,
    TransactionRecord,
    AttributionQuery,
    UtmCaptureRequest,
    UtmCaptureResponse,
    StatusPollRequest,
    WebhookAck,
    PolledTransaction,
    StatusPollResponse,
    ConversionContent,
    ConversionUser,
    ConversionEvent,
)

__all__ = [
    "CanonicalStatus",
    "TtclidSource",
    "SchemaVariant",
    "Customer",
    "TransactionRecord",
    "AttributionQuery",
    "UtmCaptureRequest",
    "UtmCaptureResponse",
    "StatusPollRequest",
    "WebhookAck",
    "PolledTransaction",
    "StatusPollResponse",
    "ConversionContent",
    "ConversionUser",
    "ConversionEvent",
]
