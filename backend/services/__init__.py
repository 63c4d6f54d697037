# services/__init__.py
# ============================================================================
# TIKTOKPAY PAYMENTS BRIDGE v1.0 - SERVICES MODULE
# ============================================================================
# Status normalizer, attribution, merge engine, polling and conversion hooks
# ============================================================================

from services.errors import (
    PaymentsError,
    PaymentValidationError,
    MissingTransactionIdError,
    MissingFieldsError,
)

from services.status import (
    is_paid_status,
    canonical_status,
    normalize_status,
)

from services.attribution import (
    extract_ttclid,
    resolve_ttclid,
    AttributionCapture,
    AttributionResult,
)

from services.transactions import (
    TransactionService,
    extract_transaction_id,
    detect_schema_variant,
)

from services.remote_status import RemoteStatusClient

from services.status_polling import StatusPoller

from services.conversion_hooks import (
    IEventSink,
    LoggingEventSink,
    on_checkout_initiated,
    on_payment_confirmed,
)

from services.container import (
    PaymentServices,
    build_services,
    get_services,
    shutdown_services,
)

__all__ = [
    # Errors
    "PaymentsError",
    "PaymentValidationError",
    "MissingTransactionIdError",
    "MissingFieldsError",
    # Status
    "is_paid_status",
    "canonical_status",
    "normalize_status",
    # Attribution
    "extract_ttclid",
    "resolve_ttclid",
    "AttributionCapture",
    "AttributionResult",
    # Merge engine
    "TransactionService",
    "extract_transaction_id",
    "detect_schema_variant",
    # Polling
    "RemoteStatusClient",
    "StatusPoller",
    # Conversion hooks
    "IEventSink",
    "LoggingEventSink",
    "on_checkout_initiated",
    "on_payment_confirmed",
    # Wiring
    "PaymentServices",
    "build_services",
    "get_services",
    "shutdown_services",
]
