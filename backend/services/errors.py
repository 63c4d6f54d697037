# services/errors.py
# ============================================================================
# TIKTOKPAY PAYMENTS BRIDGE v1.0 - ERRORS
# ============================================================================
# Client-facing validation errors. Storage and remote-query failures are
# recovered where they happen and never reach this hierarchy.
# ============================================================================


class PaymentsError(Exception):
    """Base error for the payments bridge."""


class PaymentValidationError(PaymentsError, ValueError):
    """Request rejected before anything is persisted."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MissingTransactionIdError(PaymentValidationError):
    def __init__(self, keys=None):
        super().__init__("transaction_id, transactionId or _id is required")
        self.keys = list(keys or [])


class MissingFieldsError(PaymentValidationError):
    def __init__(self, message: str, fields=None):
        super().__init__(message)
        self.fields = list(fields or [])
