# services/status.py
# ============================================================================
# TIKTOKPAY PAYMENTS BRIDGE v1.0 - STATUS NORMALIZER
# ============================================================================
# Maps vendor status strings to a paid flag and a canonical status
# ============================================================================

from dataclasses import dataclass
from typing import Any, Optional

from schemas.payments import CanonicalStatus

PAID_STATUSES = frozenset({
    "confirmado",
    "pago",
    "paid",
    "completed",
    "aprovado",
    "approved",
})

# Applied only when the transaction is not paid
STATUS_MAP = {
    "pendente": CanonicalStatus.PENDING.value,
    "waiting_payment": CanonicalStatus.PENDING.value,
    "canceled": CanonicalStatus.CANCELED.value,
    "refunded": CanonicalStatus.REFUNDED.value,
}


@dataclass(frozen=True)
class NormalizedStatus:
    paid: bool
    status: str


def is_paid_status(status: Optional[Any]) -> bool:
    """Case-insensitive membership test against PAID_STATUSES."""
    if status is None:
        return False
    return str(status).lower() in PAID_STATUSES


def canonical_status(status: Optional[Any], paid: bool) -> str:
    if paid:
        return CanonicalStatus.PAID.value
    lowered = str(status).lower() if status is not None else ""
    return STATUS_MAP.get(lowered, lowered)


def normalize_status(status: Optional[Any], paid: Optional[bool] = None) -> NormalizedStatus:
    """
    Normalize a raw vendor status.

    Args:
        status: Raw status string (any casing); None reads as "pending"
        paid: Paid flag already known for the transaction, if any

    Returns:
        NormalizedStatus with the paid flag and canonical status
    """
    lowered = str(status).lower() if status else CanonicalStatus.PENDING.value
    is_paid = bool(paid) if paid is not None else is_paid_status(lowered)
    return NormalizedStatus(paid=is_paid, status=canonical_status(lowered, is_paid))
