# services/conversion_hooks.py
# ============================================================================
# TIKTOKPAY PAYMENTS BRIDGE v1.0 - CONVERSION HOOKS
# ============================================================================
# Builds pixel conversion events (InitiateCheckout, Purchase) and hands them
# to an event sink. Emission is fire-and-forget: sink failures are logged.
# ============================================================================

import hashlib
import re
from abc import ABC, abstractmethod
from typing import Any, Optional

import structlog

from schemas.payments import (
    ConversionContent,
    ConversionEvent,
    ConversionUser,
    Customer,
    TransactionRecord,
)

logger = structlog.get_logger().bind(component="conversion_hooks")

DEFAULT_PRODUCT = "pagamento"
DEFAULT_CONTENT_ID = "tiktokpay_main"
DEFAULT_CONTENT_NAME = "Produto TikTokPay"

PRODUCT_CONTENT_IDS = {
    "pagamento": "tiktokpay_main",
    "upsell": "tiktokpay_upsell",
    "upsell1": "tiktokpay_upsell1",
    "upsell3": "tiktokpay_upsell3",
    "upsell4": "tiktokpay_upsell4",
    "upsell5": "tiktokpay_upsell5",
    "upsell6": "tiktokpay_upsell6",
    "upsell7": "tiktokpay_upsell7",
    "upsell8": "tiktokpay_upsell8",
    "upsell9": "tiktokpay_upsell9",
    "upsell10": "tiktokpay_upsell10",
}

CONTENT_NAMES = {
    "tiktokpay_main": "Taxa de confirmação de identidade",
    "tiktokpay_upsell": "Imposto sobre Operações Financeiras (IOF)",
    "tiktokpay_upsell1": "Taxa de transferência de saldo",
    "tiktokpay_upsell3": "Tarifa simbólica anti-fraude",
    "tiktokpay_upsell4": "Antecipação de saque",
    "tiktokpay_upsell5": "Liberação de bônus extra",
    "tiktokpay_upsell6": "Proteção anti-reversão",
    "tiktokpay_upsell7": "Recebimento imediato",
    "tiktokpay_upsell8": "Liberação de saldo retido em revisão",
    "tiktokpay_upsell9": "Garantia total de liberação",
    "tiktokpay_upsell10": "Conversão em saldo duplicado",
}

_NUMBERED_UPSELL = re.compile(r"/upsell(\d+)/")
_PLAIN_UPSELL = re.compile(r"/upsell/")


# =============================================================================
# EVENT SINKS
# =============================================================================

class IEventSink(ABC):
    """Destination for conversion events"""

    @abstractmethod
    async def emit(self, event: ConversionEvent) -> None:
        pass


class LoggingEventSink(IEventSink):
    """Writes events to the structured log"""

    async def emit(self, event: ConversionEvent) -> None:
        logger.info("conversion_event", conversion=event.model_dump(mode="json"))


# =============================================================================
# EVENT BUILDING
# =============================================================================

def identify_product_from_path(path: Optional[str]) -> str:
    """Map a checkout page path to its product identifier."""
    if not path:
        return DEFAULT_PRODUCT
    match = _NUMBERED_UPSELL.search(path)
    if match:
        return f"upsell{match.group(1)}"
    if _PLAIN_UPSELL.search(path):
        return "upsell"
    return DEFAULT_PRODUCT


def content_id_for_product(product: str) -> str:
    return PRODUCT_CONTENT_IDS.get(product, DEFAULT_CONTENT_ID)


def content_name_for(content_id: str) -> str:
    return CONTENT_NAMES.get(content_id, DEFAULT_CONTENT_NAME)


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def build_user_identity(
    email: Optional[str] = None,
    phone: Optional[str] = None,
    document: Optional[str] = None,
) -> Optional[ConversionUser]:
    """Hash customer identifiers the way the pixel's identify call expects."""
    user = ConversionUser()
    if email and email.strip():
        user.email = sha256_hex(email.lower().strip())
    if phone:
        digits = re.sub(r"\D", "", phone)
        if digits:
            user.phone_number = sha256_hex(digits)
    if document and document.strip():
        user.external_id = sha256_hex(document.strip())
    return None if user.is_empty else user


def parse_value(amount: Any) -> float:
    if amount is None or isinstance(amount, bool):
        return 0.0
    try:
        return float(amount)
    except (TypeError, ValueError):
        return 0.0


def build_conversion_event(
    event: str,
    event_id: str,
    amount: Any = None,
    ttclid: Optional[str] = None,
    customer: Optional[Customer] = None,
    page_path: Optional[str] = None,
    currency: str = "BRL",
) -> ConversionEvent:
    content_id = content_id_for_product(identify_product_from_path(page_path))
    properties = {"ttclid": ttclid} if ttclid else {}
    user = None
    if customer is not None:
        user = build_user_identity(customer.email, customer.phone, customer.document)

    return ConversionEvent(
        event=event,
        event_id=event_id,
        value=parse_value(amount),
        currency=currency,
        contents=[ConversionContent(content_id=content_id, content_name=content_name_for(content_id))],
        properties=properties,
        user=user,
    )


async def emit_safely(sink: IEventSink, event: ConversionEvent) -> bool:
    """Emit without letting sink failures reach the caller."""
    try:
        await sink.emit(event)
        return True
    except Exception as e:
        logger.warning("conversion_event_failed", event_name=event.event, event_id=event.event_id, error=str(e))
        return False


# =============================================================================
# HOOKS
# =============================================================================

async def on_checkout_initiated(
    sink: IEventSink,
    transaction_id: str,
    amount: Any = None,
    ttclid: Optional[str] = None,
    page_path: Optional[str] = None,
    currency: str = "BRL",
) -> bool:
    """Hook called when a checkout page captures its utm query."""
    if not ttclid:
        logger.warning("ttclid_missing_at_checkout", transaction_id=transaction_id)
    event = build_conversion_event(
        "InitiateCheckout",
        event_id=transaction_id,
        amount=amount,
        ttclid=ttclid,
        page_path=page_path,
        currency=currency,
    )
    return await emit_safely(sink, event)


async def on_payment_confirmed(
    sink: IEventSink,
    record: TransactionRecord,
    page_path: Optional[str] = None,
    currency: str = "BRL",
) -> bool:
    """Hook called when a webhook marks a transaction as paid."""
    event = build_conversion_event(
        "Purchase",
        event_id=record.transaction_id,
        amount=record.amount,
        ttclid=record.ttclid,
        customer=record.customer,
        page_path=page_path,
        currency=currency,
    )
    return await emit_safely(sink, event)
