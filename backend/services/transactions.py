"""
Transaction Merge Engine
========================
Turns a payment-provider webhook into one canonical TransactionRecord and
merges it into the transactions store.

Two upstream schemas are accepted:
- railway: identity under ``_id.$oid`` (or a string ``_id``), nested ``customer``
- supabase: ``transaction_id`` / ``transactionId``, flat ``cliente_*`` fields

Every record field comes from the new payload, except ``ttclid`` which is
resolved through the attribution cascade with the not-yet-overwritten record
as its lowest-priority source.
"""

import asyncio
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Dict, Optional

import structlog

from schemas.payments import Customer, SchemaVariant, TransactionRecord, WebhookAck
from services.attribution import resolve_ttclid
from services.conversion_hooks import IEventSink, on_payment_confirmed
from services.errors import MissingTransactionIdError, PaymentValidationError
from services.status import is_paid_status
from storage import IKeyValueStore, WebhookLog


# =============================================================================
# PAYLOAD READERS
# =============================================================================

def _non_empty_str(value: Any) -> Optional[str]:
    if not value or isinstance(value, (bool, dict, list)):
        return None
    return value if isinstance(value, str) else str(value)


def extract_transaction_id(payload: Dict[str, Any]) -> Optional[str]:
    """transaction_id, then transactionId, then _id.$oid, then a string _id."""
    for key in ("transaction_id", "transactionId"):
        value = _non_empty_str(payload.get(key))
        if value is not None:
            return value

    raw_id = payload.get("_id")
    if isinstance(raw_id, dict):
        value = _non_empty_str(raw_id.get("$oid"))
        if value is not None:
            return value
    elif isinstance(raw_id, str) and raw_id:
        return raw_id

    return None


def detect_schema_variant(payload: Dict[str, Any]) -> SchemaVariant:
    if payload.get("_id") or payload.get("customer"):
        return SchemaVariant.RAILWAY
    return SchemaVariant.SUPABASE


def extract_customer(payload: Dict[str, Any]) -> Customer:
    customer = payload.get("customer")
    if isinstance(customer, dict):
        return Customer(
            name=customer.get("name"),
            email=customer.get("email"),
            document=customer.get("document"),
            phone=customer.get("phone"),
        )
    return Customer(
        name=payload.get("cliente_nome"),
        email=payload.get("cliente_email"),
        document=payload.get("cliente_documento"),
    )


def extract_status(payload: Dict[str, Any]) -> Optional[str]:
    status = payload.get("status")
    if status is None or status == "":
        return None
    return str(status).strip()


def extract_description(payload: Dict[str, Any]) -> Optional[Any]:
    if payload.get("descricao"):
        return payload["descricao"]
    items = payload.get("items")
    if isinstance(items, dict) and items.get("title"):
        return items["title"]
    return None


def extract_amount(payload: Dict[str, Any]) -> Optional[Any]:
    return payload.get("valor") or payload.get("amount") or None


# =============================================================================
# MERGE ENGINE
# =============================================================================

class TransactionService:
    """
    Webhook merge engine.

    Example:
        service = TransactionService(transactions=store, utm_queries=queries)
        ack = await service.process_webhook(payload)
    """

    def __init__(
        self,
        transactions: IKeyValueStore,
        utm_queries: IKeyValueStore,
        webhook_log: Optional[WebhookLog] = None,
        event_sink: Optional[IEventSink] = None,
        reference_tz: tzinfo = timezone.utc,
        currency: str = "BRL",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.transactions = transactions
        self.utm_queries = utm_queries
        self.webhook_log = webhook_log
        self.event_sink = event_sink
        self.reference_tz = reference_tz
        self.currency = currency
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        # Serializes read-modify-write of the transactions store in this process
        self._merge_lock = asyncio.Lock()
        self._logger = structlog.get_logger().bind(component="transactions")

    def _now(self) -> str:
        return self._clock().astimezone(self.reference_tz).isoformat(timespec="seconds")

    async def _audit(self, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        if self.webhook_log is not None:
            await self.webhook_log.append(message, data)

    async def _stored_query(self, transaction_id: str) -> Optional[Any]:
        entry = await self.utm_queries.get(transaction_id)
        if isinstance(entry, dict):
            return entry.get("utm_query")
        return None

    def build_record(
        self,
        payload: Dict[str, Any],
        transaction_id: str,
        existing: Optional[Dict[str, Any]],
        stored_query: Optional[Any],
    ) -> TransactionRecord:
        status = extract_status(payload)
        attribution = resolve_ttclid(transaction_id, payload, stored_query, existing)

        return TransactionRecord(
            transaction_id=transaction_id,
            payment_id=payload.get("payment_id"),
            vendor_id=payload.get("vendor_id"),
            status=status,
            status_lower=status.lower() if status else "",
            amount=extract_amount(payload),
            description=extract_description(payload),
            customer=extract_customer(payload),
            created_at=payload.get("created_at"),
            updated_at=self._now(),
            paid=is_paid_status(status),
            ttclid=attribution.ttclid,
            ttclid_source=attribution.source,
            raw_payload=payload,
            schema_variant=detect_schema_variant(payload),
        )

    async def merge(self, payload: Dict[str, Any]) -> TransactionRecord:
        """
        Merge one webhook payload into the store.

        Raises:
            PaymentValidationError: payload is not an object
            MissingTransactionIdError: no identity field found; nothing is written
        """
        if not isinstance(payload, dict):
            raise PaymentValidationError("Webhook payload must be a JSON object")

        transaction_id = extract_transaction_id(payload)
        if transaction_id is None:
            await self._audit(
                "Error: transaction_id/transactionId/_id not found in payload",
                {"keys": list(payload.keys())},
            )
            self._logger.warning("webhook_missing_transaction_id", keys=list(payload.keys()))
            raise MissingTransactionIdError(keys=payload.keys())

        async with self._merge_lock:
            records = await self.transactions.get_all()
            existing = records.get(transaction_id)
            if not isinstance(existing, dict):
                existing = None
            stored_query = await self._stored_query(transaction_id)

            record = self.build_record(payload, transaction_id, existing, stored_query)

            self._logger.info(
                "webhook_processing",
                transaction_id=transaction_id,
                status=record.status,
                paid=record.paid,
                ttclid_source=record.ttclid_source.value if record.ttclid_source else None,
            )

            records[transaction_id] = record.model_dump(mode="json")
            await self.transactions.put_all(records)

        await self._audit(
            "Transaction saved",
            {"transaction_id": transaction_id, "status": record.status, "paid": record.paid},
        )
        self._logger.info("transaction_saved", transaction_id=transaction_id, paid=record.paid)
        return record

    async def process_webhook(self, payload: Dict[str, Any]) -> WebhookAck:
        """Webhook entry point: merge, then fire the Purchase hook when paid."""
        await self._audit("Webhook received", {"payload": payload})
        self._logger.info("webhook_received")

        record = await self.merge(payload)

        if record.paid:
            self._logger.info("payment_confirmed", transaction_id=record.transaction_id, amount=record.amount)
            await self._audit(
                "Payment confirmed",
                {"transaction_id": record.transaction_id, "amount": record.amount},
            )
            if self.event_sink is not None:
                await on_payment_confirmed(self.event_sink, record, currency=self.currency)

        return WebhookAck(
            transaction_id=record.transaction_id,
            status=record.status,
            paid=record.paid,
        )
