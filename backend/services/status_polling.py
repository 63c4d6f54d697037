# services/status_polling.py
# ============================================================================
# TIKTOKPAY PAYMENTS BRIDGE v1.0 - STATUS POLLING
# ============================================================================
# Answers the checkout pages' "is it paid yet?" polls. An unknown transaction
# is reported as pending, never as an error.
# ============================================================================

from typing import Any, Dict, Optional

import structlog

from schemas.payments import PolledTransaction, StatusPollRequest, StatusPollResponse
from services.errors import MissingFieldsError
from services.remote_status import RemoteStatusClient
from services.status import normalize_status
from storage import IKeyValueStore

logger = structlog.get_logger().bind(component="status_polling")

NOT_FOUND_MESSAGE = "Transaction not found or still pending"


def find_record(records: Dict[str, Dict[str, Any]], key: str) -> Optional[Dict[str, Any]]:
    """Exact key match first, then a scan over transaction_id and payment_id."""
    if isinstance(records.get(key), dict):
        return records[key]
    for record in records.values():
        if not isinstance(record, dict):
            continue
        if _matches(record.get("transaction_id"), key) or _matches(record.get("payment_id"), key):
            return record
    return None


def _matches(value: Any, key: str) -> bool:
    return value is not None and str(value) == key


def build_found_response(record: Dict[str, Any]) -> StatusPollResponse:
    # a stored paid key wins even when null
    paid = bool(record["paid"]) if "paid" in record else None
    normalized = normalize_status(record.get("status"), paid)
    return StatusPollResponse(
        status=normalized.status,
        paid=normalized.paid,
        transaction=PolledTransaction(
            id=record.get("transaction_id"),
            transaction_id=record.get("transaction_id"),
            payment_id=record.get("payment_id"),
            status=normalized.status,
            amount=record.get("amount"),
            updated_at=record.get("updated_at"),
            ttclid=record.get("ttclid"),
        ),
    )


def build_pending_response() -> StatusPollResponse:
    return StatusPollResponse(status="pending", paid=False, message=NOT_FOUND_MESSAGE)


class StatusPoller:
    """Local store lookup with an optional remote fallback."""

    def __init__(self, transactions: IKeyValueStore, remote: Optional[RemoteStatusClient] = None):
        self.transactions = transactions
        self.remote = remote

    async def poll(self, request: StatusPollRequest) -> StatusPollResponse:
        key = request.id or request.payment_id
        if not key:
            raise MissingFieldsError("Transaction ID or Payment ID required", fields=["id", "payment_id"])

        record = find_record(await self.transactions.get_all(), key)
        source = "local"

        if record is None and self.remote is not None:
            remote_record = await self.remote.fetch(key)
            if remote_record is not None:
                record = remote_record.model_dump(mode="json")
                source = "remote"

        if record is None:
            logger.info("status_poll_not_found", key=key)
            return build_pending_response()

        response = build_found_response(record)
        logger.info("status_polled", key=key, source=source, status=response.status, paid=response.paid)
        return response
