# services/remote_status.py
# ============================================================================
# TIKTOKPAY PAYMENTS BRIDGE v1.0 - REMOTE STATUS CLIENT
# ============================================================================
# One GET against the payment provider's status endpoint.
#
# FAILURE HANDLING:
# - Timeouts, transport errors, non-200 responses and unparseable bodies all
#   resolve to None ("not found")
# - Never raises to the caller
# ============================================================================

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
import structlog

from schemas.payments import TransactionRecord

logger = structlog.get_logger().bind(component="remote_status")

PLACEHOLDER = "{transaction_id}"


class RemoteStatusClient:
    """Queries the provider for a transaction the webhook never delivered."""

    def __init__(
        self,
        url_template: str,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url_template = url_template
        self.timeout_seconds = timeout_seconds
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout_seconds,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def build_url(self, transaction_id: str) -> str:
        encoded = quote(transaction_id, safe="")
        if PLACEHOLDER in self.url_template:
            return self.url_template.replace(PLACEHOLDER, encoded)
        return f"{self.url_template.rstrip('/')}/{encoded}"

    async def fetch(self, transaction_id: str) -> Optional[TransactionRecord]:
        """
        Fetch and normalize the provider's view of a transaction.

        Args:
            transaction_id: Transaction or payment id to look up

        Returns:
            TransactionRecord, or None when the lookup failed for any reason
        """
        if not transaction_id:
            return None

        url = self.build_url(transaction_id)
        try:
            response = await self._get_client().get(url, timeout=self.timeout_seconds)
        except httpx.TimeoutException:
            logger.warning("remote_status_timeout", transaction_id=transaction_id)
            return None
        except httpx.HTTPError as e:
            logger.warning("remote_status_failed", transaction_id=transaction_id, error=str(e))
            return None

        if response.status_code != 200:
            logger.info("remote_status_not_found", transaction_id=transaction_id, status_code=response.status_code)
            return None

        try:
            body = response.json()
        except ValueError as e:
            logger.warning("remote_status_unparseable", transaction_id=transaction_id, error=str(e))
            return None

        if not isinstance(body, dict) or not body:
            return None

        return self.normalize_response(body, transaction_id)

    @staticmethod
    def normalize_response(body: Dict[str, Any], requested_id: str) -> TransactionRecord:
        status_upper = str(body.get("status") or "PENDING").upper()
        status = status_upper.lower()

        transaction_id = requested_id
        raw_id = body.get("_id")
        if isinstance(raw_id, dict) and raw_id.get("$oid"):
            transaction_id = str(raw_id["$oid"])
        elif body.get("transactionId"):
            transaction_id = str(body["transactionId"])

        return TransactionRecord(
            transaction_id=transaction_id,
            status=status,
            status_lower=status,
            amount=body.get("amount") or None,
            paid=status_upper == "COMPLETED",
            updated_at=datetime.now(timezone.utc).isoformat(),
            raw_payload=body,
        )
