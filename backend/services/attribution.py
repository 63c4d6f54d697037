# services/attribution.py
# ============================================================================
# TIKTOKPAY PAYMENTS BRIDGE v1.0 - ATTRIBUTION RESOLVER
# ============================================================================
# Purpose: Find the ad click identifier (ttclid) for a transaction
#
# CASCADE (first non-empty match wins):
#   1. utm query captured at checkout for this transaction
#   2. payload.ttclid
#   3. payload.utmQuery
#   4. payload.metadata.utmQuery
#   5. payload.utm (query string only)
#   6. ttclid already on the stored record
# ============================================================================

import json
import re
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Dict, Optional
from urllib.parse import unquote

import structlog

from schemas.payments import AttributionQuery, TtclidSource, UtmCaptureRequest, UtmCaptureResponse
from services.conversion_hooks import IEventSink, on_checkout_initiated
from services.errors import MissingFieldsError
from storage import IKeyValueStore

logger = structlog.get_logger().bind(component="attribution")

# ttclid must start the string or follow "?", "&", "#", ";" or whitespace
TTCLID_PATTERN = re.compile(r"(?:^|[?&#;\s])ttclid=([^&\s]+)")
_MALFORMED_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")

VIA_STRUCTURED = "structured"
VIA_QUERY_STRING = "query-string"


@dataclass(frozen=True)
class ExtractionResult:
    matched: bool
    value: Optional[str] = None
    via: Optional[str] = None


NO_MATCH = ExtractionResult(matched=False)


@dataclass(frozen=True)
class AttributionResult:
    ttclid: Optional[str] = None
    source: Optional[TtclidSource] = None

    @property
    def found(self) -> bool:
        return self.ttclid is not None


def percent_decode(value: str) -> Optional[str]:
    """Strict percent-decoding; None when the escapes are malformed."""
    if _MALFORMED_ESCAPE.search(value):
        return None
    try:
        return unquote(value, errors="strict")
    except UnicodeDecodeError:
        return None


def _non_empty(value: Any) -> Optional[str]:
    if not value or isinstance(value, (bool, dict, list)):
        return None
    return value if isinstance(value, str) else str(value)


def extract_from_query_string(blob: str) -> ExtractionResult:
    match = TTCLID_PATTERN.search(blob)
    if not match:
        return NO_MATCH
    decoded = percent_decode(match.group(1))
    if not decoded:
        return NO_MATCH
    return ExtractionResult(matched=True, value=decoded, via=VIA_QUERY_STRING)


def extract_ttclid(blob: Any, allow_structured: bool = True) -> ExtractionResult:
    """
    Pull a ttclid out of a utm blob.

    Tries the blob as a structured object carrying a ``ttclid`` field, then
    as a raw query string.

    Args:
        blob: dict, JSON text or query string
        allow_structured: False to treat the blob strictly as a query string
    """
    if not blob:
        return NO_MATCH

    if isinstance(blob, dict):
        if not allow_structured:
            return NO_MATCH
        value = _non_empty(blob.get("ttclid"))
        if value is not None:
            return ExtractionResult(matched=True, value=value, via=VIA_STRUCTURED)
        return NO_MATCH

    if not isinstance(blob, str):
        return NO_MATCH

    if allow_structured:
        try:
            decoded = json.loads(blob)
        except ValueError:
            decoded = None
        if isinstance(decoded, dict):
            value = _non_empty(decoded.get("ttclid"))
            if value is not None:
                return ExtractionResult(matched=True, value=value, via=VIA_STRUCTURED)

    return extract_from_query_string(blob)


def resolve_ttclid(
    transaction_id: str,
    payload: Dict[str, Any],
    stored_query: Optional[Any] = None,
    existing_record: Optional[Dict[str, Any]] = None,
) -> AttributionResult:
    """
    Run the attribution cascade for one transaction.

    Args:
        transaction_id: Transaction being resolved (for logging)
        payload: Incoming webhook payload
        stored_query: utm blob captured for this transaction, if any
        existing_record: Record stored before this merge, if any

    Returns:
        AttributionResult; both fields None when nothing matched
    """
    result = extract_ttclid(stored_query)
    if result.matched:
        return _resolved(transaction_id, result.value, TtclidSource.STORED_QUERY)

    direct = _non_empty(payload.get("ttclid"))
    if direct is not None:
        return _resolved(transaction_id, direct, TtclidSource.PAYLOAD_DIRECT)

    result = extract_ttclid(payload.get("utmQuery"))
    if result.matched:
        return _resolved(transaction_id, result.value, TtclidSource.PAYLOAD_UTM_QUERY)

    metadata = payload.get("metadata")
    if isinstance(metadata, dict):
        result = extract_ttclid(metadata.get("utmQuery"))
        if result.matched:
            return _resolved(transaction_id, result.value, TtclidSource.PAYLOAD_METADATA_UTM)

    utm = payload.get("utm")
    if isinstance(utm, str):
        result = extract_ttclid(utm, allow_structured=False)
        if result.matched:
            return _resolved(transaction_id, result.value, TtclidSource.PAYLOAD_UTM_STRING)

    if existing_record:
        previous = _non_empty(existing_record.get("ttclid"))
        if previous is not None:
            return _resolved(transaction_id, previous, TtclidSource.EXISTING_RECORD)

    logger.debug("ttclid_not_found", transaction_id=transaction_id)
    return AttributionResult()


def _resolved(transaction_id: str, ttclid: str, source: TtclidSource) -> AttributionResult:
    logger.info("ttclid_resolved", transaction_id=transaction_id, source=source.value)
    return AttributionResult(ttclid=ttclid, source=source)


# =============================================================================
# ATTRIBUTION CAPTURE
# =============================================================================

class AttributionCapture:
    """Stores the utm query a checkout page sends when the PIX is created."""

    def __init__(
        self,
        utm_queries: IKeyValueStore,
        event_sink: Optional[IEventSink] = None,
        reference_tz: tzinfo = timezone.utc,
        currency: str = "BRL",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.utm_queries = utm_queries
        self.event_sink = event_sink
        self.reference_tz = reference_tz
        self.currency = currency
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def capture(self, request: UtmCaptureRequest) -> UtmCaptureResponse:
        if not request.transaction_id or not request.utm_query:
            raise MissingFieldsError(
                "transactionId and utmQuery are required",
                fields=["transactionId", "utmQuery"],
            )

        saved_at = self._clock().astimezone(self.reference_tz).isoformat(timespec="seconds")
        query = AttributionQuery(utm_query=request.utm_query, saved_at=saved_at)

        queries = await self.utm_queries.get_all()
        queries[request.transaction_id] = query.model_dump(mode="json")
        await self.utm_queries.put_all(queries)

        logger.info("utm_query_saved", transaction_id=request.transaction_id)

        if self.event_sink is not None:
            await on_checkout_initiated(
                self.event_sink,
                transaction_id=request.transaction_id,
                amount=request.amount,
                ttclid=extract_ttclid(request.utm_query).value,
                page_path=request.page_path,
                currency=self.currency,
            )

        return UtmCaptureResponse(transactionId=request.transaction_id)
