# schemas/payments.py
# ============================================================================
# TIKTOKPAY PAYMENTS BRIDGE v1.0 - PAYMENT SCHEMAS
# ============================================================================
# Purpose: Canonical transaction records, request/response bodies and
# conversion events shared by the services and the HTTP layer
#
# Stored records use snake_case keys; request bodies accept the camelCase
# names the checkout pages send.
# ============================================================================

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# SECTION 1: ENUMS
# ============================================================================

class CanonicalStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    CANCELED = "canceled"
    REFUNDED = "refunded"


class TtclidSource(str, Enum):
    """Which step of the attribution cascade produced a ttclid."""
    STORED_QUERY = "stored-query"
    PAYLOAD_DIRECT = "payload-direct"
    PAYLOAD_UTM_QUERY = "payload-utm-query"
    PAYLOAD_METADATA_UTM = "payload-metadata-utm"
    PAYLOAD_UTM_STRING = "payload-utm-string"
    EXISTING_RECORD = "existing-record"


class SchemaVariant(str, Enum):
    """Upstream payload shapes."""
    RAILWAY = "railway"      # identity under _id.$oid, nested customer
    SUPABASE = "supabase"    # transaction_id / transactionId, flat cliente_* fields


def _to_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


# ============================================================================
# SECTION 2: TRANSACTION STATE
# ============================================================================

class Customer(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    document: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("name", "email", "document", "phone", mode="before")
    @classmethod
    def _coerce_str(cls, v: Any) -> Optional[str]:
        return _to_optional_str(v)


class TransactionRecord(BaseModel):
    """Canonical merged state for one transaction."""
    model_config = ConfigDict(extra="ignore")

    transaction_id: str
    payment_id: Optional[str] = None
    vendor_id: Optional[str] = None

    status: Optional[str] = None
    status_lower: str = ""
    amount: Optional[Any] = None
    description: Optional[Any] = None
    customer: Customer = Field(default_factory=Customer)

    created_at: Optional[Any] = None
    updated_at: Optional[str] = None

    paid: bool = False
    ttclid: Optional[str] = None
    ttclid_source: Optional[TtclidSource] = None

    raw_payload: Dict[str, Any] = Field(default_factory=dict)
    schema_variant: Optional[SchemaVariant] = None

    @field_validator("payment_id", "vendor_id", "ttclid", mode="before")
    @classmethod
    def _coerce_str(cls, v: Any) -> Optional[str]:
        return _to_optional_str(v)


class AttributionQuery(BaseModel):
    """Query string or object captured before payment completes."""
    utm_query: Union[str, Dict[str, Any]]
    saved_at: str


# ============================================================================
# SECTION 3: REQUESTS / RESPONSES
# ============================================================================

class UtmCaptureRequest(BaseModel):
    """Body of the attribution capture endpoint."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    transaction_id: Optional[str] = Field(default=None, alias="transactionId")
    utm_query: Optional[Union[str, Dict[str, Any]]] = Field(default=None, alias="utmQuery")
    amount: Optional[Any] = None
    page_path: Optional[str] = Field(default=None, alias="pagePath")

    @field_validator("transaction_id", mode="before")
    @classmethod
    def _coerce_str(cls, v: Any) -> Optional[str]:
        return _to_optional_str(v)


class UtmCaptureResponse(BaseModel):
    success: bool = True
    transactionId: str


class StatusPollRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    payment_id: Optional[str] = None

    @field_validator("id", "payment_id", mode="before")
    @classmethod
    def _coerce_str(cls, v: Any) -> Optional[str]:
        return _to_optional_str(v)


class WebhookAck(BaseModel):
    success: bool = True
    message: str = "Webhook received"
    transaction_id: str
    status: Optional[str] = None
    paid: bool


class PolledTransaction(BaseModel):
    id: Optional[str] = None
    transaction_id: Optional[str] = None
    payment_id: Optional[str] = None
    status: str
    amount: Optional[Any] = None
    updated_at: Optional[str] = None
    ttclid: Optional[str] = None


class StatusPollResponse(BaseModel):
    success: bool = True
    status: str
    paid: bool
    transaction: Optional[PolledTransaction] = None
    message: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """JSON body with unset top-level fields dropped."""
        body = self.model_dump(mode="json")
        return {k: v for k, v in body.items() if v is not None}


# ============================================================================
# SECTION 4: CONVERSION EVENTS
# ============================================================================

class ConversionContent(BaseModel):
    content_id: str
    content_type: str = "product"
    content_name: str


class ConversionUser(BaseModel):
    """SHA-256 hex digests of customer identifiers."""
    email: Optional[str] = None
    phone_number: Optional[str] = None
    external_id: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.email or self.phone_number or self.external_id)


class ConversionEvent(BaseModel):
    event: Literal["InitiateCheckout", "Purchase"]
    event_id: str
    value: float = 0.0
    currency: str = "BRL"
    contents: List[ConversionContent] = Field(default_factory=list)
    properties: Dict[str, Any] = Field(default_factory=dict)
    user: Optional[ConversionUser] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
