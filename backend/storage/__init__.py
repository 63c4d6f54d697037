# storage/__init__.py
# ============================================================================
# TIKTOKPAY PAYMENTS BRIDGE v1.0 - STORAGE MODULE
# ============================================================================
# Ephemeral key-value stores and the webhook audit log
# ============================================================================

from storage.key_value_store import (
    IKeyValueStore,
    InMemoryStore,
    JsonFileStore,
    DataType,
    get_store,
    reset_stores,
)
from storage.webhook_log import WebhookLog

__all__ = [
    "IKeyValueStore",
    "InMemoryStore",
    "JsonFileStore",
    "DataType",
    "get_store",
    "reset_stores",
    "WebhookLog",
]
