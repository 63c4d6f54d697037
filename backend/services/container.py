# services/container.py
# ============================================================================
# TIKTOKPAY PAYMENTS BRIDGE v1.0 - SERVICE CONTAINER
# ============================================================================
# Wires stores, clients and services from configuration
# ============================================================================

import logging
import os
from dataclasses import dataclass
from typing import Optional

from config import PaymentsConfig, get_config
from services.attribution import AttributionCapture
from services.conversion_hooks import IEventSink, LoggingEventSink
from services.remote_status import RemoteStatusClient
from services.status_polling import StatusPoller
from services.transactions import TransactionService
from storage import DataType, IKeyValueStore, WebhookLog, get_store

logger = logging.getLogger("Payments.Container")


@dataclass
class PaymentServices:
    transactions: TransactionService
    capture: AttributionCapture
    poller: StatusPoller
    remote: Optional[RemoteStatusClient] = None

    async def close(self):
        if self.remote is not None:
            await self.remote.close()


def build_services(
    config: PaymentsConfig,
    transactions_store: Optional[IKeyValueStore] = None,
    utm_store: Optional[IKeyValueStore] = None,
    event_sink: Optional[IEventSink] = None,
    remote: Optional[RemoteStatusClient] = None,
    webhook_log: Optional[WebhookLog] = None,
) -> PaymentServices:
    """Build the service graph; any collaborator can be injected."""
    transactions_store = transactions_store or get_store(DataType.TRANSACTIONS, config.data_dir)
    utm_store = utm_store or get_store(DataType.UTM_QUERIES, config.data_dir)
    event_sink = event_sink or LoggingEventSink()

    if webhook_log is None:
        webhook_log = WebhookLog(
            os.path.join(config.data_dir, DataType.WEBHOOK_LOG.filename),
            enabled=config.webhook_log_enabled,
        )

    if remote is None and config.remote_status_enabled:
        remote = RemoteStatusClient(config.status_api_url, timeout_seconds=config.status_api_timeout)

    tz = config.reference_tz
    return PaymentServices(
        transactions=TransactionService(
            transactions=transactions_store,
            utm_queries=utm_store,
            webhook_log=webhook_log,
            event_sink=event_sink,
            reference_tz=tz,
            currency=config.default_currency,
        ),
        capture=AttributionCapture(
            utm_queries=utm_store,
            event_sink=event_sink,
            reference_tz=tz,
            currency=config.default_currency,
        ),
        poller=StatusPoller(transactions=transactions_store, remote=remote),
        remote=remote,
    )


# Singleton instance
_services: Optional[PaymentServices] = None


def get_services() -> PaymentServices:
    """Get or create the process-wide services."""
    global _services
    if _services is None:
        config = get_config()
        _services = build_services(config)
        logger.info(
            f"Services initialized (data_dir={config.data_dir}, "
            f"remote_status={'on' if config.remote_status_enabled else 'off'})"
        )
    return _services


async def shutdown_services() -> None:
    global _services
    if _services is not None:
        await _services.close()
        _services = None
