"""
Pytest configuration and fixtures for the payments bridge tests

Provides in-memory stores, a fixed clock, a recording event sink and a
FastAPI TestClient wired to those collaborators. Nothing here touches the
network.
"""
import os
from datetime import datetime, timezone
from typing import List

import pytest

os.environ.setdefault("PAYMENTS_WEBHOOK_LOG", "false")
os.environ.setdefault("PAYMENTS_STATUS_API_URL", "")

from config import PaymentsConfig  # noqa: E402
from schemas.payments import ConversionEvent  # noqa: E402
from services.attribution import AttributionCapture  # noqa: E402
from services.conversion_hooks import IEventSink  # noqa: E402
from services.container import build_services  # noqa: E402
from services.transactions import TransactionService  # noqa: E402
from storage import IKeyValueStore, InMemoryStore  # noqa: E402


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't touch the HTTP layer"
    )
    config.addinivalue_line(
        "markers", "integration: Tests that go through the FastAPI app"
    )


# =======================
# COLLABORATORS
# =======================

FIXED_NOW = datetime(2026, 1, 15, 15, 0, 0, tzinfo=timezone.utc)


class RecordingSink(IEventSink):
    def __init__(self):
        self.events: List[ConversionEvent] = []

    async def emit(self, event: ConversionEvent) -> None:
        self.events.append(event)


class FailingSink(IEventSink):
    async def emit(self, event: ConversionEvent) -> None:
        raise RuntimeError("pixel endpoint unavailable")


class BrokenStore(IKeyValueStore):
    """Store whose every call fails, for unexpected-error paths"""

    async def get(self, key):
        raise RuntimeError("store exploded")

    async def get_all(self):
        raise RuntimeError("store exploded")

    async def put_all(self, data):
        raise RuntimeError("store exploded")


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def transactions_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def utm_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def event_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def failing_sink() -> FailingSink:
    return FailingSink()


@pytest.fixture
def broken_store() -> BrokenStore:
    return BrokenStore()


@pytest.fixture
def reference_tz():
    return PaymentsConfig(reference_utc_offset_hours=-3).reference_tz


@pytest.fixture
def transaction_service(transactions_store, utm_store, event_sink, reference_tz, fixed_clock):
    return TransactionService(
        transactions=transactions_store,
        utm_queries=utm_store,
        event_sink=event_sink,
        reference_tz=reference_tz,
        clock=fixed_clock,
    )


@pytest.fixture
def attribution_capture(utm_store, event_sink, reference_tz, fixed_clock):
    return AttributionCapture(
        utm_queries=utm_store,
        event_sink=event_sink,
        reference_tz=reference_tz,
        clock=fixed_clock,
    )


# =======================
# API FIXTURES
# =======================

@pytest.fixture
def test_config(tmp_path) -> PaymentsConfig:
    return PaymentsConfig(data_dir=str(tmp_path), webhook_log_enabled=False)


@pytest.fixture
def payment_services(test_config, transactions_store, utm_store, event_sink):
    return build_services(
        test_config,
        transactions_store=transactions_store,
        utm_store=utm_store,
        event_sink=event_sink,
    )


@pytest.fixture
def client(payment_services):
    """TestClient with the service container overridden"""
    from fastapi.testclient import TestClient

    from api.server import app
    from services.container import get_services

    app.dependency_overrides[get_services] = lambda: payment_services
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
