# storage/webhook_log.py
# ============================================================================
# TIKTOKPAY PAYMENTS BRIDGE v1.0 - WEBHOOK AUDIT LOG
# ============================================================================
# Append-only text log of webhook deliveries, kept next to the store files
# ============================================================================

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger("Payments.WebhookLog")


class WebhookLog:
    """Best-effort diagnostic log; write failures are never raised."""

    def __init__(self, path: str, enabled: bool = True):
        self.path = path
        self.enabled = enabled

    @staticmethod
    def format_entry(message: str, data: Optional[Any] = None, now: Optional[datetime] = None) -> str:
        timestamp = (now or datetime.now(timezone.utc)).isoformat()
        entry = f"[{timestamp}] {message}"
        if data is not None:
            entry += "\n" + json.dumps(data, indent=2, ensure_ascii=False, default=str)
        return entry + "\n---\n"

    async def append(self, message: str, data: Optional[Any] = None) -> None:
        if not self.enabled:
            return
        entry = self.format_entry(message, data)
        try:
            await asyncio.get_event_loop().run_in_executor(None, self._write, entry)
        except OSError as e:
            logger.warning(f"Failed to write webhook log {self.path}: {e}")

    def _write(self, entry: str) -> None:
        with open(self.path, "a", encoding="utf-8") as fh:
            fh.write(entry)
