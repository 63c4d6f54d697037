# config.py
# ============================================================================
# TIKTOKPAY PAYMENTS BRIDGE v1.0 - CONFIGURATION
# ============================================================================
# Environment-driven settings for storage, remote status and the HTTP server
# ============================================================================

import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import timedelta, timezone
from typing import List, Optional

logger = logging.getLogger("Payments.Config")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid value for {name}={raw!r}, using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid value for {name}={raw!r}, using {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class PaymentsConfig:
    """Configuration for the payments bridge."""
    data_dir: str = field(default_factory=tempfile.gettempdir)
    status_api_url: str = ""
    status_api_timeout: float = 10.0
    reference_utc_offset_hours: int = -3
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    webhook_log_enabled: bool = True
    log_level: str = "INFO"
    default_currency: str = "BRL"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "PaymentsConfig":
        return cls(
            data_dir=os.getenv("PAYMENTS_DATA_DIR") or tempfile.gettempdir(),
            status_api_url=os.getenv("PAYMENTS_STATUS_API_URL", "").strip(),
            status_api_timeout=_env_float("PAYMENTS_STATUS_API_TIMEOUT", 10.0),
            reference_utc_offset_hours=_env_int("PAYMENTS_UTC_OFFSET_HOURS", -3),
            cors_origins=[
                o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()
            ] or ["*"],
            webhook_log_enabled=_env_bool("PAYMENTS_WEBHOOK_LOG", True),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            default_currency=os.getenv("PAYMENTS_CURRENCY", "BRL"),
            port=_env_int("PORT", 8000),
        )

    @property
    def remote_status_enabled(self) -> bool:
        return bool(self.status_api_url)

    @property
    def reference_tz(self) -> timezone:
        """Fixed civil offset, no daylight saving."""
        return timezone(timedelta(hours=self.reference_utc_offset_hours))


_config: Optional[PaymentsConfig] = None


def get_config() -> PaymentsConfig:
    """Get or create the process-wide configuration."""
    global _config
    if _config is None:
        _config = PaymentsConfig.from_env()
    return _config


def reset_config() -> None:
    global _config
    _config = None
