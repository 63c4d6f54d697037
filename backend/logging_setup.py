# logging_setup.py
# ============================================================================
# TIKTOKPAY PAYMENTS BRIDGE v1.0 - LOGGING
# ============================================================================
# stdlib logging for framework/storage modules, structlog for core services
# ============================================================================

import logging

import structlog

_configured = False


def configure_logging(level: str = "INFO") -> None:
    """Configure stdlib logging and structlog once per process."""
    global _configured
    if _configured:
        return

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True
