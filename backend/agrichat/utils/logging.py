# /agrichat/utils/logging.py

import logging
import sys
import structlog
from agrichat.config.settings import settings

# Structured logging for the web process and the standalone sender worker.
# Console output in development, JSON lines everywhere else.

_configured = False


def setup_logging(level: int = logging.INFO):
    """
    Configures structlog on top of the stdlib logging module so that both
    `logging.getLogger(__name__)` loggers and structlog loggers share one
    formatter under Gunicorn/Uvicorn.
    """
    global _configured
    if _configured:
        return

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.environment == "development":
        final_processor = structlog.dev.ConsoleRenderer()
    else:
        final_processor = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=final_processor,
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _configured = True
