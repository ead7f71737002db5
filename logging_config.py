"""
structlog setup shared by the service and the ledger pipeline.

LOG_FORMAT=json switches to machine-readable output; anything else renders
for a terminal.
"""

import logging
import os
import sys

import structlog


def configure_logging(level: str = "", fmt: str = "") -> None:
    level = (level or os.getenv("LOG_LEVEL", "INFO")).strip().upper()
    fmt = (fmt or os.getenv("LOG_FORMAT", "console")).strip().lower()

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    renderer = (
        structlog.processors.JSONRenderer()
        if fmt == "json"
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str):
    return structlog.get_logger(name)
