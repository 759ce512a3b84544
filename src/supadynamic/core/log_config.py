"""structlog configuration for supa-dynamic.

Modules obtain loggers with ``structlog.get_logger()`` and emit snake_case
events with keyword context. ``configure_logging`` installs the processor
chain once, driven by ``LoggingConfig``.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import structlog

from supadynamic.core.config import LoggingConfig


def configure_logging(cfg: Optional[LoggingConfig] = None) -> None:
    """Configure structlog from a LoggingConfig.

    Args:
        cfg: Logging settings. Defaults to ``LoggingConfig()``.
    """
    cfg = cfg or LoggingConfig()

    if cfg.format == "console":
        renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(cfg.level)
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
