import logging
import sys
from typing import Any, List, Optional, TextIO

import structlog
from structlog.types import Processor

from gitgate.core.config import Settings
from gitgate.infrastructure.logging_processors import (
    ServiceContext,
    sanitize_sensitive_data,
    set_log_severity,
)

# Third-party loggers routed through our handler
ROUTED_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error")

# GitPython logs every command it runs at DEBUG
QUIET_LOGGERS = ("git.cmd", "git.repo", "git.util")


def _shared_processors(settings: Settings) -> List[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        ServiceContext(settings.app_name, settings.environment),
        structlog.processors.add_log_level,
        set_log_severity,
        structlog.processors.format_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        # Must run last before rendering
        sanitize_sensitive_data,
    ]


def setup_logging(settings: Settings, stream: Optional[TextIO] = None) -> None:
    """
    Route structlog and stdlib logging through one handler.

    Args:
        stream: defaults to stdout
    """
    shared_processors = _shared_processors(settings)

    if settings.log_format == "json":
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=settings.is_development)

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(formatter)
    level = getattr(logging, settings.log_level)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in ROUTED_LOGGERS:
        routed = logging.getLogger(name)
        routed.handlers.clear()
        routed.addHandler(handler)
        routed.setLevel(level)
        routed.propagate = False

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)
