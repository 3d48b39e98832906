from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

import structlog


def configure_logging(level: str = "INFO", *, json_output: bool = True) -> None:
    """Configure structlog on top of stdlib logging; run-scoped fields come from contextvars."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )

    renderer: Any = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(*, name: str | None = None, **kwargs: Any) -> structlog.stdlib.BoundLogger:
    logger = structlog.get_logger(name)
    if kwargs:
        return logger.bind(**kwargs)
    return logger


def new_run_id() -> str:
    return f"run_{uuid.uuid4().hex[:12]}"


@contextmanager
def run_log_context(run_id: str, **fields: Any) -> Iterator[str]:
    """Attach ``run_id`` (and extra fields) to every log event emitted inside the block."""
    with structlog.contextvars.bound_contextvars(run_id=run_id, **fields):
        yield run_id
