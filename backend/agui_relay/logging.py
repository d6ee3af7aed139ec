"""
structlog setup for the relay, wired to the stdlib handlers in logging.yaml.

Every record passes through the same pre-chain, so lines from uvicorn and
from the relay's own loggers render alike. While a run is being streamed its
``thread_id``/``run_id`` are bound as context variables and appear on every
line logged for it, including the converter's and the adapters'.
"""
from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import structlog

PRE_CHAIN = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
]


def configure_structlog() -> None:
    structlog.configure(
        processors=[
            *PRE_CHAIN,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


@contextmanager
def run_context(thread_id: str, run_id: str, user_id: str | None = None) -> Iterator[None]:
    """Bind a run's identifiers to all log lines emitted inside the block.

    ``user_id`` is only bound when known. Bindings are restored on exit, so
    concurrent runs in other tasks keep their own.
    """
    bindings = {"thread_id": thread_id, "run_id": run_id}
    if user_id:
        bindings["user_id"] = user_id
    with structlog.contextvars.bound_contextvars(**bindings):
        yield


def null_logger():
    """A structlog logger that discards everything."""
    return structlog.wrap_logger(
        structlog.ReturnLogger(),
        processors=[],
        wrapper_class=structlog.BoundLogger,
    )


class _RelayFormatter(structlog.stdlib.ProcessorFormatter):
    """Formatter referenced from logging.yaml; subclasses pick the renderer."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, processor=self.renderer(), foreign_pre_chain=PRE_CHAIN, **kwargs)

    def renderer(self):
        raise NotImplementedError


class StructlogJSONFormatter(_RelayFormatter):
    def renderer(self):
        return structlog.processors.JSONRenderer()


class StructlogConsoleFormatter(_RelayFormatter):
    def renderer(self):
        return structlog.dev.ConsoleRenderer(colors=True)
