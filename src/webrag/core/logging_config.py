"""structlog setup for WebRAG.

Every module logs through ``get_logger(__name__)`` with snake_case event names.
Per-URL work binds ``url`` (and ``stage`` inside the stage runner) so one URL's
lines can be followed through a concurrent batch.
"""

from __future__ import annotations

import logging
import sys
import time
from typing import Any, Literal

import structlog

LogFormat = Literal["colored", "plain", "json"]

# Libraries that log every request or model load at INFO.
_QUIET_LOGGERS = ("aiohttp", "trafilatura", "htmldate", "httpx", "openai", "sentence_transformers")


def _renderer(log_format: LogFormat) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=log_format == "colored" and sys.stderr.isatty())


def configure_logging(
    log_level: str = "INFO",
    log_format: LogFormat = "colored",
    log_timestamps: bool = True,
) -> None:
    """Route structlog through stdlib logging on stderr.

    Args:
        log_level: Minimum level name, e.g. ``"DEBUG"`` or ``"WARNING"``.
        log_format: ``"colored"`` for a terminal, ``"plain"`` for redirected
            output, ``"json"`` for one JSON object per line.
        log_timestamps: Prefix each event with an ISO timestamp.
    """
    processors: list[structlog.types.Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
    ]
    if log_timestamps:
        processors.append(structlog.processors.TimeStamper(fmt="iso"))
    processors += [
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _renderer(log_format),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper()),
        force=True,
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


class Timer:
    """Logs ``<operation>_started``, then ``_completed`` or ``_failed`` with ``duration_ms``.

    Call ``complete(**fields)`` to attach results (byte counts, chunk counts,
    cache hits) to the completion event; otherwise a bare completion event is
    logged on exit.

        with Timer(ctx.logger, "stage_embed") as timer:
            vectors = await embedder.embed(texts)
            timer.complete(vectors=len(vectors))
    """

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger,
        operation: str,
        **context: Any,
    ) -> None:
        self.logger = logger.bind(operation=operation, **context)
        self.operation = operation
        self.start_time: float = 0.0
        self.end_time: float | None = None
        self._completed = False

    @property
    def elapsed_ms(self) -> float:
        end = self.end_time if self.end_time is not None else time.monotonic()
        return round((end - self.start_time) * 1000, 2)

    def __enter__(self) -> Timer:
        self.start_time = time.monotonic()
        self.end_time = None
        self.logger.debug(f"{self.operation}_started")
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if exc_type is not None:
            self.end_time = time.monotonic()
            self.logger.warning(
                f"{self.operation}_failed",
                duration_ms=self.elapsed_ms,
                error_type=exc_type.__name__,
                error=str(exc_val) if exc_val else None,
            )
        elif not self._completed:
            self.end_time = time.monotonic()
            self.logger.info(f"{self.operation}_completed", duration_ms=self.elapsed_ms)

    def complete(self, **fields: Any) -> None:
        self.end_time = time.monotonic()
        self._completed = True
        self.logger.info(f"{self.operation}_completed", duration_ms=self.elapsed_ms, **fields)
