"""structlog setup and the run/stage logging contexts of a pipeline run.

``configure_logging`` is called once by the CLI. A pipeline run is wrapped
in ``run_logging_context``, which binds ``pipeline_run_id``; each of the
five stages is wrapped in ``stage_logging_context``, which binds the stage
name, times the stage and logs how it ended. A failing stage logs the
error type, the sub-step for understanding and script failures, and the
length of any unusable model output (never the output itself).
"""

from __future__ import annotations

import asyncio
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog

from castwright.exceptions import CastwrightError, PipelineCancelledError

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# Back-end client libraries that log every request at INFO.
QUIET_LOGGERS: tuple[str, ...] = ("LiteLLM", "httpx", "httpcore", "trafilatura")

_CANCELLED = (asyncio.CancelledError, PipelineCancelledError)


def generate_run_id() -> str:
    """Generate a unique identifier for one pipeline run."""
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# structlog configuration
# ---------------------------------------------------------------------------


def _renderer(fmt: str) -> structlog.types.Processor:
    if fmt == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def configure_logging(
    level: str = "INFO",
    fmt: str = "console",
    log_file: str | Path | None = None,
    run_id: str | None = None,
) -> None:
    """Route structlog through stdlib handlers on stderr and ``log_file``.

    Records from the back-end client libraries pass through the same
    renderer, and those in ``QUIET_LOGGERS`` never go below WARNING.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: ``"console"`` for humans or ``"json"`` for one object per line.
        log_file: Optional file receiving the same records as stderr.
        run_id: Bound as ``pipeline_run_id`` on every entry when given.

    Raises:
        ValueError: If ``level`` is not a recognized log level.
    """
    level_upper = level.upper()
    if level_upper not in _VALID_LEVELS:
        msg = f"Invalid log level: {level!r}. Must be one of {sorted(_VALID_LEVELS)}"
        raise ValueError(msg)
    numeric_level = getattr(logging, level_upper)

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(fmt),
        ],
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(str(log_file), encoding="utf-8"))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(numeric_level)
    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *pre_chain,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    if run_id:
        structlog.contextvars.bind_contextvars(pipeline_run_id=run_id)


# ---------------------------------------------------------------------------
# Run and stage contexts
# ---------------------------------------------------------------------------


def _elapsed(started: float) -> float:
    return round(time.perf_counter() - started, 3)


def _failure_fields(exc: BaseException) -> dict[str, Any]:
    """Diagnostic fields for a failed stage."""
    fields: dict[str, Any] = {"error_type": type(exc).__name__, "error": str(exc)}
    if isinstance(exc, CastwrightError):
        step = getattr(exc, "step", None)
        if step is not None:
            fields["step"] = step
        if exc.raw_text is not None:
            fields["raw_text_length"] = len(exc.raw_text)
    return fields


@contextmanager
def run_logging_context(run_id: str | None = None, **extra: Any) -> Iterator[str]:
    """Bind ``pipeline_run_id`` for the duration of one pipeline run.

    An id already bound by ``configure_logging`` is reused so CLI and
    pipeline entries share it. A failed run logs ``pipeline_failed`` with
    the stage named by the error; a cancelled one logs
    ``pipeline_cancelled``.

    Yields:
        The run id in effect.
    """
    bound = structlog.contextvars.get_contextvars().get("pipeline_run_id")
    effective = run_id or bound or generate_run_id()
    started = time.perf_counter()
    with structlog.contextvars.bound_contextvars(pipeline_run_id=effective, **extra):
        try:
            yield effective
        except _CANCELLED as exc:
            logger.warning("pipeline_cancelled", reason=str(exc), elapsed_seconds=_elapsed(started))
            raise
        except Exception as exc:
            logger.error(
                "pipeline_failed",
                stage=getattr(exc, "stage", None),
                error_type=type(exc).__name__,
                elapsed_seconds=_elapsed(started),
            )
            raise


@contextmanager
def stage_logging_context(
    stage: str,
    stage_index: int = 0,
    **extra: Any,
) -> Iterator[structlog.stdlib.BoundLogger]:
    """Bind the stage to every entry emitted inside the block.

    Logs ``stage_started`` and then exactly one of ``stage_completed``,
    ``stage_cancelled`` or ``stage_failed``, each with the stage's wall
    time. Exceptions are re-raised unchanged.

    Args:
        stage: Pipeline stage name (``ingest``, ``understand``...).
        stage_index: Position of the stage in the pipeline.
        **extra: Additional key-value pairs to bind.

    Yields:
        A logger for stage-level events.

    Example::

        with stage_logging_context("script", stage_index=2) as log:
            log.info("speakers_generated", count=2)
    """
    log: structlog.stdlib.BoundLogger = structlog.get_logger(f"castwright.stage.{stage}")
    started = time.perf_counter()
    with structlog.contextvars.bound_contextvars(stage=stage, stage_index=stage_index, **extra):
        log.info("stage_started", stage=stage, stage_index=stage_index)
        try:
            yield log
        except _CANCELLED:
            log.warning("stage_cancelled", stage=stage, elapsed_seconds=_elapsed(started))
            raise
        except Exception as exc:
            log.error(
                "stage_failed",
                stage=stage,
                elapsed_seconds=_elapsed(started),
                **_failure_fields(exc),
            )
            raise
        log.info("stage_completed", stage=stage, elapsed_seconds=_elapsed(started))
