"""Centralized exception hierarchy for the castwright package.

All domain-specific exceptions inherit from ``CastwrightError`` so callers
can catch the entire family with a single ``except`` clause. Every error
records the pipeline stage it originated in and, where a generative
back-end produced text that could not be used, the raw text for diagnosis.
"""

from __future__ import annotations


class CastwrightError(Exception):
    """Base exception for all castwright errors.

    Attributes:
        stage: Pipeline stage the error originated in, if known.
        raw_text: Unparsed generative output associated with the failure.
    """

    default_stage: str | None = None

    def __init__(
        self,
        message: str = "",
        *,
        stage: str | None = None,
        raw_text: str | None = None,
    ) -> None:
        super().__init__(message)
        self.stage = stage if stage is not None else self.default_stage
        self.raw_text = raw_text


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------


class ConfigurationError(CastwrightError):
    """Raised when required configuration (e.g. a credential) is missing."""

    default_stage = "config"


# ---------------------------------------------------------------------------
# Ingestion errors
# ---------------------------------------------------------------------------


class IngestionError(CastwrightError):
    """Raised when a source is unreachable, unparseable, or empty."""

    default_stage = "ingest"


# ---------------------------------------------------------------------------
# Repair errors
# ---------------------------------------------------------------------------


class RepairError(CastwrightError):
    """Base exception for structured-output repair failures."""


class NoStructuredOutputError(RepairError):
    """Raised when model text contains no JSON array or object."""


class MalformedOutputError(RepairError):
    """Raised when the located JSON substring does not parse."""


# ---------------------------------------------------------------------------
# Stage errors
# ---------------------------------------------------------------------------


class UnderstandingError(CastwrightError):
    """Raised when knowledge-graph extraction fails at a sub-step.

    Attributes:
        step: Name of the sub-step that failed (``topics``, ``entities``...).
    """

    default_stage = "understand"

    def __init__(
        self,
        message: str = "",
        *,
        step: str | None = None,
        stage: str | None = None,
        raw_text: str | None = None,
    ) -> None:
        super().__init__(message, stage=stage, raw_text=raw_text)
        self.step = step


class ScriptError(CastwrightError):
    """Raised when podcast script generation fails at a sub-step.

    Attributes:
        step: Name of the sub-step that failed (``speakers``, ``dialogue``...).
    """

    default_stage = "script"

    def __init__(
        self,
        message: str = "",
        *,
        step: str | None = None,
        stage: str | None = None,
        raw_text: str | None = None,
    ) -> None:
        super().__init__(message, stage=stage, raw_text=raw_text)
        self.step = step


class NoVoicesAvailableError(CastwrightError):
    """Raised when voice assignment is given an empty voice list."""

    default_stage = "voice"


class SynthesisError(CastwrightError):
    """Raised when speech synthesis or audio assembly fails."""

    default_stage = "voice"


class DeliveryError(CastwrightError):
    """Raised when packaging or persisting a podcast fails."""

    default_stage = "deliver"


# ---------------------------------------------------------------------------
# Pipeline errors
# ---------------------------------------------------------------------------


class PipelineError(CastwrightError):
    """Raised by the orchestrator to report which stage aborted the run."""


class PipelineCancelledError(CastwrightError):
    """Raised when a cancellation token aborts an in-flight run."""
