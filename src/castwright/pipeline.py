"""Pipeline orchestrator: ingest, understand, script, voice, deliver.

Stages run strictly in order; each consumes the previous stage's output.
A failing stage aborts the run with a ``PipelineError`` naming it. There
is no retry across stages: retries happen per generative call inside a
stage. Cancellation is checked between stages, interrupts backoff sleeps
through the ambient cancellation scope, and propagates unwrapped.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, TypeVar

import structlog
from pydantic import BaseModel, Field

from castwright.delivery import DeliveryOptions, LocalDeliveryService
from castwright.exceptions import CastwrightError, PipelineCancelledError, PipelineError
from castwright.ingestion import IngestionService, SourceRequest
from castwright.logging import run_logging_context, stage_logging_context
from castwright.providers import (
    ElevenLabsSynthesizer,
    FakeSpeechSynthesizer,
    FakeTextGenerator,
    LiteLLMTextGenerator,
)
from castwright.retry import CancellationToken, RetryPolicy, cancellation_scope
from castwright.script import ScriptGenerator, ScriptOptions
from castwright.understanding import ContentUnderstandingService
from castwright.voice import VoiceSynthesisService, apply_voice_overrides, auto_assign_voices

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from castwright.config import Settings
    from castwright.delivery import PodcastPackage
    from castwright.ingestion import ContentPackage
    from castwright.providers import SpeechSynthesizer, TextGenerator
    from castwright.script import PodcastScript
    from castwright.understanding import KnowledgeGraph
    from castwright.voice import PodcastAudio

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

T = TypeVar("T")

STAGES: tuple[str, ...] = ("ingest", "understand", "script", "voice", "deliver")


class PipelineOptions(BaseModel):
    """Per-run options for every stage."""

    script: ScriptOptions = Field(default_factory=ScriptOptions)
    delivery: DeliveryOptions = Field(default_factory=DeliveryOptions)
    voice_overrides: dict[str, str] = Field(
        default_factory=dict, description="Speaker id to voice id, replacing auto-assignment."
    )
    include_summary: bool = False


class PodcastPipeline:
    """Runs the five stages over one source.

    Every collaborator is injected; ``from_settings`` wires the real or
    offline back-ends.
    """

    def __init__(
        self,
        *,
        ingestion: IngestionService,
        understanding: ContentUnderstandingService,
        script: ScriptGenerator,
        voices: VoiceSynthesisService,
        delivery: LocalDeliveryService,
    ) -> None:
        self.ingestion = ingestion
        self.understanding = understanding
        self.script = script
        self.voices = voices
        self.delivery = delivery

    @classmethod
    def from_settings(cls, settings: Settings, *, offline: bool = False) -> PodcastPipeline:
        """Build a pipeline from resolved settings.

        Args:
            settings: Application settings.
            offline: Use the deterministic fake back-ends instead of the
                network ones; credentials are not required.

        Raises:
            ConfigurationError: If ``offline`` is false and a credential
                is missing.
        """
        understanding_llm: TextGenerator
        script_llm: TextGenerator
        synthesizer: SpeechSynthesizer
        if offline:
            understanding_llm = FakeTextGenerator()
            script_llm = FakeTextGenerator()
            synthesizer = FakeSpeechSynthesizer()
        else:
            settings.validate_credentials()
            credentials = settings.credentials
            understanding_llm = LiteLLMTextGenerator(
                settings.understanding_llm,
                credentials.for_provider(settings.understanding_llm.provider),
            )
            script_llm = LiteLLMTextGenerator(
                settings.script_llm,
                credentials.for_provider(settings.script_llm.provider),
            )
            synthesizer = ElevenLabsSynthesizer(
                settings.synthesis, credentials.for_provider("elevenlabs")
            )

        retry = RetryPolicy(
            max_retries=settings.retry.max_retries,
            initial_backoff=settings.retry.initial_backoff_seconds,
        )
        logger.debug("pipeline_built", offline=offline, output_dir=str(settings.output_dir))
        return cls(
            ingestion=IngestionService.from_settings(settings.ingestion),
            understanding=ContentUnderstandingService(
                understanding_llm,
                retry=retry,
                temperature=settings.understanding_llm.temperature,
                max_tokens=settings.understanding_llm.max_tokens,
            ),
            script=ScriptGenerator(
                script_llm,
                retry=retry,
                temperature=settings.script_llm.temperature,
                max_tokens=settings.script_llm.max_tokens,
            ),
            voices=VoiceSynthesisService(
                synthesizer,
                retry=retry,
                chars_per_second=settings.synthesis.chars_per_second,
                max_concurrency=settings.synthesis.max_concurrency,
            ),
            delivery=LocalDeliveryService(settings.output_dir),
        )

    # -- stages --------------------------------------------------------------

    async def _voice(self, script: PodcastScript, options: PipelineOptions) -> PodcastAudio:
        available = await self.voices.retry.run(
            self.voices.synthesizer.list_voices, label="voice.list_voices"
        )
        mappings = auto_assign_voices(script.speakers, available)
        if options.voice_overrides:
            mappings = apply_voice_overrides(mappings, options.voice_overrides)
        return await self.voices.synthesize_podcast(script, mappings)

    async def _stage(
        self,
        index: int,
        call: Callable[[], Awaitable[T]],
        token: CancellationToken | None,
    ) -> T:
        name = STAGES[index]
        if token is not None:
            token.raise_if_cancelled()
        try:
            with stage_logging_context(name, stage_index=index):
                return await call()
        except (asyncio.CancelledError, PipelineCancelledError):
            raise
        except CastwrightError as exc:
            raise PipelineError(
                f"Stage '{name}' failed: {exc}", stage=name, raw_text=exc.raw_text
            ) from exc
        except Exception as exc:
            raise PipelineError(f"Stage '{name}' failed: {exc}", stage=name) from exc

    # -- entry points ----------------------------------------------------------

    async def run(
        self,
        source: SourceRequest,
        options: PipelineOptions | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> PodcastPackage:
        """Turn ``source`` into a persisted podcast.

        Args:
            source: What to ingest.
            options: Per-stage options.
            cancel_token: Aborts the run between stages and during
                backoff sleeps.

        Returns:
            The delivered package.

        Raises:
            PipelineError: Naming the stage that failed.
            PipelineCancelledError: If ``cancel_token`` fired.
        """
        opts = options or PipelineOptions()
        with run_logging_context(), cancellation_scope(cancel_token):
            logger.info("pipeline_started", source=source.describe())

            content: ContentPackage = await self._stage(
                0, lambda: self.ingestion.ingest(source), cancel_token
            )
            graph: KnowledgeGraph = await self._stage(
                1,
                lambda: self.understanding.analyze_content(
                    content, include_summary=opts.include_summary
                ),
                cancel_token,
            )
            script: PodcastScript = await self._stage(
                2, lambda: self.script.generate_script(graph, opts.script), cancel_token
            )
            audio: PodcastAudio = await self._stage(
                3, lambda: self._voice(script, opts), cancel_token
            )
            package: PodcastPackage = await self._stage(
                4,
                lambda: self.delivery.package_podcast(audio, opts.delivery),
                cancel_token,
            )

            logger.info(
                "pipeline_completed",
                package_id=package.id,
                title=package.title,
                duration=round(package.duration, 2),
                audio_path=package.audio_url,
            )
            return package

    async def process_url(
        self,
        url: str,
        options: PipelineOptions | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> PodcastPackage:
        return await self.run(SourceRequest.from_url(url), options, cancel_token)

    async def process_text(
        self,
        text: str,
        options: PipelineOptions | None = None,
        cancel_token: CancellationToken | None = None,
        *,
        title: str | None = None,
    ) -> PodcastPackage:
        return await self.run(SourceRequest.from_text(text, title), options, cancel_token)

    async def process_document(
        self,
        path: Path | str,
        options: PipelineOptions | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> PodcastPackage:
        return await self.run(SourceRequest.from_file(Path(path)), options, cancel_token)
