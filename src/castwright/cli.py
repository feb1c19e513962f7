"""Typer CLI entry point for castwright."""

from __future__ import annotations

import asyncio
import contextlib
import signal
from pathlib import Path
from typing import Annotated, Any

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from castwright import __version__
from castwright.config import Settings, format_validation_error
from castwright.delivery import DeliveryOptions
from castwright.exceptions import CastwrightError, PipelineCancelledError
from castwright.ingestion import SourceRequest
from castwright.logging import configure_logging, generate_run_id
from castwright.pipeline import PipelineOptions, PodcastPipeline
from castwright.providers import ElevenLabsSynthesizer, FakeSpeechSynthesizer
from castwright.retry import CancellationToken
from castwright.script import ScriptOptions
from castwright.voice import AudioFormat

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="castwright",
    help="Turn web pages, PDFs, videos and text into multi-speaker audio podcasts.",
    no_args_is_help=True,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_settings(
    config_path: Path | None = None,
    **overrides: Any,
) -> Settings:
    """Load settings with error handling and user-friendly messages."""
    from pydantic import ValidationError

    try:
        return Settings.load(config_path=config_path, **overrides)
    except ValidationError as exc:
        err_console.print(
            Panel(
                format_validation_error(exc),
                title="Configuration Error",
                border_style="red",
            )
        )
        raise typer.Exit(code=1) from exc


def _setup_logging(settings: Settings, run_id: str | None = None) -> None:
    configure_logging(
        level=settings.logging.level,
        fmt=settings.logging.format,
        log_file=settings.logging.file,
        run_id=run_id,
    )


def _display_error(exc: Exception, title: str = "Error") -> None:
    stage = getattr(exc, "stage", None)
    heading = f"[red bold]{title}[/red bold]"
    if stage:
        heading += f" [dim](stage: {stage})[/dim]"
    err_console.print(Panel(f"{heading}\n\n{exc}", title="Error", border_style="red"))


def _build_source(source: str, *, text: bool, file: bool, title: str | None) -> SourceRequest:
    if text and file:
        raise typer.BadParameter("--text and --file are mutually exclusive")
    if text:
        return SourceRequest.from_text(source, title)
    if file:
        path = Path(source)
        if not path.is_file():
            raise typer.BadParameter(f"File not found: {path}")
        return SourceRequest.from_file(path)
    return SourceRequest.from_url(source)


async def _run_with_interrupt(
    pipeline: PodcastPipeline,
    source: SourceRequest,
    options: PipelineOptions,
) -> Any:
    """Run the pipeline; Ctrl+C cancels the run at the next safe point."""
    token = CancellationToken()
    loop = asyncio.get_running_loop()
    installed = False
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, token.cancel, "interrupted by user")
        installed = True
    try:
        return await pipeline.run(source, options, cancel_token=token)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


# ---------------------------------------------------------------------------
# Version callback
# ---------------------------------------------------------------------------


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]castwright[/bold] {__version__}")
        raise typer.Exit


@app.callback()
def common(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """castwright global options."""


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def generate(
    source: Annotated[
        str,
        typer.Argument(help="URL to ingest, or text / file path with --text / --file."),
    ],
    text: Annotated[
        bool,
        typer.Option("--text", help="Treat SOURCE as the literal text to discuss."),
    ] = False,
    file: Annotated[
        bool,
        typer.Option("--file", help="Treat SOURCE as a path to a PDF document."),
    ] = False,
    title: Annotated[
        str | None,
        typer.Option("--title", help="Title for text sources."),
    ] = None,
    speakers: Annotated[
        int,
        typer.Option("--speakers", "-s", min=1, max=8, help="Number of speakers."),
    ] = 2,
    turns: Annotated[
        int,
        typer.Option("--turns", "-t", min=1, max=200, help="Target dialogue turns."),
    ] = 15,
    tone: Annotated[
        str,
        typer.Option("--tone", help="Tone of the conversation."),
    ] = "conversational",
    fmt: Annotated[
        AudioFormat | None,
        typer.Option("--format", "-f", help="Audio format (defaults to config)."),
    ] = None,
    no_intro: Annotated[
        bool,
        typer.Option("--no-intro", help="Skip the narrator introduction."),
    ] = False,
    no_conclusion: Annotated[
        bool,
        typer.Option("--no-conclusion", help="Skip the narrator conclusion."),
    ] = False,
    chapters: Annotated[
        bool,
        typer.Option("--chapters", help="Write chapter markers into the metadata file."),
    ] = False,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Output directory for podcast files."),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to config YAML file."),
    ] = None,
    offline: Annotated[
        bool,
        typer.Option("--offline", help="Use deterministic offline back-ends."),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose logging."),
    ] = False,
) -> None:
    """Generate a podcast from SOURCE."""
    overrides: dict[str, Any] = {}
    if output is not None:
        overrides["output_dir"] = output
    if verbose:
        overrides["logging"] = {"level": "DEBUG"}
    settings = _load_settings(config, **overrides)

    run_id = generate_run_id()
    _setup_logging(settings, run_id)

    request = _build_source(source, text=text, file=file, title=title)
    delivery = DeliveryOptions(**settings.delivery.model_dump())
    updates: dict[str, Any] = {}
    if fmt is not None:
        updates["format"] = fmt
    if chapters:
        updates["include_chapters"] = True
    options = PipelineOptions(
        script=ScriptOptions(
            speaker_count=speakers,
            turn_count=turns,
            tone_style=tone,
            include_introduction=not no_intro,
            include_conclusion=not no_conclusion,
        ),
        delivery=delivery.model_copy(update=updates),
    )

    console.print(
        Panel(
            f"[bold]{request.describe()}[/bold]\n\n"
            f"Run ID: [cyan]{run_id}[/cyan]"
            + ("\n[yellow]Offline mode[/yellow]" if offline else ""),
            title="castwright",
            border_style="blue",
        )
    )

    try:
        pipeline = PodcastPipeline.from_settings(settings, offline=offline)
        with console.status("[cyan]Generating podcast...[/cyan]"):
            package = asyncio.run(_run_with_interrupt(pipeline, request, options))
    except PipelineCancelledError as exc:
        err_console.print(f"[yellow]Cancelled:[/yellow] {exc}")
        raise typer.Exit(code=130) from exc
    except CastwrightError as exc:
        _display_error(exc, title="Pipeline Error")
        raise typer.Exit(code=1) from exc

    table = Table(title=package.title, show_lines=True)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Audio", package.audio_url)
    table.add_row("Transcript", package.transcript_url or "-")
    table.add_row("Metadata", package.metadata_url or "-")
    table.add_row("Duration", f"{package.duration:.1f}s (estimated)")
    table.add_row("Size", f"{package.size} bytes")
    console.print(table)
    console.print(f"\n[green]Podcast saved:[/green] {package.audio_url}")


@app.command()
def voices(
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to config YAML file."),
    ] = None,
    offline: Annotated[
        bool,
        typer.Option("--offline", help="List the offline synthesizer's voices."),
    ] = False,
) -> None:
    """List the voices offered by the speech-synthesis back-end."""
    settings = _load_settings(config)
    _setup_logging(settings)
    try:
        if offline:
            synthesizer: Any = FakeSpeechSynthesizer()
        else:
            synthesizer = ElevenLabsSynthesizer(
                settings.synthesis, settings.credentials.for_provider("elevenlabs")
            )
        available = asyncio.run(synthesizer.list_voices())
    except CastwrightError as exc:
        _display_error(exc)
        raise typer.Exit(code=1) from exc

    if not available:
        console.print("[yellow]No voices available.[/yellow]")
        return

    table = Table(title="Voices", show_lines=True)
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Category", style="dim")
    for voice in available:
        table.add_row(voice.id, voice.name, voice.category)
    console.print(table)


@app.command()
def check(
    config: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to config YAML file."),
    ] = None,
) -> None:
    """Report which credentials are configured."""
    settings = _load_settings(config)
    missing = set(settings.credentials.missing())

    table = Table(title="castwright Credentials", show_lines=True)
    table.add_column("Credential", style="cyan")
    table.add_column("Environment Variable", style="dim")
    table.add_column("Status", justify="center")
    for name in ("gemini_api_key", "claude_api_key", "elevenlabs_api_key"):
        status = "[red]MISSING[/red]" if name in missing else "[green]OK[/green]"
        table.add_row(name, f"CASTWRIGHT_CREDENTIALS__{name.upper()}", status)
    console.print(table)

    if missing:
        console.print("[yellow]Use --offline to run without credentials.[/yellow]")
        raise typer.Exit(code=1)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
