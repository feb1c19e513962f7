"""Unit tests for transcripts, chapters and local packaging."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from castwright.delivery import DeliveryOptions, LocalDeliveryService
from castwright.delivery.service import sanitize_filename
from castwright.delivery.transcript import build_chapters, format_timestamp, generate_transcript
from castwright.exceptions import DeliveryError
from castwright.voice import (
    AudioFormat,
    AudioMetadata,
    AudioSegment,
    PodcastAudio,
    assign_timeline,
)


def _audio(*units: tuple[str, str], fmt: AudioFormat = AudioFormat.MP3) -> PodcastAudio:
    segments = assign_timeline(
        [
            AudioSegment(
                id=f"segment-{i + 1}",
                speaker_id=speaker,
                voice_id="v1",
                text=text,
                audio_data=b"ID3" + text.encode(),
                duration=len(text) / 3.0,
                format=fmt,
            )
            for i, (speaker, text) in enumerate(units)
        ]
    )
    return PodcastAudio(
        id="audio-1",
        script_id="script-1",
        segments=segments,
        full_audio=b"".join(s.audio_data for s in segments),
        total_duration=segments[-1].end_time if segments else 0.0,
        format=fmt,
        metadata=AudioMetadata(
            title="Exploring Solar: Panels & Batteries!",
            description="A discussion.",
            speaker_names={"speaker-1": "Ada", "speaker-2": "Ben", "narrator": "Narrator"},
            segment_count=len(segments),
            chars_per_second=3.0,
        ),
    )


@pytest.fixture()
def audio() -> PodcastAudio:
    return _audio(
        ("narrator", "Welcome to the show."),
        ("speaker-1", "Solar panels turn light into power for the whole neighbourhood."),
        ("speaker-2", "And batteries keep it stored."),
        ("narrator", "Thanks for listening."),
    )


# ---------------------------------------------------------------------------
# Transcript
# ---------------------------------------------------------------------------


class TestTranscript:
    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [(0, "00:00"), (6.67, "00:06"), (61, "01:01"), (3725, "62:05"), (-3, "00:00")],
    )
    def test_format_timestamp(self, seconds: float, expected: str) -> None:
        assert format_timestamp(seconds) == expected

    def test_labelled_transcript(self, audio: PodcastAudio) -> None:
        assert generate_transcript(audio) == (
            "# Exploring Solar: Panels & Batteries!\n\n"
            "[00:00] Narrator: Welcome to the show.\n\n"
            "[00:06] Ada: Solar panels turn light into power for the whole neighbourhood.\n\n"
            "[00:27] Ben: And batteries keep it stored.\n\n"
            "[00:37] Narrator: Thanks for listening.\n"
        )

    def test_unlabelled_transcript(self, audio: PodcastAudio) -> None:
        lines = generate_transcript(audio, include_speaker_labels=False).split("\n\n")
        assert lines[1] == "[00:00] Welcome to the show."
        assert "Ada" not in generate_transcript(audio, include_speaker_labels=False)

    def test_unknown_speaker_falls_back_to_id(self) -> None:
        transcript = generate_transcript(_audio(("guest-9", "Hi.")))
        assert "[00:00] guest-9: Hi." in transcript


class TestChapters:
    def test_three_sections(self, audio: PodcastAudio) -> None:
        chapters = build_chapters(audio)
        assert [c.title for c in chapters] == ["Introduction", "Discussion", "Conclusion"]
        assert chapters[0].start_time == 0.0
        assert chapters[1].start_time == audio.segments[1].start_time
        assert chapters[-1].end_time == audio.total_duration

    def test_without_narrator(self) -> None:
        chapters = build_chapters(_audio(("speaker-1", "a"), ("speaker-2", "b")))
        assert [c.title for c in chapters] == ["Discussion"]

    def test_empty_audio(self) -> None:
        assert build_chapters(_audio()) == []


# ---------------------------------------------------------------------------
# Packaging
# ---------------------------------------------------------------------------


class TestSanitizeFilename:
    @pytest.mark.parametrize(
        ("title", "expected"),
        [
            ("Exploring Solar: Panels & Batteries!", "exploring-solar-panels-batteries"),
            ("  spaced   out__title ", "spaced-out-title"),
            ("!!!", "podcast"),
            ("", "podcast"),
        ],
    )
    def test_slugs(self, title: str, expected: str) -> None:
        assert sanitize_filename(title) == expected

    def test_truncates(self) -> None:
        assert len(sanitize_filename("word " * 50)) <= 80


class TestLocalDeliveryService:
    @pytest.mark.asyncio()
    async def test_writes_all_files(self, tmp_path: Path, audio: PodcastAudio) -> None:
        service = LocalDeliveryService(tmp_path / "out")
        package = await service.package_podcast(audio, DeliveryOptions(include_chapters=True))

        audio_path = Path(package.audio_url)
        assert audio_path.parent == tmp_path / "out"
        assert audio_path.name.startswith("exploring-solar-panels-batteries-podcast-")
        assert audio_path.suffix == ".mp3"
        assert audio_path.read_bytes() == audio.full_audio
        assert package.size == len(audio.full_audio)
        assert package.duration == audio.total_duration

        transcript = Path(package.transcript_url or "").read_text(encoding="utf-8")
        assert transcript.startswith("# Exploring Solar")

        sidecar = json.loads(Path(package.metadata_url or "").read_text(encoding="utf-8"))
        assert sidecar["id"] == package.id
        assert sidecar["metadata"]["script_id"] == "script-1"
        assert [c["title"] for c in sidecar["metadata"]["chapters"]] == [
            "Introduction",
            "Discussion",
            "Conclusion",
        ]
        assert len(sidecar["metadata"]["segments"]) == 4

    @pytest.mark.asyncio()
    async def test_audio_only(self, tmp_path: Path, audio: PodcastAudio) -> None:
        service = LocalDeliveryService(tmp_path)
        options = DeliveryOptions(include_transcript=False, include_metadata=False)
        package = await service.package_podcast(audio, options)

        assert package.transcript_url is None
        assert package.metadata_url is None
        assert "segments" not in package.metadata
        assert [p.suffix for p in tmp_path.iterdir()] == [".mp3"]

    @pytest.mark.asyncio()
    async def test_format_mismatch(self, tmp_path: Path, audio: PodcastAudio) -> None:
        service = LocalDeliveryService(tmp_path)
        with pytest.raises(DeliveryError, match="transcoding"):
            await service.package_podcast(audio, DeliveryOptions(format=AudioFormat.WAV))
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio()
    async def test_write_failure_keeps_earlier_files(
        self, tmp_path: Path, audio: PodcastAudio
    ) -> None:
        writer = MagicMock()
        writer.write_bytes.side_effect = [tmp_path / "a.mp3", OSError("disk full")]
        service = LocalDeliveryService(tmp_path, writer=writer)

        with pytest.raises(DeliveryError, match="disk full"):
            await service.package_podcast(audio)
        assert writer.write_bytes.call_count == 2

    def test_available_formats(self, tmp_path: Path) -> None:
        formats = LocalDeliveryService(tmp_path).available_formats()
        assert {f.id: f.mime_type for f in formats} == {
            AudioFormat.MP3: "audio/mpeg",
            AudioFormat.WAV: "audio/wav",
            AudioFormat.OGG: "audio/ogg",
        }

    @pytest.mark.asyncio()
    async def test_shareable_link(self, tmp_path: Path, audio: PodcastAudio) -> None:
        service = LocalDeliveryService(tmp_path)
        package = await service.package_podcast(audio)
        link = service.shareable_link(package)
        assert link.startswith("file://")
        assert link.endswith(".mp3")
