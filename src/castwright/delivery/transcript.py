"""Transcript and chapter generation from timed audio segments.

Both are derived from segment text and ``start_time``; no speech
recognition pass is made.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from castwright.delivery.models import Chapter
from castwright.voice.models import NARRATOR_ID

if TYPE_CHECKING:
    from castwright.voice.models import AudioSegment, PodcastAudio

NARRATOR_LABEL = "Narrator"


def format_timestamp(seconds: float) -> str:
    """Format ``seconds`` as ``MM:SS``; minutes are not wrapped at 60."""
    total = max(0, int(seconds))
    minutes, secs = divmod(total, 60)
    return f"{minutes:02d}:{secs:02d}"


def speaker_label(segment: AudioSegment, names: dict[str, str]) -> str:
    if segment.speaker_id == NARRATOR_ID:
        return NARRATOR_LABEL
    return names.get(segment.speaker_id, segment.speaker_id)


def generate_transcript(audio: PodcastAudio, include_speaker_labels: bool = True) -> str:
    """Render ``audio`` as a timestamped transcript.

    Each segment becomes one ``[MM:SS] Speaker: text`` line (or
    ``[MM:SS] text`` without labels), separated by blank lines, under a
    title heading.

    Args:
        audio: Timed podcast audio.
        include_speaker_labels: Prefix each line with the speaker name.

    Returns:
        The transcript text, ending with a newline.
    """
    names = audio.metadata.speaker_names
    lines = [f"# {audio.metadata.title or 'Untitled Podcast'}"]
    for segment in audio.segments:
        stamp = format_timestamp(segment.start_time)
        if include_speaker_labels:
            lines.append(f"[{stamp}] {speaker_label(segment, names)}: {segment.text}")
        else:
            lines.append(f"[{stamp}] {segment.text}")
    return "\n\n".join(lines) + "\n"


def build_chapters(audio: PodcastAudio) -> list[Chapter]:
    """Split the episode into introduction, discussion and conclusion.

    Leading narrator segments form the introduction and trailing ones the
    conclusion; everything between is the discussion. Empty sections are
    omitted.
    """
    segments = audio.segments
    if not segments:
        return []

    start = 0
    while start < len(segments) and segments[start].speaker_id == NARRATOR_ID:
        start += 1
    end = len(segments)
    while end > start and segments[end - 1].speaker_id == NARRATOR_ID:
        end -= 1

    chapters: list[Chapter] = []
    for title, lo, hi in (
        ("Introduction", 0, start),
        ("Discussion", start, end),
        ("Conclusion", end, len(segments)),
    ):
        if hi > lo:
            chapters.append(
                Chapter(
                    title=title,
                    start_time=segments[lo].start_time,
                    end_time=segments[hi - 1].end_time,
                )
            )
    return chapters
