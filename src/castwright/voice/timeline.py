"""Timeline assembly for synthesized segments.

Segments are synthesized with only ``duration`` set. ``assign_timeline``
then places them back to back, returning new segments; inputs are never
modified. Durations are estimated from text length because the raw
audio is not decoded.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from castwright.exceptions import SynthesisError
from castwright.voice.models import AudioFormat

if TYPE_CHECKING:
    from collections.abc import Sequence

    from castwright.voice.models import AudioSegment

DEFAULT_CHARS_PER_SECOND = 3.0


def estimate_duration(text: str, chars_per_second: float = DEFAULT_CHARS_PER_SECOND) -> float:
    """Estimate seconds of speech for ``text``.

    This is a coarse characters-per-second approximation, not a
    measurement of the synthesized audio.

    Raises:
        ValueError: If ``chars_per_second`` is not positive.
    """
    if chars_per_second <= 0:
        msg = f"chars_per_second must be positive, got {chars_per_second}"
        raise ValueError(msg)
    return len(text) / chars_per_second


def assign_timeline(segments: Sequence[AudioSegment]) -> list[AudioSegment]:
    """Return copies of ``segments`` placed contiguously from zero.

    ``result[0].start_time == 0`` and each segment starts where the
    previous one ends.
    """
    placed: list[AudioSegment] = []
    cursor = 0.0
    for segment in segments:
        end = cursor + segment.duration
        placed.append(segment.model_copy(update={"start_time": cursor, "end_time": end}))
        cursor = end
    return placed


def sniff_audio_format(data: bytes) -> AudioFormat | None:
    """Identify the container of ``data`` from its leading bytes.

    Returns ``None`` when the bytes match no known signature.
    """
    if data.startswith(b"ID3"):
        return AudioFormat.MP3
    if len(data) >= 2 and data[0] == 0xFF and (data[1] & 0xE0) == 0xE0:
        return AudioFormat.MP3
    if data.startswith(b"RIFF") and data[8:12] == b"WAVE":
        return AudioFormat.WAV
    if data.startswith(b"OggS"):
        return AudioFormat.OGG
    return None


def concatenate_audio(segments: Sequence[AudioSegment], fmt: AudioFormat) -> bytes:
    """Join segment bytes in order.

    Byte concatenation is only meaningful when every segment shares one
    container, so a segment tagged or sniffed as another format is
    rejected. Unrecognized bytes are accepted as-is.

    Raises:
        SynthesisError: On a format mismatch.
    """
    for segment in segments:
        sniffed = sniff_audio_format(segment.audio_data)
        if segment.format != fmt or (sniffed is not None and sniffed != fmt):
            found = segment.format if segment.format != fmt else sniffed
            msg = (
                f"Segment {segment.id} is {found.value} but the run format is "
                f"{fmt.value}; mixed formats cannot be concatenated"
            )
            raise SynthesisError(msg)
    return b"".join(segment.audio_data for segment in segments)
