"""ElevenLabs speech synthesis over its REST API."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
import structlog

from castwright.exceptions import ConfigurationError, SynthesisError
from castwright.voice.models import AudioFormat, Voice, VoiceOptions

if TYPE_CHECKING:
    from castwright.config import SynthesisSettings

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_OUTPUT_FORMAT = "mp3_44100_128"


class ElevenLabsSynthesizer:
    """Speech synthesizer calling ``/v1/text-to-speech/{voice_id}``.

    Only MP3 output is requested, so every segment of a run shares one
    container and can be concatenated directly.
    """

    def __init__(
        self,
        settings: SynthesisSettings,
        api_key: str,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if settings.output_format != AudioFormat.MP3:
            raise ConfigurationError(
                f"ElevenLabs output format {settings.output_format!r} is not supported; use 'mp3'"
            )
        self._settings = settings
        self._api_key = api_key
        self._client = client

    @property
    def output_format(self) -> AudioFormat:
        return AudioFormat.MP3

    def _headers(self, accept: str) -> dict[str, str]:
        return {
            "Accept": accept,
            "xi-api-key": self._api_key,
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self._settings.base_url.rstrip('/')}{path}"
        try:
            if self._client is not None:
                response = await self._client.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self._settings.timeout) as client:
                    response = await client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SynthesisError(
                f"ElevenLabs returned HTTP {exc.response.status_code} for {path}"
            ) from exc
        except httpx.HTTPError as exc:
            raise SynthesisError(f"ElevenLabs request to {path} failed: {exc}") from exc
        return response

    async def synthesize(
        self,
        text: str,
        voice_id: str,
        options: VoiceOptions | None = None,
    ) -> bytes:
        """Synthesize ``text`` with ``voice_id`` and return MP3 bytes.

        Raises:
            SynthesisError: On transport failure, an HTTP error status, or
                an empty audio body.
        """
        opts = options or VoiceOptions()
        payload = {
            "text": text,
            "model_id": self._settings.model_id,
            "voice_settings": {
                "stability": opts.stability,
                "similarity_boost": opts.similarity_boost,
                "style": opts.style,
                "use_speaker_boost": opts.use_speaker_boost,
            },
        }
        response = await self._request(
            "POST",
            f"/v1/text-to-speech/{voice_id}",
            params={"output_format": _OUTPUT_FORMAT},
            headers=self._headers("audio/mpeg"),
            json=payload,
        )
        if not response.content:
            raise SynthesisError(f"ElevenLabs returned no audio for voice {voice_id}")
        logger.debug(
            "speech_synthesized",
            voice_id=voice_id,
            text_chars=len(text),
            audio_bytes=len(response.content),
        )
        return response.content

    async def list_voices(self) -> list[Voice]:
        """Return the voices available to this account."""
        response = await self._request(
            "GET", "/v1/voices", headers=self._headers("application/json")
        )
        voices: list[Voice] = []
        for item in response.json().get("voices", []):
            settings = item.get("settings") or {}
            voices.append(
                Voice(
                    id=item["voice_id"],
                    name=item.get("name") or item["voice_id"],
                    category=item.get("category") or "premade",
                    default_options=VoiceOptions(
                        stability=settings.get("stability", 0.5),
                        similarity_boost=settings.get("similarity_boost", 0.75),
                        style=settings.get("style", 0.0) or 0.0,
                        use_speaker_boost=bool(settings.get("use_speaker_boost", False)),
                    ),
                )
            )
        logger.info("voices_listed", count=len(voices))
        return voices
