"""litellm-backed text generation.

litellm gives provider-agnostic access, so the understanding stage can
run on Gemini while scripting runs on Claude through the same adapter.
Retries are not handled here; callers route each call through
``castwright.retry``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from castwright.config import LLMSettings

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_PROVIDER_PREFIX: dict[str, str] = {
    "anthropic": "anthropic",
    "google": "gemini",
}


def resolve_litellm_model(provider: str, model: str) -> str:
    """Build a litellm model identifier (e.g. ``gemini/gemini-1.5-pro``).

    Raises:
        ValueError: If the provider is not supported.
    """
    if provider not in _PROVIDER_PREFIX:
        raise ValueError(f"Unsupported provider: {provider!r}")
    return f"{_PROVIDER_PREFIX[provider]}/{model}"


class LiteLLMTextGenerator:
    """Text generator calling ``litellm.acompletion``.

    Attributes:
        model_id: Provider-prefixed litellm model identifier.
    """

    def __init__(self, settings: LLMSettings, api_key: str) -> None:
        self.model_id = resolve_litellm_model(settings.provider, settings.model)
        self._settings = settings
        self._api_key = api_key

    async def generate(
        self,
        prompt: str,
        *,
        system_instruction: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Send one prompt and return the response text.

        Args:
            prompt: User prompt.
            system_instruction: Optional system message.
            temperature: Overrides the configured temperature.
            max_tokens: Overrides the configured output limit.

        Returns:
            The message content, or ``""`` if the provider returned none.
        """
        import litellm

        messages: list[dict[str, Any]] = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        messages.append({"role": "user", "content": prompt})

        response = await litellm.acompletion(
            model=self.model_id,
            messages=messages,
            temperature=(
                self._settings.temperature if temperature is None else temperature
            ),
            max_tokens=max_tokens or self._settings.max_tokens,
            timeout=self._settings.timeout,
            api_key=self._api_key,
        )
        content = response.choices[0].message.content or ""
        logger.debug(
            "text_generated",
            model_id=self.model_id,
            prompt_chars=len(prompt),
            response_chars=len(content),
        )
        return content
