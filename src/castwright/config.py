"""Configuration with 4-layer resolution: defaults -> YAML -> env -> CLI.

Uses pydantic-settings with YamlConfigSettingsSource for layered
configuration. Supports ``.env`` file loading, ``CASTWRIGHT_`` prefixed env
vars, and nested delimiter ``__`` for overriding sub-model fields, e.g.
``CASTWRIGHT_CREDENTIALS__GEMINI_API_KEY``.

The resulting ``Settings`` value is built once per process and passed by
reference into every component that needs it. No other module reads the
environment.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, ClassVar, Literal

import structlog
from pydantic import BaseModel, Field, SecretStr, ValidationError
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from castwright.exceptions import ConfigurationError

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class CredentialSettings(BaseModel):
    """API credentials, one per generative back-end."""

    gemini_api_key: SecretStr | None = None
    claude_api_key: SecretStr | None = None
    elevenlabs_api_key: SecretStr | None = None

    def missing(self) -> list[str]:
        """Return the names of credentials that are unset or blank."""
        names: list[str] = []
        for name in ("gemini_api_key", "claude_api_key", "elevenlabs_api_key"):
            value: SecretStr | None = getattr(self, name)
            if value is None or not value.get_secret_value().strip():
                names.append(name)
        return names

    def require(self) -> None:
        """Fail fast when any credential is absent.

        Raises:
            ConfigurationError: Listing every missing credential.
        """
        missing = self.missing()
        if missing:
            env_names = ", ".join(f"CASTWRIGHT_CREDENTIALS__{n.upper()}" for n in missing)
            raise ConfigurationError(f"Missing credentials: {env_names}")

    def for_provider(self, provider: str) -> str:
        """Return the API key for a text-generation provider.

        Raises:
            ConfigurationError: If the key is unset or the provider unknown.
        """
        name = _PROVIDER_CREDENTIALS.get(provider)
        if name is None:
            raise ConfigurationError(f"No credential is defined for provider {provider!r}")
        value: SecretStr | None = getattr(self, name)
        if value is None or not value.get_secret_value().strip():
            raise ConfigurationError(
                f"Missing credentials: CASTWRIGHT_CREDENTIALS__{name.upper()}"
            )
        return value.get_secret_value()


_PROVIDER_CREDENTIALS: dict[str, str] = {
    "google": "gemini_api_key",
    "anthropic": "claude_api_key",
    "elevenlabs": "elevenlabs_api_key",
}


class LLMSettings(BaseModel):
    """Text-generation provider configuration for one stage."""

    provider: Literal["google", "anthropic"] = "google"
    model: str = "gemini-1.5-pro"
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    max_tokens: int = Field(default=4096, gt=0)
    timeout: int = Field(default=120, gt=0, description="Request timeout in seconds.")


def _script_llm_default() -> LLMSettings:
    return LLMSettings(
        provider="anthropic",
        model="claude-3-5-sonnet-20241022",
        temperature=0.7,
    )


class RetrySettings(BaseModel):
    """Resilient call wrapper parameters."""

    max_retries: int = Field(default=3, ge=0, le=10)
    initial_backoff_seconds: float = Field(default=1.0, ge=0.0)


class IngestionSettings(BaseModel):
    """Content adapter configuration."""

    timeout: int = Field(default=30, gt=0, description="Per-request timeout in seconds.")
    max_content_length: int = Field(
        default=500_000, gt=0, description="Max characters retained per source."
    )
    max_block_chars: int = Field(
        default=500, gt=0, description="Soft cap for sentence-regrouped blocks."
    )
    user_agent: str = "castwright/0.1 (+https://pypi.org/project/castwright/)"
    caption_language: str = "en"


class SynthesisSettings(BaseModel):
    """Speech-synthesis back-end and timeline configuration."""

    base_url: str = "https://api.elevenlabs.io"
    model_id: str = "eleven_multilingual_v2"
    output_format: Literal["mp3", "wav", "ogg"] = "mp3"
    chars_per_second: float = Field(
        default=3.0,
        gt=0.0,
        description="Heuristic used to estimate spoken duration from text length.",
    )
    max_concurrency: int = Field(default=1, ge=1, le=16)
    timeout: int = Field(default=60, gt=0)


class DeliverySettings(BaseModel):
    """Output packaging configuration."""

    format: Literal["mp3", "wav", "ogg"] = "mp3"
    include_transcript: bool = True
    include_speaker_labels: bool = True
    include_chapters: bool = False
    include_metadata: bool = True


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json"] = "console"
    file: Path | None = None


# ---------------------------------------------------------------------------
# Main Settings (4-layer resolution)
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Top-level application settings.

    Resolution order (last wins):
        1. Field defaults (defined above)
        2. YAML config file (``config.yaml`` or ``--config`` path)
        3. Environment variables (prefixed ``CASTWRIGHT_``)
        4. CLI overrides (applied programmatically after loading)
    """

    model_config = SettingsConfigDict(
        env_prefix="CASTWRIGHT_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        yaml_file="config.yaml",
        yaml_file_encoding="utf-8",
        extra="ignore",
    )

    _config_path_override: ClassVar[Path | None] = None

    credentials: CredentialSettings = Field(default_factory=CredentialSettings)
    output_dir: Path = Path("./podcasts")
    understanding_llm: LLMSettings = Field(default_factory=LLMSettings)
    script_llm: LLMSettings = Field(default_factory=_script_llm_default)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    synthesis: SynthesisSettings = Field(default_factory=SynthesisSettings)
    delivery: DeliverySettings = Field(default_factory=DeliverySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings source priority.

        Resolution order (first = highest priority):
            init_settings (CLI) > env_settings > dotenv (.env) > yaml > defaults

        Args:
            settings_cls: The settings class.
            init_settings: Init / programmatic overrides.
            env_settings: Environment variable source.
            dotenv_settings: Dotenv file source (.env).
            file_secret_settings: Secret file source (unused).

        Returns:
            Ordered tuple of settings sources (first = highest priority).
        """
        yaml_file = cls._config_path_override or settings_cls.model_config.get(
            "yaml_file", "config.yaml"
        )
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=yaml_file),
        )

    @classmethod
    def load(cls, config_path: Path | None = None, **overrides: Any) -> Settings:
        """Load settings with optional config path and CLI overrides.

        Args:
            config_path: Optional path to a YAML config file.
            **overrides: Key-value CLI overrides applied at highest priority.

        Returns:
            Fully-resolved Settings instance.

        Raises:
            ValidationError: If any setting value fails validation.
        """
        cls._config_path_override = config_path
        try:
            settings = cls(**overrides)
        finally:
            cls._config_path_override = None
        logger.debug(
            "settings_loaded",
            config_path=str(config_path) if config_path else None,
            missing_credentials=settings.credentials.missing(),
        )
        return settings

    def validate_credentials(self) -> None:
        """Eagerly verify every generative credential is present.

        Raises:
            ConfigurationError: If any credential is missing.
        """
        self.credentials.require()


def format_validation_error(exc: ValidationError) -> str:
    """Format a Pydantic ValidationError into a user-friendly message.

    Args:
        exc: The validation error to format.

    Returns:
        A multi-line string with each error on its own line.
    """
    lines: list[str] = []
    for error in exc.errors():
        loc = " -> ".join(str(part) for part in error["loc"])
        msg = error["msg"]
        raw_input = error.get("input")
        if raw_input is not None:
            lines.append(f"  {loc}: {msg} (got {raw_input!r})")
        else:
            lines.append(f"  {loc}: {msg}")
    return "Configuration error:\n" + "\n".join(lines)
