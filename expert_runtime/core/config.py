"""
Configuration Settings.

This module defines the runtime configuration using Pydantic's BaseSettings.
Values are loaded from environment variables (``EXPERT_RUNTIME_`` prefix) and
an optional ``.env`` file. Nested provider blocks use ``__`` as delimiter, e.g.
``EXPERT_RUNTIME_PROVIDERS__OPENAI__API_KEY``.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# =====================================================================
# LLM Provider Configuration Models
# =====================================================================


class OpenAIConfig(BaseModel):
    """OpenAI API configuration."""

    api_key: Optional[SecretStr] = Field(default=None, description="OpenAI API key for authentication")
    base_url: Optional[str] = Field(default=None, description="Custom OpenAI API base URL (optional)")

    model_config = {"populate_by_name": True}


class AnthropicConfig(BaseModel):
    """Anthropic API configuration."""

    api_key: Optional[SecretStr] = Field(default=None, description="Anthropic API key for authentication")
    base_url: Optional[str] = Field(default=None, description="Custom Anthropic API base URL (optional)")

    model_config = {"populate_by_name": True}


class GoogleConfig(BaseModel):
    """Google API configuration."""

    api_key: Optional[SecretStr] = Field(default=None, description="Google API key for authentication")

    model_config = {"populate_by_name": True}


class ProvidersConfig(BaseModel):
    """Credentials for every supported upstream provider."""

    openai: OpenAIConfig = Field(default_factory=OpenAIConfig)
    anthropic: AnthropicConfig = Field(default_factory=AnthropicConfig)
    google: GoogleConfig = Field(default_factory=GoogleConfig)


# =====================================================================
# Main Settings Model
# =====================================================================


class Settings(BaseSettings):
    """Runtime settings.

    Per-run values in ``RunSetting`` always win over these defaults; the
    settings only fill in what a caller leaves out.
    """

    log_level: str = Field(default="INFO", description="Root log level for the runtime")
    log_format: str = Field(default="detailed", description="Log format: simple, detailed or json")
    log_file_dir: str = Field(default="logs", description="Directory for the runtime log file")
    enable_file_logging: bool = Field(default=False, description="Also write logs to a file")

    default_provider: str = Field(default="anthropic", description="Provider used when a run names none")
    default_model: str = Field(default="claude-sonnet-4-5", description="Model used when a run names none")
    default_max_retries: int = Field(default=5, ge=0, description="Generation retries allowed per run")
    default_timeout: float = Field(default=300.0, gt=0, description="Model call timeout in seconds")

    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)

    def provider_credentials(self, provider_name: str) -> Dict[str, Any]:
        """Return ``api_key`` and ``base_url`` configured for ``provider_name``.

        Raises:
            ValueError: If the provider is unknown.
        """
        config = getattr(self.providers, provider_name, None)
        if config is None:
            raise ValueError(f"Unsupported provider: {provider_name}")
        return {"api_key": config.api_key, "base_url": getattr(config, "base_url", None)}

    model_config = SettingsConfigDict(
        env_prefix="EXPERT_RUNTIME_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
