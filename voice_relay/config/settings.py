"""
Environment-based settings for the relay.

Settings are read from environment variables and a ``.env`` file (environment wins)
and validated with pydantic-settings. Missing credentials raise ``ConfigurationError``
so the server refuses to start instead of failing on the first call.
"""

from functools import lru_cache
from typing import Literal, Mapping, Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from voice_relay.config.constants import (
    DEFAULT_COMMIT_POLL_INTERVAL_MS,
    DEFAULT_GREETING,
    DEFAULT_INSTRUCTIONS,
    DEFAULT_REALTIME_MODEL,
    DEFAULT_SILENCE_THRESHOLD_MS,
    DEFAULT_SQUARE_API_VERSION,
    DEFAULT_TEMPERATURE,
    DEFAULT_TOOL_TIMEOUT_SECONDS,
    DEFAULT_VOICE,
)
from voice_relay.errors import ConfigurationError


class Settings(BaseSettings):
    """Validated runtime configuration. Each field is read from the variable named by its alias."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # OpenAI
    openai_api_key: str = Field(..., min_length=1, validation_alias="OPENAI_API_KEY")
    realtime_model: str = Field(default=DEFAULT_REALTIME_MODEL, validation_alias="OPENAI_REALTIME_MODEL")
    voice: str = Field(default=DEFAULT_VOICE, validation_alias="OPENAI_VOICE")
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.6, le=1.2, validation_alias="OPENAI_TEMPERATURE")

    # Agent behaviour; an empty greeting disables it
    instructions: str = Field(default=DEFAULT_INSTRUCTIONS, validation_alias="AGENT_INSTRUCTIONS")
    greeting: str = Field(default=DEFAULT_GREETING, validation_alias="AGENT_GREETING")
    turn_detection: Literal["none", "server_vad"] = Field(default="none", validation_alias="TURN_DETECTION")

    # Square
    square_access_token: str = Field(..., min_length=1, validation_alias="SQUARE_ACCESS_TOKEN")
    square_env: Literal["sandbox", "production"] = Field(default="sandbox", validation_alias="SQUARE_ENV")
    square_location_id: Optional[str] = Field(default=None, validation_alias="SQUARE_LOCATION_ID")
    square_team_member_id: Optional[str] = Field(default=None, validation_alias="SQUARE_TEAM_MEMBER_ID")
    square_api_version: str = Field(default=DEFAULT_SQUARE_API_VERSION, validation_alias="SQUARE_API_VERSION")

    # Relay timing
    silence_threshold_ms: int = Field(default=DEFAULT_SILENCE_THRESHOLD_MS, gt=0, validation_alias="SILENCE_THRESHOLD_MS")
    commit_poll_interval_ms: int = Field(
        default=DEFAULT_COMMIT_POLL_INTERVAL_MS, gt=0, validation_alias="COMMIT_POLL_INTERVAL_MS"
    )
    tool_timeout_seconds: float = Field(default=DEFAULT_TOOL_TIMEOUT_SECONDS, gt=0, validation_alias="TOOL_TIMEOUT_SECONDS")

    # Server
    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=8000, validation_alias="PORT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    @field_validator("square_env", "turn_detection", mode="before")
    @classmethod
    def lowercase(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("square_location_id", "square_team_member_id", mode="before")
    @classmethod
    def blank_as_unset(cls, v):
        return v or None

    @property
    def silence_threshold(self) -> float:
        """Silence threshold in seconds."""
        return self.silence_threshold_ms / 1000

    @property
    def commit_poll_interval(self) -> float:
        """Committer poll interval in seconds."""
        return self.commit_poll_interval_ms / 1000


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings.

    Args:
        environ: Variables to validate instead of the process environment and ``.env``

    Raises:
        ConfigurationError: If a required variable is missing or a value is invalid
    """
    try:
        if environ is None:
            return Settings()
        return Settings.model_validate(dict(environ))
    except ValidationError as e:
        problems = [
            f"{'.'.join(str(part) for part in error['loc']) or '?'}: {error['msg']}"
            for error in e.errors()
        ]
        raise ConfigurationError("Invalid configuration: " + "; ".join(problems)) from e


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return load_settings()
