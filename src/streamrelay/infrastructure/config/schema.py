"""Pydantic configuration models with validation."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Literal, Optional

from pydantic import (
    AliasChoices,
    AliasPath,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

Environment = Literal["dev", "test", "prod"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console"]


class ResolutionConfig(BaseModel):
    """Stream resolution: per-provider deadline, retries, ranking, cache window.

    All values configurable via YAML (resolution section) or ENV vars.
    """

    model_config = ConfigDict(frozen=True)

    provider_timeout_seconds: float = Field(
        default=20.0,
        description="Wall-clock deadline for a single provider adapter.",
    )
    retry_attempts: int = Field(
        default=3,
        description="Total attempts per upstream call (1 = no retry).",
    )
    retry_backoff_seconds: float = Field(
        default=0.5,
        description="Base delay for exponential backoff between attempts.",
    )
    retry_max_backoff_seconds: float = Field(
        default=8.0,
        description="Upper bound for a single backoff delay.",
    )

    provider_priorities: dict[str, int] = Field(
        default={
            "hdrezka": 1,
            "embedsu": 2,
            "2embed": 3,
            "autoembed": 4,
            "vidsrcsu": 5,
        },
        description="Provider ranking (lower = listed first).",
    )
    default_provider_priority: int = Field(
        default=100,
        description="Priority shared by providers missing from the table.",
    )

    cache_max_age: int = Field(
        default=3600,
        description="Cache max-age (seconds) for a non-empty stream list.",
    )
    cache_max_age_empty: int = Field(
        default=60,
        description="Cache max-age (seconds) for an empty stream list.",
    )
    stale_revalidate_age: int = Field(
        default=14400,
        description="stale-while-revalidate window (seconds).",
    )
    stale_error_age: int = Field(
        default=604800,
        description="stale-if-error window (seconds).",
    )

    @field_validator("provider_timeout_seconds", "retry_max_backoff_seconds")
    @classmethod
    def _validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("retry_attempts")
    @classmethod
    def _validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("retry_attempts must be >= 1")
        return v

    @field_validator(
        "retry_backoff_seconds",
        "cache_max_age",
        "cache_max_age_empty",
        "stale_revalidate_age",
        "stale_error_age",
    )
    @classmethod
    def _validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @field_validator("provider_priorities")
    @classmethod
    def _lowercase_names(cls, v: dict[str, int]) -> dict[str, int]:
        return {name.lower(): prio for name, prio in v.items()}


class EmbedApiProviderConfig(BaseModel):
    """Embed source API (one JSON endpoint aggregating several sources)."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    base_url: str = Field(
        default="http://localhost:8080",
        description="Base URL serving /movie/{id} and /tv/{id}.",
    )


class HdrezkaProviderConfig(BaseModel):
    """HDRezka site scraper."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    base_url: str = Field(default="https://hdrezka.ag", description="Site root.")


class ProvidersConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    embed_api: EmbedApiProviderConfig = Field(default_factory=EmbedApiProviderConfig)
    hdrezka: HdrezkaProviderConfig = Field(default_factory=HdrezkaProviderConfig)


class RelayConfig(BaseModel):
    """HLS/TS relay settings."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(
        default=True,
        description="Rewrite adaptive stream URLs through the relay.",
    )
    public_url: Optional[str] = Field(
        default=None,
        description=(
            "Base URL embedded into relay links. If unset, the base URL of "
            "the incoming request is used."
        ),
    )
    timeout_seconds: float = Field(
        default=15.0,
        description="Deadline for a single upstream fetch.",
    )

    @field_validator("public_url")
    @classmethod
    def _strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.rstrip("/") or None

    @field_validator("timeout_seconds")
    @classmethod
    def _validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout_seconds must be > 0")
        return v


class AppConfig(BaseModel):
    """
    Canonical application configuration (validated, final, immutable).

    Note:
    - YAML is expected to be sectioned
      (http/logging/tmdb/resolution/providers/relay).
    - Environment variables are handled by EnvOverrides(BaseSettings) to allow strict
      precedence control (defaults < YAML < ENV < CLI) in load.py.
    """

    model_config = ConfigDict(frozen=True)

    # General
    app_name: str = Field(default="streamrelay", description="Application name.")
    environment: Environment = Field(
        default="dev",
        description="Runtime environment (affects defaults like log format).",
    )

    # HTTP client (YAML section: http.*)
    http_timeout_seconds: float = Field(
        default=20.0,
        validation_alias=AliasChoices(
            "http_timeout_seconds",
            AliasPath("http", "timeout_seconds"),
        ),
        description="Default timeout for outgoing HTTP requests.",
    )
    http_user_agent: str = Field(
        default="StreamRelay/0.1.0",
        validation_alias=AliasChoices(
            "http_user_agent",
            AliasPath("http", "user_agent"),
        ),
        description="User-Agent for outgoing HTTP requests.",
    )

    # Logging (YAML section: logging.*)
    log_level: LogLevel = Field(
        default="INFO",
        validation_alias=AliasChoices(
            "log_level",
            AliasPath("logging", "level"),
        ),
        description="Log level.",
    )
    log_format: LogFormat = Field(
        default="console",
        validation_alias=AliasChoices(
            "log_format",
            AliasPath("logging", "format"),
        ),
        description=(
            "Log renderer format (console/json). If unset, derived from environment."
        ),
    )

    # Metadata service (YAML section: tmdb.*)
    tmdb_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "tmdb_api_key",
            AliasPath("tmdb", "api_key"),
        ),
        description="TMDB API key (v3) or read access token (v4).",
    )
    tmdb_language: str = Field(
        default="en-US",
        validation_alias=AliasChoices(
            "tmdb_language",
            AliasPath("tmdb", "language"),
        ),
        description="Language for TMDB titles.",
    )

    resolution: ResolutionConfig = Field(default_factory=ResolutionConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    relay: RelayConfig = Field(default_factory=RelayConfig)

    @field_validator("http_timeout_seconds")
    @classmethod
    def _validate_http_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("http_timeout_seconds must be > 0")
        return v

    @field_validator("tmdb_api_key")
    @classmethod
    def _blank_key_is_missing(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None

    @model_validator(mode="before")
    @classmethod
    def _derive_log_format(cls, data: Any) -> Any:
        # Default log format: console in dev/test, json in prod.
        if not isinstance(data, Mapping):
            return data
        section = data.get("logging")
        section = dict(section) if isinstance(section, Mapping) else {}
        if data.get("log_format") is not None or section.get("format") is not None:
            return data

        derived = dict(data)
        section["format"] = "json" if data.get("environment") == "prod" else "console"
        derived["logging"] = section
        derived.pop("log_format", None)
        return derived

    def to_sectioned_dict(self) -> dict[str, Any]:
        """
        Dump configuration in the sectioned shape used by config.yaml/docs.

        The API key is masked.
        """
        return {
            "app_name": self.app_name,
            "environment": self.environment,
            "http": {
                "timeout_seconds": self.http_timeout_seconds,
                "user_agent": self.http_user_agent,
            },
            "logging": {"level": self.log_level, "format": self.log_format},
            "tmdb": {
                "api_key": "***" if self.tmdb_api_key else None,
                "language": self.tmdb_language,
            },
            "resolution": self.resolution.model_dump(),
            "providers": self.providers.model_dump(),
            "relay": self.relay.model_dump(),
        }


class EnvOverrides(BaseSettings):
    """
    Environment-variable overrides (all optional).

    Intended usage:
    - load.py creates EnvOverrides() to read STREAMRELAY_* variables,
      converts to dict of set values, merges into YAML/defaults,
      then validates AppConfig.

    Supported env var examples (flat, explicit):
    - STREAMRELAY_LOG_LEVEL
    - STREAMRELAY_RELAY_ENABLED
    - STREAMRELAY_RETRY_ATTEMPTS
    - STREAMRELAY_TMDB_API_KEY (or plain TMDB_API_KEY)
    """

    model_config = SettingsConfigDict(
        env_prefix="STREAMRELAY_",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: Optional[str] = None
    environment: Optional[Environment] = None

    http_timeout_seconds: Optional[float] = None
    http_user_agent: Optional[str] = None

    log_level: Optional[LogLevel] = None
    log_format: Optional[LogFormat] = None

    tmdb_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("STREAMRELAY_TMDB_API_KEY", "TMDB_API_KEY"),
    )
    tmdb_language: Optional[str] = None

    provider_timeout_seconds: Optional[float] = None
    retry_attempts: Optional[int] = None
    retry_backoff_seconds: Optional[float] = None
    retry_max_backoff_seconds: Optional[float] = None

    embed_api_enabled: Optional[bool] = None
    embed_api_base_url: Optional[str] = None
    hdrezka_enabled: Optional[bool] = None
    hdrezka_base_url: Optional[str] = None

    relay_enabled: Optional[bool] = None
    relay_public_url: Optional[str] = None
    relay_timeout_seconds: Optional[float] = None

    def to_update_dict(self) -> dict[str, Any]:
        """
        Return only values that were actually provided (non-None), for merging.
        """
        return self.model_dump(exclude_none=True)
