"""
Unified configuration management: constants + environment variables with validation.
"""
from __future__ import annotations

import threading
from typing import Any

import structlog
from pydantic import computed_field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from agui_relay import constants
from agui_relay.protocol.converter import ConverterOptions

logger = structlog.get_logger(__name__)


def _load_constants_config(settings_fields: set[str]) -> dict[str, Any]:
    """Constants restricted to the fields ``Settings`` declares."""
    logger.debug(
        "loading_constants_config",
        constants_env=constants.ENVIRONMENT,
        keys=sorted(set(constants.CONSTANTS) & settings_fields),
    )
    return {
        key: value
        for key, value in constants.CONSTANTS.items()
        if key in settings_fields
    }


class ConstantsConfigSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads configuration from constants.py."""

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        return super().get_field_value(field, field_name)

    def __call__(self) -> dict[str, Any]:
        return _load_constants_config(set(self.settings_cls.model_fields.keys()))


class Settings(BaseSettings):
    """Application settings."""

    # App metadata
    APP_NAME: str
    APP_VERSION: str

    # Logging
    LOG_LEVEL: str
    LOG_FORMAT: str

    # CORS
    CORS_ALLOW_ORIGINS: list[str]
    CORS_ALLOW_CREDENTIALS: bool

    # Agent endpoint
    AGENT_PATH: str
    AGENT_GRAPH: str
    USER_ID_HEADER: str

    # Converter options
    INCLUDE_RAW_EVENTS: bool
    EMIT_STEP_EVENTS: bool
    EMIT_ACTIVITY_EVENTS: bool

    @field_validator("LOG_FORMAT")
    @classmethod
    def check_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("console", "json"):
            raise ValueError(f"LOG_FORMAT must be 'console' or 'json', got {v!r}")
        return v

    @field_validator("AGENT_PATH")
    @classmethod
    def normalise_agent_path(cls, v: str) -> str:
        return "/" + v.strip("/")

    @computed_field
    @property
    def environment(self) -> str:
        """Current environment (dev or prd)."""
        return constants.ENVIRONMENT

    @property
    def converter_options(self) -> ConverterOptions:
        return ConverterOptions(
            include_raw_events=self.INCLUDE_RAW_EVENTS,
            emit_step_events=self.EMIT_STEP_EVENTS,
            emit_activity_events=self.EMIT_ACTIVITY_EVENTS,
        )

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=True,
        populate_by_name=True,
        env_file=None,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Sources in priority order: init kwargs, env vars, then constants."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
            ConstantsConfigSettingsSource(settings_cls),
        )


_settings_instance: Settings | None = None
_settings_lock = threading.Lock()


def get_settings() -> Settings:
    """Get Settings instance (thread-safe singleton)."""
    global _settings_instance
    if _settings_instance is None:
        with _settings_lock:
            if _settings_instance is None:
                _settings_instance = Settings()
    return _settings_instance


# Export singleton
settings = get_settings()
