"""
Application startup and initialization.
"""
from __future__ import annotations

import logging.config
from pathlib import Path
from typing import Any

import structlog
import yaml

from agui_relay import constants
from agui_relay.logging import configure_structlog

LOGGING_CONFIG_FILE = Path(__file__).parent / "logging.yaml"


def load_logging_config(config_file: Path = LOGGING_CONFIG_FILE, env: str | None = None) -> dict[str, Any]:
    """Read logging.yaml and merge the environment section over ``defaults``."""
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    with open(config_file) as f:
        config_data = yaml.safe_load(f) or {}

    env = env or constants.ENVIRONMENT
    logging_config = dict(config_data.get("defaults", {}).get("logging", {}))
    env_logging = config_data.get(env, {}).get("logging", {})
    for key, value in env_logging.items():
        if isinstance(value, dict) and isinstance(logging_config.get(key), dict):
            logging_config[key] = {**logging_config[key], **value}
        else:
            logging_config[key] = value
    return logging_config


def setup_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """Configure structlog and apply logging.yaml.

    ``log_level`` and ``log_format`` (``console`` or ``json``) override the
    root logger's level and the default handler's formatter.
    """
    configure_structlog()
    logging_config = load_logging_config()
    if not logging_config:
        return

    if log_level:
        logging_config["root"] = {**logging_config.get("root", {}), "level": log_level.upper()}
    if log_format:
        handlers = logging_config.get("handlers", {})
        if "default" in handlers:
            handlers["default"] = {**handlers["default"], "formatter": log_format}

    logging.config.dictConfig(logging_config)


def initialize_app() -> None:
    """Initialize the application: logging first, then report the environment."""
    from agui_relay.config import settings

    try:
        setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    except (OSError, ValueError, yaml.YAMLError) as e:
        structlog.get_logger(__name__).warning(
            "logging_setup_failed", error=str(e), error_type=type(e).__name__
        )

    structlog.get_logger(__name__).info(
        "startup_config",
        environment=settings.environment,
        app_name=settings.APP_NAME,
        app_version=settings.APP_VERSION,
        agent_path=settings.AGENT_PATH,
        agent_graph=settings.AGENT_GRAPH,
    )
