"""
Application constants.

Environment-specific defaults for ``Settings``; any key can be overridden by
an environment variable of the same name.
"""

from __future__ import annotations

import os
from typing import Any, Literal

ENVIRONMENT: Literal["dev", "prd"] = os.getenv("ENVIRONMENT", "dev")

# Defaults
CONSTANTS: dict[str, Any] = {
    "APP_NAME": "AG-UI Relay",
    "APP_VERSION": "1.0.0",
    "LOG_LEVEL": "INFO",
    "LOG_FORMAT": "json",
    "CORS_ALLOW_ORIGINS": ["*"],
    "CORS_ALLOW_CREDENTIALS": False,
    "AGENT_PATH": "/agent",
    "AGENT_GRAPH": "agui_relay.agents.echo.graph:create_graph",
    "USER_ID_HEADER": "X-User-ID",
    "INCLUDE_RAW_EVENTS": False,
    "EMIT_STEP_EVENTS": False,
    "EMIT_ACTIVITY_EVENTS": False,
}

# dev
if ENVIRONMENT == "dev":
    CONSTANTS.update({
        "LOG_LEVEL": "DEBUG",
        "LOG_FORMAT": "console",
        "EMIT_STEP_EVENTS": True,
    })

# prd
if ENVIRONMENT == "prd":
    CONSTANTS.update({
        "LOG_LEVEL": "INFO",
        "LOG_FORMAT": "json",
    })
