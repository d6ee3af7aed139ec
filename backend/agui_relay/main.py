"""
ASGI entrypoint.

Run with ``python -m agui_relay.main`` or ``uvicorn agui_relay.main:app``.
"""
from __future__ import annotations

import os

import uvicorn

from agui_relay.startup import initialize_app

# Logging before anything else logs
initialize_app()

from agui_relay.api import create_app  # noqa: E402

app = create_app()


def run() -> None:
    """Serve ``app`` with uvicorn; HOST and PORT come from the environment."""
    uvicorn.run(
        app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_config=None,
    )


if __name__ == "__main__":
    run()
