"""
Complaint intake agent entry point.

Serves the WebSocket and HTTP gateway, or runs the offline console demo.

Usage:
    Server:       python main.py serve
    Console mode: python main.py console
"""

import logging
import sys

from complaint_agent.config import settings

logger = logging.getLogger(__name__)


def _run_server() -> None:
    """Start the FastAPI gateway under uvicorn."""
    import uvicorn

    from complaint_agent.transport.gateway import create_app

    logger.info("Starting gateway on %s:%d", settings.server.host, settings.server.port)
    uvicorn.run(
        create_app(),
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.log_level.lower(),
    )


def _run_console_mode() -> None:
    """Start the offline console demo (no API keys required)."""
    from console_demo import ConsoleSession

    ConsoleSession().run()


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "console":
        _run_console_mode()
    else:
        _run_server()
