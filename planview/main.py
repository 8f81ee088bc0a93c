"""planview entry point.

Starts the FastAPI web server that serves plan, structure and analysis graphs.
"""

from __future__ import annotations

import uvicorn

from planview.core.config import get_settings
from planview.core.logging import get_logger, setup_logging


def main():
    """Entry point: configure logging and serve the API."""
    setup_logging()
    logger = get_logger("main")
    settings = get_settings()

    logger.info("=" * 60)
    logger.info("planview starting")
    logger.info("=" * 60)

    if not settings.workspace_path:
        logger.warning("WORKSPACE_PATH not set - pass ?workspace= on each request")
    else:
        logger.info("Workspace: %s", settings.workspace_path)

    logger.info("Analysis model: %s", settings.analysis_model)
    logger.info("Web API: http://%s:%d", settings.web_host, settings.web_port)

    try:
        uvicorn.run(
            "planview.web.server:app",
            host=settings.web_host,
            port=settings.web_port,
            log_level=settings.log_level.lower(),
            reload=False,
        )
    except KeyboardInterrupt:
        logger.info("Shutting down...")


if __name__ == "__main__":
    main()
