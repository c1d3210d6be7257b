"""Module executed when running ``python -m debridshelf``."""

from __future__ import annotations

import logging
import sys

import uvicorn

from app.config import settings

logger = logging.getLogger("debridshelf")


def main() -> int:
    """Start the uvicorn server using the configured settings."""

    logging.basicConfig(level=logging.INFO)
    if not settings.rd_token:
        logger.error("RD_TOKEN is not set; export it or add it to .env before starting")
        return 1
    logger.info("Serving %s on %s:%s", settings.app_name, settings.server_host, settings.server_port)
    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
    return 0


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    sys.exit(main())
