#!/usr/bin/env python3
"""
Startup script for the Task Recommendation Engine

Writes a default .env on first run, validates the settings and starts the
FastAPI app under uvicorn.
"""

import logging
import sys
from pathlib import Path

import uvicorn

from config.settings import configure_logging, create_default_config_file, get_settings, validate_settings

logger = logging.getLogger(__name__)

project_root = Path(__file__).parent


def main():
    env_file = project_root / ".env"
    if not env_file.exists():
        create_default_config_file(str(env_file))

    settings = get_settings()
    configure_logging(settings)

    try:
        validate_settings(settings)
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    logger.info(
        f"Serving on {settings.api_host}:{settings.api_port} "
        f"(database {settings.database_url}, redis cache {'on' if settings.redis_enabled else 'off'})"
    )

    uvicorn.run(
        "api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True
    )


if __name__ == "__main__":
    main()
