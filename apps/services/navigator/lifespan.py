"""Navigator application lifespan: logging, singletons, client shutdown."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from apps.services.navigator.dependencies import initialize_all, shutdown_all
from libs.core.config import get_settings
from libs.core.logging_config import get_logger, setup_logging

logger = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(level=settings.log_level, service_name="navigator")

    navigator_logger = get_logger("navigator")
    navigator_logger.info("Navigator starting...")

    try:
        initialize_all()
        navigator_logger.info("All dependencies initialized successfully")
    except Exception as e:
        navigator_logger.error(f"Failed to initialize dependencies: {e}")
        raise

    navigator_logger.info(f"Navigator ready on port {settings.service.port}")
    yield

    navigator_logger.info("Navigator shutting down...")
    await shutdown_all()
