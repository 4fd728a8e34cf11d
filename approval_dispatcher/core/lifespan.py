import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from approval_dispatcher.api.deps import get_run_registry
from approval_dispatcher.config import get_settings
from approval_dispatcher.core.logging import initialize_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging on startup and tear down active runs on shutdown."""
  settings = get_settings()
  logger = logging.getLogger("approval_dispatcher.core.lifespan")

  initialize_logging(settings)
  logger.info("Startup complete env=%s backend=%s", settings.environment, settings.backend_base_url)

  try:
    yield
  finally:
    # Active runs hold countdowns and in-flight steps; release them before the loop closes.
    await get_run_registry().shutdown()
    logger.info("Shutdown complete")
