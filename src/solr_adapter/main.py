"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from solr_adapter.api.router import api_router
from solr_adapter.config import settings
from solr_adapter.engine.solr import SolrEngine
from solr_adapter.errors import EngineNotConfiguredError
from solr_adapter.search.areas import AreaRegistry

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan management.

    Startup:
    - Create the search area registry (populated by the host application)
    - Keep the host's access scope resolver, if installed
    - Connect the engine if it is configured

    Shutdown:
    - Close the engine's HTTP client
    """
    logger.info("Starting Solr Search Adapter...")

    registry = getattr(app.state, "area_registry", None) or AreaRegistry()
    app.state.area_registry = registry

    # Searches are refused until the host installs its scope resolver
    app.state.scope_resolver = getattr(app.state, "scope_resolver", None)
    if app.state.scope_resolver is None:
        logger.warning("No access scope resolver installed, search is disabled")

    engine = None
    try:
        engine = SolrEngine(registry, settings)
        logger.info(f"Search engine configured: {engine.transport.connection_url('')}")
    except EngineNotConfiguredError as e:
        logger.warning(f"Search engine not configured: {e}")
    app.state.engine = engine

    yield

    logger.info("Shutting down Solr Search Adapter...")
    if engine is not None:
        engine.close()
        logger.info("Search engine client closed")


app = FastAPI(
    title=settings.app_name,
    description="Access-aware search over a Solr index",
    version=settings.app_version,
    lifespan=lifespan,
)

app.include_router(api_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "solr_adapter.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
