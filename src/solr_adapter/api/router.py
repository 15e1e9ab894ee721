"""API router aggregation."""

from fastapi import APIRouter

from solr_adapter.api.health import router as health_router
from solr_adapter.api.search import search_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(search_router)
