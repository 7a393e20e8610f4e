"""
Main API router that includes all endpoint routers
"""

from fastapi import APIRouter

from sitemap_builder.api.api_v1.endpoints import sitemap, database

# Create main API router
api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(sitemap.router, prefix="/sitemap", tags=["sitemap"])
api_router.include_router(database.router, prefix="/database", tags=["database"])
