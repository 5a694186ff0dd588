"""Main API router — aggregates all endpoint modules."""

from fastapi import APIRouter

from carousel_studio.api.pipeline import router as pipeline_router
from carousel_studio.api.studio import router as studio_router

api_router = APIRouter()

api_router.include_router(pipeline_router, tags=["pipeline"])
api_router.include_router(studio_router, tags=["studio"])
