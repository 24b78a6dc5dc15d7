"""Main API router."""

from fastapi import APIRouter

from cadence.api.claims import router as claims_router
from cadence.api.schedules import router as schedules_router
from cadence.api.workflows import router as workflows_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(schedules_router)
api_router.include_router(workflows_router)
api_router.include_router(claims_router)
