"""
API v1 router aggregating all endpoints.
"""

from fastapi import APIRouter

from api.v1.incidents import router as incidents_router
from api.v1.realtime import router as realtime_router

router = APIRouter()

router.include_router(incidents_router, prefix="/incidents", tags=["Incidents"])
router.include_router(realtime_router, prefix="/realtime", tags=["Realtime"])
