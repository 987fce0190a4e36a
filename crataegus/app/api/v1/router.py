"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from crataegus.app.api.v1.endpoints import gpslogger

router = APIRouter()

# Location ingestion from the GPSLogger app
router.include_router(gpslogger.router)
