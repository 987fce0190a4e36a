"""
GPSLogger API Endpoints.

Receives fixes from the GPSLogger Android app's custom URL logging.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from crataegus.app.core.config import settings
from crataegus.app.core.dependencies import get_current_user, get_ingestion_service
from crataegus.app.schemas.gpslogger import GpsLoggerPayload
from crataegus.app.schemas.ingest import GpsLoggerResponse
from crataegus.app.services.ingestion import IngestionService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["GPSLogger"])


@router.post("/gpslogger", response_model=GpsLoggerResponse)
async def receive_gpslogger_fix(
    payload: Annotated[GpsLoggerPayload, Query()],
    username: str = Depends(get_current_user),
    service: IngestionService = Depends(get_ingestion_service)
):
    """
    Record one GPSLogger fix for the authenticated user.

    A fix already recorded for the same instant is acknowledged with
    `duplicate: true` so the app stops retrying it.
    """
    logger.debug("GPSLogger payload from %s: %s", username, payload)
    result = await service.ingest(username, payload.to_reading(settings.gpslogger_altitude_frame))
    return GpsLoggerResponse(status="accepted", duplicate=result.duplicate)
