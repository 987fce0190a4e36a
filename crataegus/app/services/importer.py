"""
Bulk import service.

Feeds readings from files through the ingestion service one record at a time.
A failed record is counted and skipped; it never aborts the rest of the file.
"""

import logging
from pathlib import Path
from typing import Iterable, Union

from crataegus.app.core.config import settings
from crataegus.app.core.exceptions import StorageIOError, TransformUnavailableError
from crataegus.app.models.enums import AltitudeFrame, IngestStatus
from crataegus.app.schemas.ingest import ImportSummary, InvalidRow
from crataegus.app.schemas.location import LocationReading
from crataegus.app.services.exif import find_photo_readings
from crataegus.app.services.gpslogger_csv import read_gpslogger_csv
from crataegus.app.services.ingestion import IngestionService

logger = logging.getLogger(__name__)


async def import_readings(
    service: IngestionService,
    username: str,
    readings: Iterable[Union[LocationReading, InvalidRow]],
) -> ImportSummary:
    """
    Ingest every reading and tally the outcomes.

    Raises:
        UnknownUserError: if the user does not exist (nothing can be imported)
    """
    summary = ImportSummary()
    for reading in readings:
        if isinstance(reading, InvalidRow):
            summary.failed += 1
            continue
        try:
            result = await service.ingest(username, reading)
        except (TransformUnavailableError, StorageIOError) as e:
            logger.warning("Failed to import location at %s: %s", reading.time_utc, e.message)
            summary.failed += 1
            continue
        if result.status == IngestStatus.DUPLICATE:
            summary.duplicate += 1
        else:
            summary.committed += 1
    return summary


async def import_gpslogger_csv(
    service: IngestionService,
    path: Union[str, Path],
    username: str,
    altitude_frame: AltitudeFrame = settings.gpslogger_altitude_frame,
) -> ImportSummary:
    """Import a GPSLogger CSV export for `username`."""
    logger.info("Importing GPSLogger CSV %s for %s", path, username)
    summary = await import_readings(service, username, read_gpslogger_csv(path, altitude_frame))
    logger.info(
        "Imported %s: %d committed, %d duplicate, %d failed",
        path, summary.committed, summary.duplicate, summary.failed
    )
    return summary


async def import_photos(
    service: IngestionService,
    directory: Union[str, Path],
    username: str,
) -> ImportSummary:
    """Import the GPS fix of every photo below `directory` for `username`."""
    logger.info("Importing photo locations from %s for %s", directory, username)
    readings = (reading for _, reading in find_photo_readings(directory))
    summary = await import_readings(service, username, readings)
    logger.info(
        "Imported photos from %s: %d committed, %d duplicate, %d failed",
        directory, summary.committed, summary.duplicate, summary.failed
    )
    return summary
