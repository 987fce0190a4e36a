"""
Ingestion service.

Turns a raw reading into a stored location: user check, altitude
normalization, then a deduplicating insert keyed on (username, time_utc).
"""

import logging

from crataegus.app.core.exceptions import DuplicateRecordError, UnknownUserError
from crataegus.app.models.enums import IngestStatus, UserCheckMode
from crataegus.app.models.location import Location, RecordId
from crataegus.app.schemas.ingest import IngestResult
from crataegus.app.schemas.location import LocationReading
from crataegus.app.services.location_store import LocationStore
from crataegus.app.services.normalizer import CoordinateNormalizer

logger = logging.getLogger(__name__)


class IngestionService:
    """
    Deduplicating front door of the location store.

    With UserCheckMode.BOUNDARY the owner is checked once per call, so a user
    deleted between that check and the commit can still receive one record.
    UserCheckMode.STRICT repeats the check inside the write transaction.
    """

    def __init__(
        self,
        store: LocationStore,
        normalizer: CoordinateNormalizer,
        user_check_mode: UserCheckMode = UserCheckMode.BOUNDARY,
    ):
        self.store = store
        self.normalizer = normalizer
        self.user_check_mode = user_check_mode

    async def ingest(self, username: str, reading: LocationReading) -> IngestResult:
        """
        Store one reading for `username`.

        Returns:
            IngestResult with COMMITTED once the record is durable, or DUPLICATE
            if a record with the same (username, time_utc) already exists

        Raises:
            UnknownUserError: if the user does not exist
            TransformUnavailableError: if the altitude cannot be normalized
            StorageIOError: if the store cannot be written
        """
        if not await self.store.user_exists(username):
            logger.warning("Rejected location for unknown user %s", username)
            raise UnknownUserError(username)

        altitude = self.normalizer.normalize(
            reading.latitude, reading.longitude, reading.altitude, reading.altitude_frame
        )
        record = Location(
            username=username,
            time_utc=reading.time_utc,
            time_local=reading.time_local,
            latitude=reading.latitude,
            longitude=reading.longitude,
            altitude=altitude,
            accuracy=reading.accuracy,
            source=reading.source,
        )
        record_id = RecordId(username, reading.time_utc)

        try:
            await self.store.insert(
                record, require_user=self.user_check_mode == UserCheckMode.STRICT
            )
        except DuplicateRecordError:
            logger.debug("Duplicate location %s ignored", record_id)
            return IngestResult(status=IngestStatus.DUPLICATE, record_id=record_id)

        logger.debug("Recorded location %s", record_id)
        return IngestResult(status=IngestStatus.COMMITTED, record_id=record_id)
