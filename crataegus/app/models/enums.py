"""
Enumerations shared by models, schemas and services.
"""

import enum


class Source(str, enum.Enum):
    """
    Provenance of a location record.

    Sources:
        GPS_LOGGER: GPSLogger app, live HTTP logging or CSV export
        PHOTO: GPS EXIF tags harvested from a photo

    New members may be appended; stored values are never renamed.
    """
    GPS_LOGGER = "GpsLogger"
    PHOTO = "Photo"


class AltitudeFrame(str, enum.Enum):
    """Vertical reference frame an incoming altitude is expressed in."""
    WGS84_ELLIPSOID = "WGS84_ELLIPSOID"
    MSL = "MSL"


class UserCheckMode(str, enum.Enum):
    """
    How strictly user existence is enforced during ingestion.

    Modes:
        BOUNDARY: checked once per ingest call, before normalization
        STRICT: checked again inside the insert's write transaction
    """
    BOUNDARY = "boundary"
    STRICT = "strict"


class IngestStatus(str, enum.Enum):
    COMMITTED = "COMMITTED"
    DUPLICATE = "DUPLICATE"
