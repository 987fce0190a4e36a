"""
Photo EXIF harvesting.

Walks a directory tree and turns every photo carrying GPS EXIF tags into a
location reading. Anything that is not a readable photo with a complete GPS
fix is skipped.
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterator, Mapping, Optional, Tuple, Union

from PIL import ExifTags, Image, UnidentifiedImageError
from pydantic import ValidationError

from crataegus.app.models.enums import AltitudeFrame, Source
from crataegus.app.schemas.location import LocationReading

logger = logging.getLogger(__name__)

GPS = ExifTags.GPS
EXIF_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"

# Raised by malformed tags, e.g. the 0000:00:00 dates of cameras with an unset clock
EXIF_PARSE_ERRORS = (KeyError, TypeError, ValueError, ZeroDivisionError, OverflowError, AttributeError)


def dms_to_degrees(dms: Any, ref: str) -> float:
    """
    Convert EXIF (degrees, minutes, seconds) rationals and an N/S/E/W reference
    to signed decimal degrees.
    """
    degrees, minutes, seconds = (float(part) for part in dms)
    ref = ref.strip().upper() if isinstance(ref, str) else ref.decode().strip().upper()
    if ref in ("N", "E"):
        sign = 1.0
    elif ref in ("S", "W"):
        sign = -1.0
    else:
        raise ValueError(f"Invalid direction reference: {ref!r}")
    return sign * (degrees + minutes / 60.0 + seconds / 3600.0)


def parse_offset(offset: Optional[str]) -> Optional[timezone]:
    """Parse an EXIF OffsetTime value such as '-07:00'."""
    if not offset:
        return None
    offset = offset.strip()
    sign = -1 if offset.startswith("-") else 1
    hours, minutes = offset.lstrip("+-").split(":")
    return timezone(sign * timedelta(hours=int(hours), minutes=int(minutes)))


def gps_time_utc(gps: Mapping[int, Any]) -> Optional[datetime]:
    date_stamp = gps.get(GPS.GPSDateStamp)
    time_stamp = gps.get(GPS.GPSTimeStamp)
    if not date_stamp or not time_stamp:
        return None
    hours, minutes, seconds = (float(part) for part in time_stamp)
    day = datetime.strptime(date_stamp.strip(), "%Y:%m:%d").replace(tzinfo=timezone.utc)
    return day + timedelta(hours=hours, minutes=minutes, seconds=seconds)


def local_time(exif_ifd: Mapping[int, Any]) -> Tuple[Optional[datetime], Optional[timezone]]:
    original = exif_ifd.get(ExifTags.Base.DateTimeOriginal)
    if not original:
        return None, None
    naive = datetime.strptime(original.strip(), EXIF_DATETIME_FORMAT)
    offset = parse_offset(exif_ifd.get(ExifTags.Base.OffsetTimeOriginal))
    return naive, offset


def reading_from_exif(
    gps: Mapping[int, Any],
    exif_ifd: Mapping[int, Any],
) -> Optional[LocationReading]:
    """
    Build a reading from the GPS IFD and the Exif IFD of one photo.

    The UTC time comes from the GPS date/time stamps when present, otherwise
    from DateTimeOriginal and OffsetTimeOriginal. GPSAltitude is height above
    mean sea level. Returns None when position, altitude or time is missing
    or any tag cannot be parsed.
    """
    try:
        latitude = dms_to_degrees(gps[GPS.GPSLatitude], gps[GPS.GPSLatitudeRef])
        longitude = dms_to_degrees(gps[GPS.GPSLongitude], gps[GPS.GPSLongitudeRef])
        altitude = float(gps[GPS.GPSAltitude])
        if not all(math.isfinite(v) for v in (latitude, longitude, altitude)):
            raise ValueError("non-finite GPS position")

        # AltitudeRef 1 means below sea level
        altitude_ref = gps.get(GPS.GPSAltitudeRef, 0)
        if isinstance(altitude_ref, bytes):
            altitude_ref = altitude_ref[0] if altitude_ref else 0
        if int(altitude_ref) == 1:
            altitude = -altitude

        naive_local, offset = local_time(exif_ifd)
        time_utc = gps_time_utc(gps)
        if time_utc is None:
            if naive_local is None or offset is None:
                logger.debug("No usable timestamp in EXIF")
                return None
            time_utc = naive_local.replace(tzinfo=offset).astimezone(timezone.utc)
        time_local = time_utc.astimezone(offset) if offset is not None else time_utc

        accuracy = gps.get(GPS.GPSHPositioningError)
        accuracy = float(accuracy) if accuracy is not None else None
    except EXIF_PARSE_ERRORS as e:
        logger.debug("Unusable GPS EXIF data: %s", e)
        return None

    try:
        return LocationReading(
            time_utc=time_utc,
            time_local=time_local,
            latitude=latitude,
            longitude=longitude,
            altitude=altitude,
            altitude_frame=AltitudeFrame.MSL,
            accuracy=accuracy,
            source=Source.PHOTO,
        )
    except ValidationError as e:
        logger.debug("Invalid GPS values in EXIF: %s", e)
        return None


def read_photo(path: Union[str, Path]) -> Optional[LocationReading]:
    """Read the GPS fix of one photo; None if it is not a photo or has no fix."""
    path = Path(path)
    logger.debug("Getting location from file: %s", path)
    try:
        with Image.open(path) as image:
            exif = image.getexif()
            gps = exif.get_ifd(ExifTags.IFD.GPSInfo)
            exif_ifd = exif.get_ifd(ExifTags.IFD.Exif)
    except (UnidentifiedImageError, OSError, *EXIF_PARSE_ERRORS) as e:
        logger.debug("Cannot read EXIF from %s: %s", path, e)
        return None
    if not gps:
        logger.debug("File has no GPS EXIF data: %s", path)
        return None

    reading = reading_from_exif(gps, exif_ifd)
    if reading is not None:
        logger.info("Found GPS info in file: %s", path)
    return reading


def find_photo_readings(directory: Union[str, Path]) -> Iterator[Tuple[Path, LocationReading]]:
    """Recursively yield (path, reading) for every photo below `directory` with a GPS fix."""
    for path in sorted(Path(directory).rglob("*")):
        if not path.is_file():
            continue
        reading = read_photo(path)
        if reading is not None:
            yield path, reading
