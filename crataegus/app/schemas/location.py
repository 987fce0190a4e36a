"""
Location schemas.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from crataegus.app.models.enums import AltitudeFrame, Source


class LocationReading(BaseModel):
    """
    A raw location fix as produced by a source, before normalization.

    Altitude is expressed in `altitude_frame`; it is converted to WGS84
    ellipsoidal height on ingestion.
    """
    time_utc: datetime
    time_local: datetime
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    altitude: float
    altitude_frame: AltitudeFrame
    accuracy: Optional[float] = Field(None, ge=0)
    source: Source

    @field_validator("time_utc")
    @classmethod
    def to_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            raise ValueError("time_utc must carry a timezone")
        return v.astimezone(timezone.utc)

    @field_validator("time_local")
    @classmethod
    def require_offset(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            raise ValueError("time_local must carry a UTC offset")
        return v

